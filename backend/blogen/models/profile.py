"""Local user record for a Shopify staff member of one store."""

import enum
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Enum, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from blogen.db import Base


class ProfileRole(str, enum.Enum):
    """Account privilege levels within a store."""

    STORE_OWNER = "store_owner"
    STORE_ADMIN = "store_admin"
    STORE_STAFF = "store_staff"


def utcnow() -> datetime:
    return datetime.now(UTC)


class Profile(Base):
    """One row per (Shopify user, shop).

    The composite unique constraint is what makes concurrent OAuth callbacks
    for the same user safe: the upsert in ``profile_service`` targets it.
    ``shopify_access_token`` holds Fernet ciphertext, never the raw token.
    """

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shopify_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shopify_store_url: Mapped[str] = mapped_column(String(255), nullable=False)
    shopify_store_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shopify_access_token: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[ProfileRole] = mapped_column(
        Enum(ProfileRole, name="profile_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ProfileRole.STORE_STAFF,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("shopify_user_id", "shopify_store_url", name="uq_profiles_user_store"),
    )

    def __repr__(self):
        return (
            f"<Profile(id={self.id}, shopify_user_id={self.shopify_user_id}, "
            f"shop='{self.shopify_store_url}', role='{self.role.value}')>"
        )
