"""Persistence of local user records (``profiles``)."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

from blogen.models.profile import Profile, ProfileRole
from blogen.utils.encryption import EncryptionService
from blogen.utils.security import sanitize_log_message

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

_CONFLICT_COLUMNS = ["shopify_user_id", "shopify_store_url"]


@dataclass(frozen=True)
class ProfileData:
    """Fields derived from one successful OAuth callback.

    Attributes:
        shopify_user_id: Shopify staff member id
        email: Staff member email
        full_name: "First Last", may be empty
        shop: Validated shop domain
        shop_name: Store display name from shop.json
        access_token: Raw access token (encrypted before it is written)
        role: Derived privilege level
    """

    shopify_user_id: int
    email: str
    full_name: str
    shop: str
    shop_name: Optional[str]
    access_token: str
    role: ProfileRole


async def get_profile(db: AsyncSession, shopify_user_id: int, shop: str) -> Optional[Profile]:
    """Load the profile for (Shopify user, shop), refreshing any cached instance."""
    result = await db.execute(
        select(Profile)
        .where(Profile.shopify_user_id == shopify_user_id, Profile.shopify_store_url == shop)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_profile(
    db: AsyncSession,
    data: ProfileData,
    encryption: EncryptionService,
    now: Optional[datetime] = None,
) -> Profile:
    """Create or refresh the profile keyed by (shopify_user_id, shop).

    On SQLite and PostgreSQL this is one ``INSERT ... ON CONFLICT DO UPDATE``
    against ``uq_profiles_user_store``, so two callbacks racing for the same
    user can never produce two rows. ``created_at`` is only written on insert;
    every other field and ``updated_at`` are refreshed on conflict.

    The access token is encrypted with ``encryption`` before it is written.

    Other dialects fall back to select-then-write in a transaction, retried
    once when the unique constraint reports a concurrent insert.

    Raises:
        SQLAlchemyError: If the write fails
    """
    now = now or datetime.now(UTC)
    values = {
        "shopify_user_id": data.shopify_user_id,
        "email": data.email,
        "full_name": data.full_name,
        "shopify_store_url": data.shop,
        "shopify_store_name": data.shop_name,
        "shopify_access_token": encryption.encrypt(data.access_token),
        "role": data.role,
        "updated_at": now,
    }

    dialect = db.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect)

    if insert is not None:
        stmt = insert(Profile).values(**values, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=_CONFLICT_COLUMNS,
            set_={key: value for key, value in values.items() if key not in _CONFLICT_COLUMNS},
        )
        try:
            await db.execute(stmt)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    else:
        await _upsert_with_retry(db, values, now)

    profile = await get_profile(db, data.shopify_user_id, data.shop)
    if profile is None:
        # Only reachable if the row was deleted between write and read
        raise NoResultFound("Profile missing after upsert")

    logger.info(
        "Upserted profile %s for user %s on %s (role=%s)",
        profile.id,
        data.shopify_user_id,
        sanitize_log_message(data.shop),
        data.role.value,
    )
    return profile


async def _upsert_with_retry(db: AsyncSession, values: dict, now: datetime) -> None:
    """Portable upsert: select, then insert or update; retry once on a unique conflict."""
    for attempt in (1, 2):
        try:
            existing = await get_profile(db, values["shopify_user_id"], values["shopify_store_url"])
            if existing is None:
                db.add(Profile(**values, created_at=now))
            else:
                for key, value in values.items():
                    setattr(existing, key, value)
            await db.commit()
            return
        except IntegrityError:
            await db.rollback()
            if attempt == 2:
                raise
            logger.warning(
                "Concurrent profile insert for user %s on %s, retrying as update",
                values["shopify_user_id"],
                sanitize_log_message(values["shopify_store_url"]),
            )


def decrypt_access_token(profile: Profile, encryption: EncryptionService) -> str:
    """Return the clear-text access token stored for a profile.

    Raises:
        ValueError: If the stored value is not Fernet ciphertext or does not decrypt
    """
    if not encryption.is_encrypted(profile.shopify_access_token):
        logger.error("Profile %s holds an unencrypted access token", profile.id)
        raise ValueError("Stored access token is not encrypted")
    return encryption.decrypt(profile.shopify_access_token)
