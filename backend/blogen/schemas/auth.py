"""Authentication and session schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from blogen.models.profile import ProfileRole


class ShopInstallRequest(BaseModel):
    """Body of POST /api/auth/shopify."""

    shop: Optional[str] = Field(None, max_length=255)


class AuthUrlResponse(BaseModel):
    """Consent URL handed to a client that performs the redirect itself."""

    authUrl: str
    state: str


class UserSnapshot(BaseModel):
    """Profile fields kept in the session and returned by /api/auth/me.

    The access token is deliberately absent; it is carried separately in
    ``SessionData.access_token``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    shopify_user_id: int
    email: str
    full_name: Optional[str] = None
    shopify_store_url: str
    shopify_store_name: Optional[str] = None
    role: ProfileRole
    created_at: datetime
    updated_at: datetime


class SessionData(BaseModel):
    """Server-side session state, stored encrypted in the session cookie."""

    user: Optional[UserSnapshot] = None
    access_token: Optional[str] = None
    shop: Optional[str] = None
    is_authenticated: bool = False
