"""Shopify OAuth service for Blogen.

Handles the authorization-code flow for per-user (online) access tokens:
- Shop domain normalization and validation before any URL is built
- Anti-forgery state generation and verification
- Code-for-token exchange and profile fetches against the shop
- Profile upsert for the authenticated staff member

Each step returns either its result dataclass or a ``StepFailure``. The
callback composes the steps and stops at the first failure, so every failure
path ends in the same place and the route can answer it uniformly.
"""

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Mapping, Optional, Union
from urllib.parse import urlencode

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blogen.config import Settings
from blogen.exceptions import ShopifyAPIError
from blogen.models.profile import ProfileRole
from blogen.schemas.auth import UserSnapshot
from blogen.services.profile_service import ProfileData, upsert_profile
from blogen.services.shopify_client import ShopifyClient
from blogen.utils.encryption import EncryptionService
from blogen.utils.security import (
    constant_time_equals,
    mask_sensitive,
    sanitize_log_message,
    verify_shopify_hmac,
)
from blogen.utils.validators import ValidationError, normalize_shop_domain, validate_shop_domain

logger = logging.getLogger(__name__)

# Failure steps surfaced by the initiator as distinct 400 messages
SHOP_MISSING = "shop_missing"
SHOP_INVALID = "shop_invalid"


# ============================================================================
# Result types
# ============================================================================


@dataclass(frozen=True)
class StepFailure:
    """A step of the flow did not succeed.

    Attributes:
        step: Machine-readable name of the failing step
        reason: Detail for server-side logs only
    """

    step: str
    reason: str


@dataclass(frozen=True)
class AuthorizationRequest:
    """Everything the initiator needs to redirect the browser."""

    shop: str
    state: str
    url: str


@dataclass(frozen=True)
class TokenGrant:
    """Parsed response of the token endpoint."""

    access_token: str
    scope: str
    expires_in: Optional[int] = None
    associated_user_id: Optional[int] = None


@dataclass(frozen=True)
class ShopifyAuthSession:
    """Transient credential bundle for API calls made during one callback."""

    shop: str
    access_token: str
    scope: str
    expires: Optional[datetime] = None
    online_access_subject: Optional[int] = None


@dataclass(frozen=True)
class ShopProfile:
    name: str


@dataclass(frozen=True)
class SubjectProfile:
    """The staff member who granted access."""

    id: int
    email: str
    first_name: str = ""
    last_name: str = ""
    account_owner: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class CallbackSuccess:
    """Outcome of a completed callback, ready to be stored in the session."""

    user: UserSnapshot
    access_token: str
    shop: str


CallbackOutcome = Union[CallbackSuccess, StepFailure]


# ============================================================================
# Authorization Initiator
# ============================================================================


def generate_state() -> str:
    """Generate a secure random state parameter (32 bytes = 256 bits, URL-safe)."""
    return secrets.token_urlsafe(32)


def check_shop(raw_shop: Optional[str]) -> Union[str, StepFailure]:
    """Normalize and validate a shop domain taken from user input."""
    if not raw_shop or not raw_shop.strip():
        return StepFailure(SHOP_MISSING, "shop parameter missing")

    shop = normalize_shop_domain(raw_shop)
    try:
        return validate_shop_domain(shop)
    except ValidationError as e:
        return StepFailure(SHOP_INVALID, str(e))


def build_authorization_url(shop: str, state: str, settings: Settings) -> str:
    """Build the Shopify consent URL for a per-user access token."""
    params = {
        "client_id": settings.shopify_app_key,
        "scope": settings.shopify_scopes,
        "redirect_uri": settings.callback_url,
        "state": state,
        "grant_options[]": "per-user",
    }
    return f"https://{shop}/admin/oauth/authorize?{urlencode(params)}"


def start_authorization(raw_shop: Optional[str], settings: Settings) -> Union[AuthorizationRequest, StepFailure]:
    """Validate the shop and mint a fresh state for one authorization attempt.

    No network calls are made; the caller stores ``state`` in the
    anti-forgery cookie and sends the browser to ``url``.
    """
    shop = check_shop(raw_shop)
    if isinstance(shop, StepFailure):
        return shop

    state = generate_state()
    url = build_authorization_url(shop, state, settings)

    logger.info(
        "Created Shopify authorization URL for %s (state: %s...)",
        sanitize_log_message(shop),
        state[:8],
    )
    return AuthorizationRequest(shop=shop, state=state, url=url)


# ============================================================================
# Callback steps
# ============================================================================


def verify_state(presented: Optional[str], expected: Optional[str]) -> Optional[StepFailure]:
    """Compare the callback state with the cookie value issued at initiation."""
    if not expected:
        return StepFailure("state", "anti-forgery cookie missing or expired")
    if not constant_time_equals(presented, expected):
        return StepFailure("state", "state parameter does not match cookie")
    return None


async def exchange_code_for_token(
    shop: str,
    code: str,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Union[TokenGrant, StepFailure]:
    """Exchange an authorization code for an access token.

    POSTs ``{client_id, client_secret, code}`` as JSON to the shop's token
    endpoint. Non-2xx responses, timeouts, transport errors, undecodable
    bodies and responses without ``access_token`` are all failures.
    """
    token_endpoint = f"https://{shop}/admin/oauth/access_token"
    payload = {
        "client_id": settings.shopify_app_key,
        "client_secret": settings.shopify_app_secret,
        "code": code,
    }

    try:
        async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds, transport=transport) as client:
            logger.info("Exchanging code for access token at %s", sanitize_log_message(token_endpoint))
            response = await client.post(
                token_endpoint,
                json=payload,
                headers={"Accept": "application/json"},
            )
    except httpx.TimeoutException:
        return StepFailure("token_exchange", "token endpoint timed out")
    except httpx.HTTPError as e:
        return StepFailure("token_exchange", f"cannot reach token endpoint: {type(e).__name__}: {e}")

    if not response.is_success:
        return StepFailure(
            "token_exchange",
            f"token endpoint returned {response.status_code}: {sanitize_log_message(response.text[:200])}",
        )

    try:
        body = response.json()
    except ValueError:
        return StepFailure("token_exchange", "token endpoint returned invalid JSON")

    if not isinstance(body, dict):
        return StepFailure("token_exchange", "token endpoint returned unexpected JSON")

    access_token = body.get("access_token")
    if not access_token or not isinstance(access_token, str):
        return StepFailure("token_exchange", "no access token in response")

    associated_user = body.get("associated_user")
    associated_user_id = associated_user.get("id") if isinstance(associated_user, dict) else None
    expires_in = body.get("expires_in")

    logger.info("Received access token %s for %s", mask_sensitive(access_token), sanitize_log_message(shop))
    return TokenGrant(
        access_token=access_token,
        scope=str(body.get("scope") or ""),
        expires_in=expires_in if isinstance(expires_in, int) else None,
        associated_user_id=associated_user_id if isinstance(associated_user_id, int) else None,
    )


def create_auth_session(shop: str, grant: TokenGrant) -> ShopifyAuthSession:
    """Wrap a token grant into the credential bundle used for API calls."""
    expires = None
    if grant.expires_in:
        expires = datetime.now(UTC) + timedelta(seconds=grant.expires_in)
    return ShopifyAuthSession(
        shop=shop,
        access_token=grant.access_token,
        scope=grant.scope,
        expires=expires,
        online_access_subject=grant.associated_user_id,
    )


async def fetch_shop_profile(
    auth_session: ShopifyAuthSession,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Union[ShopProfile, StepFailure]:
    """Fetch the store's name and contact details from shop.json."""
    try:
        async with ShopifyClient(
            auth_session.shop,
            auth_session.access_token,
            api_version=settings.shopify_api_version,
            timeout=settings.upstream_timeout_seconds,
            transport=transport,
        ) as client:
            shop = await client.get_shop()
    except ShopifyAPIError as e:
        return StepFailure("shop_profile", e.message)

    name = shop.get("name")
    if not name or not isinstance(name, str):
        return StepFailure("shop_profile", "shop.json missing 'name'")

    return ShopProfile(name=name)


async def fetch_subject_profile(
    auth_session: ShopifyAuthSession,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Union[SubjectProfile, StepFailure]:
    """Fetch the staff member the online token belongs to."""
    try:
        async with ShopifyClient(
            auth_session.shop,
            auth_session.access_token,
            api_version=settings.shopify_api_version,
            timeout=settings.upstream_timeout_seconds,
            transport=transport,
        ) as client:
            user = await client.get_current_user()
    except ShopifyAPIError as e:
        return StepFailure("subject_profile", e.message)

    user_id = user.get("id")
    email = user.get("email")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return StepFailure("subject_profile", "users/current.json missing integer 'id'")
    if not email or not isinstance(email, str):
        return StepFailure("subject_profile", "users/current.json missing 'email'")

    if auth_session.online_access_subject is not None and auth_session.online_access_subject != user_id:
        return StepFailure("subject_profile", "current user does not match token's associated user")

    return SubjectProfile(
        id=user_id,
        email=email,
        first_name=user.get("first_name") or "",
        last_name=user.get("last_name") or "",
        account_owner=bool(user.get("account_owner")),
    )


def derive_role(subject: SubjectProfile) -> ProfileRole:
    """Account owners are store owners; everyone else is staff.

    ``ProfileRole.STORE_ADMIN`` is never assigned here.
    """
    return ProfileRole.STORE_OWNER if subject.account_owner else ProfileRole.STORE_STAFF


# ============================================================================
# Callback composition
# ============================================================================


async def complete_authorization(
    db: AsyncSession,
    settings: Settings,
    params: Mapping[str, str],
    cookie_state: Optional[str],
    encryption: Optional[EncryptionService] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CallbackOutcome:
    """Run the callback steps in order, stopping at the first failure.

    The state check runs before any network call. Failures are logged here
    with their step and reason; callers only see the ``StepFailure``.

    ``encryption`` seals the access token before it is stored; when omitted
    it is built from ``settings.blogen_encryption_key``.
    """
    if encryption is None:
        encryption = EncryptionService(settings.blogen_encryption_key)

    outcome = await _run_callback(db, settings, params, cookie_state, encryption, transport)
    if isinstance(outcome, StepFailure):
        logger.warning(
            "Shopify OAuth callback failed at step '%s' for shop %s: %s",
            outcome.step,
            sanitize_log_message(params.get("shop")),
            sanitize_log_message(outcome.reason),
        )
    return outcome


async def _run_callback(
    db: AsyncSession,
    settings: Settings,
    params: Mapping[str, str],
    cookie_state: Optional[str],
    encryption: EncryptionService,
    transport: Optional[httpx.AsyncBaseTransport],
) -> CallbackOutcome:
    code = params.get("code")
    raw_shop = params.get("shop")
    state = params.get("state")

    if not code or not raw_shop or not state:
        return StepFailure("params", "missing code, shop or state")

    failure = verify_state(state, cookie_state)
    if failure:
        return failure

    try:
        shop = validate_shop_domain(raw_shop)
    except ValidationError as e:
        return StepFailure("shop", str(e))

    if settings.shopify_verify_hmac and not verify_shopify_hmac(params, settings.shopify_app_secret):
        return StepFailure("hmac", "query string HMAC missing or invalid")

    grant = await exchange_code_for_token(shop, code, settings, transport=transport)
    if isinstance(grant, StepFailure):
        return grant

    auth_session = create_auth_session(shop, grant)

    shop_profile, subject = await asyncio.gather(
        fetch_shop_profile(auth_session, settings, transport=transport),
        fetch_subject_profile(auth_session, settings, transport=transport),
    )
    if isinstance(shop_profile, StepFailure):
        return shop_profile
    if isinstance(subject, StepFailure):
        return subject

    data = ProfileData(
        shopify_user_id=subject.id,
        email=subject.email,
        full_name=subject.full_name,
        shop=shop,
        shop_name=shop_profile.name,
        access_token=grant.access_token,
        role=derive_role(subject),
    )

    try:
        profile = await upsert_profile(db, data, encryption)
    except (SQLAlchemyError, ValueError) as e:
        logger.error("Profile upsert failed: %s", type(e).__name__, exc_info=True)
        return StepFailure("persist_profile", f"{type(e).__name__}: {e}")

    logger.info(
        "Shopify OAuth completed for user %s on %s (token expires: %s)",
        subject.id,
        sanitize_log_message(shop),
        auth_session.expires.isoformat() if auth_session.expires else "never",
    )
    return CallbackSuccess(
        user=UserSnapshot.model_validate(profile),
        access_token=grant.access_token,
        shop=shop,
    )
