"""Encrypted cookie sessions.

The session cookie carries a Fernet token whose payload is the JSON form of
``SessionData``. The Fernet key is derived from ``SESSION_SECRET`` with
HKDF-SHA256, so the cookie is both confidential and tamper-evident and
expires server-side after ``SESSION_MAX_AGE`` even if the browser keeps it.
"""

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from fastapi import Depends, HTTPException, Request, Response, status
from pydantic import ValidationError as PydanticValidationError

from blogen.config import Settings
from blogen.exceptions import SessionError
from blogen.schemas.auth import SessionData

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "blogen-session"
SESSION_MAX_AGE = 60 * 60 * 24 * 7  # 7 days

STATE_COOKIE_NAME = "oauth_state"
STATE_COOKIE_MAX_AGE = 600  # 10 minutes

_HKDF_INFO = b"blogen-session-cookie"


class SessionManager:
    """Seal and open session cookies."""

    def __init__(self, secret: str, max_age: int = SESSION_MAX_AGE):
        if not secret or len(secret) < 32:
            raise ValueError("Session secret must be at least 32 characters")

        key = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=_HKDF_INFO,
        ).derive(secret.encode("utf-8"))
        self._fernet = Fernet(base64.urlsafe_b64encode(key))
        self.max_age = max_age

    def encode(self, data: SessionData) -> str:
        return self._fernet.encrypt(data.model_dump_json().encode("utf-8")).decode("utf-8")

    def decode(self, value: str) -> SessionData:
        """Open a session cookie value.

        Raises:
            SessionError: If the value is forged, corrupted, expired or malformed
        """
        try:
            payload = self._fernet.decrypt(value.encode("utf-8"), ttl=self.max_age)
        except InvalidToken:
            raise SessionError("Invalid or expired session")

        try:
            return SessionData.model_validate_json(payload)
        except PydanticValidationError:
            raise SessionError("Malformed session payload")


# ============================================================================
# Cookie helpers
# ============================================================================


def set_session_cookie(response: Response, value: str, settings: Settings) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def set_state_cookie(response: Response, state: str, settings: Settings) -> None:
    """Store the anti-forgery state for the in-flight authorization."""
    response.set_cookie(
        key=STATE_COOKIE_NAME,
        value=state,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def clear_state_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=STATE_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


# ============================================================================
# Dependencies
# ============================================================================


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_session(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionData:
    """Current session, or an anonymous one when the cookie is absent or invalid."""
    value = request.cookies.get(SESSION_COOKIE_NAME)
    if not value:
        return SessionData()

    try:
        return manager.decode(value)
    except SessionError as e:
        logger.info("Ignoring session cookie: %s", e)
        return SessionData()


def require_session(session: SessionData = Depends(get_session)) -> SessionData:
    """Require an authenticated session with a user and an access token."""
    if not session.is_authenticated or session.user is None or not session.access_token or not session.shop:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return session
