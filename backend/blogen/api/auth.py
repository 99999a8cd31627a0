"""Session and account routes for Blogen.

- GET /api/auth/me - Current user snapshot
- POST /api/auth/logout - End the session (JSON)
- GET /api/auth/logout - End the session and redirect home
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, RedirectResponse

from blogen.config import Settings, get_app_settings
from blogen.schemas.auth import SessionData, UserSnapshot
from blogen.services.session import clear_session_cookie, get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


@router.get("/me", response_model=UserSnapshot)
async def get_current_user(session: SessionData = Depends(get_session)):
    """Return the signed-in user. The access token is never included."""
    if not session.is_authenticated or session.user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return session.user


@router.post("/logout")
async def logout(
    session: SessionData = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    if session.user is not None:
        logger.info("User %s logged out", session.user.shopify_user_id)

    response = JSONResponse(content={"success": True})
    clear_session_cookie(response, settings)
    return response


@router.get("/logout")
async def logout_redirect(settings: Settings = Depends(get_app_settings)):
    """Browser-friendly logout."""
    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    clear_session_cookie(response, settings)
    return response
