"""Shopify OAuth routes for Blogen.

Provides endpoints for the per-user authorization-code flow:
- GET /api/auth/shopify?shop=... - Initiate OAuth (redirects to Shopify consent)
- POST /api/auth/shopify - Initiate OAuth for clients that redirect themselves
- GET /api/auth/shopify/callback - Handle Shopify's redirect back

The callback never reveals why authentication failed. Every failure ends
in the same redirect; the step and reason are logged server-side.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from blogen.config import Settings, get_app_settings
from blogen.db import get_db
from blogen.schemas.auth import AuthUrlResponse, SessionData, ShopInstallRequest
from blogen.services import shopify_oauth
from blogen.services.session import (
    STATE_COOKIE_NAME,
    SessionManager,
    clear_state_cookie,
    get_session_manager,
    set_session_cookie,
    set_state_cookie,
)
from blogen.services.shopify_oauth import SHOP_MISSING, AuthorizationRequest, StepFailure
from blogen.utils.error_handling import safe_error_response
from blogen.utils.security import sanitize_log_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/shopify")

SUCCESS_REDIRECT = "/dashboard"
ERROR_REDIRECT = "/auth/error?message=Authentication%20failed"


def _start(raw_shop: Optional[str], settings: Settings) -> AuthorizationRequest:
    """Run the initiator, mapping failures to 400 responses."""
    try:
        result = shopify_oauth.start_authorization(raw_shop, settings)
    except Exception as e:
        safe_error_response(logger, e, "Failed to initiate OAuth flow")

    if isinstance(result, StepFailure):
        logger.info(
            "Rejected OAuth initiation (%s): %s",
            result.step,
            sanitize_log_message(raw_shop),
        )
        detail = "Shop parameter is required" if result.step == SHOP_MISSING else "Invalid shop domain"
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    return result


@router.get("")
async def shopify_login(
    shop: Optional[str] = None,
    settings: Settings = Depends(get_app_settings),
):
    """Initiate Shopify OAuth (public).

    Redirects the browser to the shop's consent screen and stores the
    anti-forgery state in a short-lived cookie.
    """
    auth = _start(shop, settings)

    response = RedirectResponse(url=auth.url, status_code=status.HTTP_302_FOUND)
    set_state_cookie(response, auth.state, settings)
    return response


@router.post("", response_model=AuthUrlResponse)
async def shopify_install(
    body: ShopInstallRequest,
    settings: Settings = Depends(get_app_settings),
):
    """Return the consent URL instead of redirecting.

    The state cookie is set here too, so the callback can verify it.
    """
    auth = _start(body.shop, settings)

    response = JSONResponse(
        content=AuthUrlResponse(authUrl=auth.url, state=auth.state).model_dump(),
    )
    set_state_cookie(response, auth.state, settings)
    return response


@router.get("/callback")
async def shopify_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    manager: SessionManager = Depends(get_session_manager),
):
    """Handle Shopify's redirect after consent (public).

    Query Parameters:
        code: Authorization code
        shop: Shop domain
        state: Anti-forgery state issued by the initiator
        hmac, timestamp, host: Signed by Shopify (checked when enabled)

    Returns:
        Redirect to the dashboard with the session cookie set, or to the
        generic error page
    """
    params = dict(request.query_params)
    cookie_state = request.cookies.get(STATE_COOKIE_NAME)

    try:
        outcome = await shopify_oauth.complete_authorization(
            db,
            settings,
            params,
            cookie_state,
            encryption=request.app.state.encryption,
            transport=request.app.state.shopify_transport,
        )
    except Exception as e:
        logger.error(
            "Unexpected error in Shopify OAuth callback: %s: %s",
            type(e).__name__,
            sanitize_log_message(str(e)),
            exc_info=True,
        )
        outcome = StepFailure("unexpected", type(e).__name__)

    if isinstance(outcome, StepFailure):
        response = RedirectResponse(url=ERROR_REDIRECT, status_code=status.HTTP_302_FOUND)
        clear_state_cookie(response, settings)
        return response

    session = SessionData(
        user=outcome.user,
        access_token=outcome.access_token,
        shop=outcome.shop,
        is_authenticated=True,
    )

    response = RedirectResponse(url=SUCCESS_REDIRECT, status_code=status.HTTP_302_FOUND)
    set_session_cookie(response, manager.encode(session), settings)
    clear_state_cookie(response, settings)
    return response
