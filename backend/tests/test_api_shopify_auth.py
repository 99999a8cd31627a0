"""Tests for Shopify OAuth API (blogen/api/shopify_auth.py).

Tests the authorization endpoints:
- GET /api/auth/shopify - Initiate OAuth (redirect)
- POST /api/auth/shopify - Initiate OAuth (JSON)
- GET /api/auth/shopify/callback - OAuth callback
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import status
from sqlalchemy import func, select
from unittest.mock import AsyncMock, patch

from blogen.models.profile import Profile, ProfileRole
from blogen.services.session import SESSION_COOKIE_NAME, STATE_COOKIE_NAME
from blogen.services.shopify_oauth import ShopProfile, StepFailure, SubjectProfile, TokenGrant

SHOP = "demo-store.myshopify.com"
STATE = "state-token-1234567890"
ERROR_LOCATION = "/auth/error?message=Authentication%20failed"


def find_set_cookie(response, name):
    """Return the Set-Cookie header for ``name``, or None."""
    for header in response.headers.get_list("set-cookie"):
        if header.startswith(f"{name}="):
            return header
    return None


def cookie_value(header):
    value = header.split(";", 1)[0].split("=", 1)[1]
    return value.strip('"')


def is_deletion(header):
    return header is not None and "max-age=0" in header.lower()


class TestShopifyLoginEndpoint:
    """Test suite for GET /api/auth/shopify endpoint."""

    async def test_redirects_to_consent_screen(self, client):
        """Test redirects to the shop's authorize URL with state cookie."""
        response = await client.get("/api/auth/shopify", params={"shop": "demo-store"})

        assert response.status_code == status.HTTP_302_FOUND
        location = urlparse(response.headers["location"])
        query = parse_qs(location.query)
        assert location.netloc == SHOP
        assert location.path == "/admin/oauth/authorize"
        assert query["client_id"] == ["test-client-id"]
        assert query["grant_options[]"] == ["per-user"]

        state_cookie = find_set_cookie(response, STATE_COOKIE_NAME)
        assert state_cookie is not None
        assert cookie_value(state_cookie) == query["state"][0]
        assert "httponly" in state_cookie.lower()
        assert "max-age=600" in state_cookie.lower()
        assert "samesite=lax" in state_cookie.lower()
        assert "path=/" in state_cookie.lower()

    async def test_pahadi_store_end_to_end(self, client):
        response = await client.get("/api/auth/shopify", params={"shop": "pahadi-store"})

        location = urlparse(response.headers["location"])
        query = parse_qs(location.query)
        assert location.netloc == "pahadi-store.myshopify.com"
        assert query["client_id"] == ["test-client-id"]
        assert query["scope"] == ["read_content,write_content"]
        # 32 random bytes, URL-safe base64
        assert len(query["state"][0]) >= 43
        assert cookie_value(find_set_cookie(response, STATE_COOKIE_NAME)) == query["state"][0]

    async def test_state_cookie_not_secure_outside_production(self, client):
        response = await client.get("/api/auth/shopify", params={"shop": SHOP})

        assert "secure" not in find_set_cookie(response, STATE_COOKIE_NAME).lower()

    async def test_missing_shop(self, client):
        response = await client.get("/api/auth/shopify")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Shop parameter is required"}
        assert find_set_cookie(response, STATE_COOKIE_NAME) is None

    async def test_invalid_shop(self, client):
        response = await client.get("/api/auth/shopify", params={"shop": "evil.com/steal"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Invalid shop domain"}
        assert find_set_cookie(response, STATE_COOKIE_NAME) is None

    async def test_unexpected_error(self, client):
        with patch(
            "blogen.services.shopify_oauth.start_authorization",
            side_effect=RuntimeError("boom"),
        ):
            response = await client.get("/api/auth/shopify", params={"shop": SHOP})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"error": "Failed to initiate OAuth flow"}


class TestShopifyInstallEndpoint:
    """Test suite for POST /api/auth/shopify endpoint."""

    async def test_returns_auth_url(self, client):
        response = await client.post("/api/auth/shopify", json={"shop": "https://Demo-Store.myshopify.com/"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["authUrl"].startswith(f"https://{SHOP}/admin/oauth/authorize?")
        assert parse_qs(urlparse(data["authUrl"]).query)["state"] == [data["state"]]
        assert cookie_value(find_set_cookie(response, STATE_COOKIE_NAME)) == data["state"]

    async def test_missing_shop(self, client):
        response = await client.post("/api/auth/shopify", json={})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Shop parameter is required"}

    async def test_invalid_shop(self, client):
        response = await client.post("/api/auth/shopify", json={"shop": "bad shop"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Invalid shop domain"}

    async def test_malformed_body(self, client):
        response = await client.post(
            "/api/auth/shopify", content=b"not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestShopifyCallbackEndpoint:
    """Test suite for GET /api/auth/shopify/callback endpoint."""

    def _params(self, **overrides):
        params = {"code": "auth-code", "shop": SHOP, "state": STATE}
        params.update(overrides)
        return params

    def _upstream(self, account_owner=True):
        """Patch the three upstream steps with successful results."""
        grant = TokenGrant(access_token="shpua_live_token", scope="read_content", associated_user_id=42)
        shop = ShopProfile(name="Demo Store")
        subject = SubjectProfile(
            id=42, email="ada@example.com", first_name="Ada", last_name="Lovelace", account_owner=account_owner
        )
        return (
            patch("blogen.services.shopify_oauth.exchange_code_for_token", new=AsyncMock(return_value=grant)),
            patch("blogen.services.shopify_oauth.fetch_shop_profile", new=AsyncMock(return_value=shop)),
            patch("blogen.services.shopify_oauth.fetch_subject_profile", new=AsyncMock(return_value=subject)),
        )

    async def test_success_sets_session_and_redirects(self, client, app, db):
        exchange, fetch_shop, fetch_subject = self._upstream()
        with exchange, fetch_shop, fetch_subject:
            response = await client.get(
                "/api/auth/shopify/callback",
                params=self._params(),
                headers={"Cookie": f"{STATE_COOKIE_NAME}={STATE}"},
            )

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == "/dashboard"

        session_cookie = find_set_cookie(response, SESSION_COOKIE_NAME)
        assert session_cookie is not None
        assert "httponly" in session_cookie.lower()
        assert "max-age=604800" in session_cookie.lower()
        assert "samesite=lax" in session_cookie.lower()
        assert is_deletion(find_set_cookie(response, STATE_COOKIE_NAME))

        session = app.state.session_manager.decode(cookie_value(session_cookie))
        assert session.is_authenticated is True
        assert session.access_token == "shpua_live_token"
        assert session.shop == SHOP
        assert session.user.shopify_user_id == 42
        assert session.user.role == ProfileRole.STORE_OWNER

        profile = (await db.execute(select(Profile))).scalar_one()
        assert profile.email == "ada@example.com"
        assert profile.shopify_access_token != "shpua_live_token"

    async def test_state_mismatch_redirects_to_error(self, client, db):
        exchange, fetch_shop, fetch_subject = self._upstream()
        with exchange as exchange_mock, fetch_shop, fetch_subject:
            response = await client.get(
                "/api/auth/shopify/callback",
                params=self._params(state="forged"),
                headers={"Cookie": f"{STATE_COOKIE_NAME}={STATE}"},
            )

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == ERROR_LOCATION
        assert find_set_cookie(response, SESSION_COOKIE_NAME) is None
        assert is_deletion(find_set_cookie(response, STATE_COOKIE_NAME))
        exchange_mock.assert_not_awaited()

        count = (await db.execute(select(func.count()).select_from(Profile))).scalar_one()
        assert count == 0

    async def test_missing_state_cookie_redirects_to_error(self, client):
        exchange, fetch_shop, fetch_subject = self._upstream()
        with exchange as exchange_mock, fetch_shop, fetch_subject:
            response = await client.get("/api/auth/shopify/callback", params=self._params())

        assert response.headers["location"] == ERROR_LOCATION
        exchange_mock.assert_not_awaited()

    async def test_missing_code_redirects_to_error(self, client):
        params = self._params()
        del params["code"]

        response = await client.get(
            "/api/auth/shopify/callback",
            params=params,
            headers={"Cookie": f"{STATE_COOKIE_NAME}={STATE}"},
        )

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == ERROR_LOCATION

    async def test_upstream_failure_redirects_to_error(self, client):
        failure = StepFailure("token_exchange", "token endpoint returned 400")
        with patch(
            "blogen.services.shopify_oauth.exchange_code_for_token",
            new=AsyncMock(return_value=failure),
        ):
            response = await client.get(
                "/api/auth/shopify/callback",
                params=self._params(),
                headers={"Cookie": f"{STATE_COOKIE_NAME}={STATE}"},
            )

        assert response.headers["location"] == ERROR_LOCATION
        assert find_set_cookie(response, SESSION_COOKIE_NAME) is None
        # Failure reason never leaks to the browser
        assert "400" not in response.headers["location"]

    async def test_unexpected_exception_redirects_to_error(self, client):
        with patch(
            "blogen.services.shopify_oauth.complete_authorization",
            new=AsyncMock(side_effect=RuntimeError("database on fire")),
        ):
            response = await client.get(
                "/api/auth/shopify/callback",
                params=self._params(),
                headers={"Cookie": f"{STATE_COOKIE_NAME}={STATE}"},
            )

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == ERROR_LOCATION
        assert is_deletion(find_set_cookie(response, STATE_COOKIE_NAME))

    async def test_staff_member_session_role(self, client, app):
        exchange, fetch_shop, fetch_subject = self._upstream(account_owner=False)
        with exchange, fetch_shop, fetch_subject:
            response = await client.get(
                "/api/auth/shopify/callback",
                params=self._params(),
                headers={"Cookie": f"{STATE_COOKIE_NAME}={STATE}"},
            )

        session = app.state.session_manager.decode(
            cookie_value(find_set_cookie(response, SESSION_COOKIE_NAME))
        )
        assert session.user.role == ProfileRole.STORE_STAFF


class TestShopifyCallbackOverHttp:
    """Callback driven end to end against mocked Shopify endpoints."""

    @pytest.fixture
    def shopify_requests(self, app):
        """Serve Shopify's token and Admin REST endpoints from app.state."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/admin/oauth/access_token":
                return httpx.Response(200, json={"access_token": "tok", "scope": "read_content,write_content"})
            if request.url.path.endswith("/shop.json"):
                return httpx.Response(200, json={"shop": {"name": "Demo Store"}})
            if request.url.path.endswith("/users/current.json"):
                return httpx.Response(
                    200,
                    json={"user": {"id": 42, "email": "ada@example.com", "first_name": "Ada", "account_owner": True}},
                )
            return httpx.Response(404, json={"errors": "Not Found"})

        app.state.shopify_transport = httpx.MockTransport(handler)
        return seen

    async def test_login_then_callback(self, client, app, db, shopify_requests):
        login = await client.get("/api/auth/shopify", params={"shop": "demo-store"})
        state = cookie_value(find_set_cookie(login, STATE_COOKIE_NAME))

        response = await client.get(
            "/api/auth/shopify/callback",
            params={"code": "auth-code", "shop": SHOP, "state": state},
            headers={"Cookie": f"{STATE_COOKIE_NAME}={state}"},
        )

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == "/dashboard"
        assert is_deletion(find_set_cookie(response, STATE_COOKIE_NAME))

        session = app.state.session_manager.decode(cookie_value(find_set_cookie(response, SESSION_COOKIE_NAME)))
        assert session.access_token == "tok"
        assert session.shop == SHOP
        assert session.user.shopify_user_id == 42

        assert [r.url.path for r in shopify_requests][0] == "/admin/oauth/access_token"
        assert all(r.url.host == SHOP for r in shopify_requests)
        profile = (await db.execute(select(Profile))).scalar_one()
        assert app.state.encryption.decrypt(profile.shopify_access_token) == "tok"

    async def test_upstream_rejection_redirects_to_error(self, client, app, db):
        app.state.shopify_transport = httpx.MockTransport(
            lambda request: httpx.Response(400, json={"error": "invalid_request"})
        )

        response = await client.get(
            "/api/auth/shopify/callback",
            params={"code": "auth-code", "shop": SHOP, "state": STATE},
            headers={"Cookie": f"{STATE_COOKIE_NAME}={STATE}"},
        )

        assert response.headers["location"] == ERROR_LOCATION
        assert find_set_cookie(response, SESSION_COOKIE_NAME) is None
        count = (await db.execute(select(func.count()).select_from(Profile))).scalar_one()
        assert count == 0
