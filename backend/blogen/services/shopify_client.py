"""Shopify Admin REST API client for store, user, blog and article data."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from blogen.exceptions import ShopifyAPIError
from blogen.utils.security import sanitize_log_message

logger = logging.getLogger(__name__)

DEFAULT_ARTICLE_LIMIT = 50


class ShopifyClient:
    """Client for one shop, authenticated with an OAuth access token.

    Usage:
        async with ShopifyClient(shop, token, api_version="2024-01") as client:
            blogs = await client.list_blogs()

    Every method raises ``ShopifyAPIError`` on a non-2xx response, an
    undecodable body, a timeout or a transport failure.
    """

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: str = "2024-01",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Shopify client.

        Args:
            shop: Validated shop domain (e.g., pahadi-store.myshopify.com)
            access_token: OAuth access token for the shop
            api_version: Admin API version segment
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not access_token:
            raise ValueError("Access token is required")

        self.shop = shop
        self.api_version = api_version
        self.client = httpx.AsyncClient(
            base_url=f"https://{shop}/admin/api/{api_version}",
            headers={"X-Shopify-Access-Token": access_token, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - ensures client is closed."""
        await self.close()
        return False

    async def close(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        expect_body: bool = True,
    ) -> Dict[str, Any]:
        """Send a request and return the decoded JSON object.

        ``action`` names the operation in error messages, e.g. "fetch blogs".
        """
        try:
            response = await self.client.request(method, path, params=params, json=json)
        except httpx.TimeoutException:
            logger.error("Shopify request timed out: %s %s (%s)", method, path, sanitize_log_message(self.shop))
            raise ShopifyAPIError(f"Failed to {action}: request timed out")
        except httpx.HTTPError as e:
            logger.error("Cannot reach Shopify for %s: %s", sanitize_log_message(self.shop), str(e))
            raise ShopifyAPIError(f"Failed to {action}: {type(e).__name__}")

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(
                "Shopify returned %s for %s %s: %s",
                response.status_code,
                method,
                path,
                sanitize_log_message(detail),
            )
            raise ShopifyAPIError(f"Failed to {action}: {detail}", status_code=response.status_code)

        if not expect_body:
            return {}

        try:
            data = response.json()
        except ValueError:
            raise ShopifyAPIError(f"Failed to {action}: invalid JSON response", status_code=response.status_code)

        if not isinstance(data, dict):
            raise ShopifyAPIError(f"Failed to {action}: unexpected response shape", status_code=response.status_code)

        return data

    # ------------------------------------------------------------------
    # Store and user
    # ------------------------------------------------------------------

    async def get_shop(self) -> Dict[str, Any]:
        data = await self._request("GET", "/shop.json", "fetch store info")
        return _require_object(data, "shop", "fetch store info")

    async def get_current_user(self) -> Dict[str, Any]:
        """Staff member the online access token was issued for."""
        data = await self._request("GET", "/users/current.json", "fetch user info")
        return _require_object(data, "user", "fetch user info")

    # ------------------------------------------------------------------
    # Blogs and articles
    # ------------------------------------------------------------------

    async def list_blogs(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/blogs.json", "fetch blogs")
        return data.get("blogs", [])

    async def list_articles(self, blog_id: int, limit: int = DEFAULT_ARTICLE_LIMIT) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET", f"/blogs/{blog_id}/articles.json", "fetch blog articles", params={"limit": limit}
        )
        return data.get("articles", [])

    async def get_article(self, blog_id: int, article_id: int) -> Dict[str, Any]:
        data = await self._request("GET", f"/blogs/{blog_id}/articles/{article_id}.json", "fetch article")
        return _require_object(data, "article", "fetch article")

    async def create_article(self, blog_id: int, article: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request(
            "POST", f"/blogs/{blog_id}/articles.json", "create article", json={"article": article}
        )
        return _require_object(data, "article", "create article")

    async def update_article(self, blog_id: int, article_id: int, article: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request(
            "PUT",
            f"/blogs/{blog_id}/articles/{article_id}.json",
            "update article",
            json={"article": article},
        )
        return _require_object(data, "article", "update article")

    async def delete_article(self, blog_id: int, article_id: int) -> bool:
        await self._request(
            "DELETE", f"/blogs/{blog_id}/articles/{article_id}.json", "delete article", expect_body=False
        )
        return True


def _require_object(data: Dict[str, Any], key: str, action: str) -> Dict[str, Any]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise ShopifyAPIError(f"Failed to {action}: response missing '{key}'")
    return value


def _error_detail(response: httpx.Response) -> str:
    """Shopify puts validation problems under ``errors``; fall back to the reason phrase."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or str(response.status_code)
    if isinstance(body, dict) and body.get("errors"):
        return str(body["errors"])
    return response.reason_phrase or str(response.status_code)
