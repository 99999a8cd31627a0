"""Blog and article routes for Blogen.

All endpoints act on the signed-in user's shop with the access token held
in their session:
- GET /api/blogs
- GET /api/blogs/{blog_id}/articles
- POST /api/blogs/{blog_id}/articles
- GET /api/blogs/{blog_id}/articles/{article_id}
- PUT /api/blogs/{blog_id}/articles/{article_id}
- DELETE /api/blogs/{blog_id}/articles/{article_id}
"""

import logging
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from blogen.config import Settings, get_app_settings
from blogen.exceptions import ShopifyAPIError
from blogen.schemas.auth import SessionData
from blogen.schemas.blog import ArticleCreate, ArticleUpdate, join_tags
from blogen.services.session import require_session
from blogen.services.shopify_client import ShopifyClient
from blogen.utils.error_handling import safe_error_response

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_shopify_client(
    request: Request,
    session: SessionData = Depends(require_session),
    settings: Settings = Depends(get_app_settings),
) -> AsyncGenerator[ShopifyClient, None]:
    """Shopify client bound to the session's shop and credential."""
    async with ShopifyClient(
        session.shop,
        session.access_token,
        api_version=settings.shopify_api_version,
        timeout=settings.upstream_timeout_seconds,
        transport=request.app.state.shopify_transport,
    ) as client:
        yield client


def _parse_id(value: str, label: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {label} ID")
    if parsed <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {label} ID")
    return parsed


def _article_fields(body: ArticleCreate | ArticleUpdate) -> Dict[str, Any]:
    """Map request fields to Shopify article fields, skipping unset ones."""
    data = body.model_dump(exclude_unset=True)
    article: Dict[str, Any] = {}
    if "title" in data:
        article["title"] = data["title"]
    if "content" in data:
        article["body_html"] = data["content"]
    if "author" in data:
        article["author"] = data["author"]
    if "tags" in data:
        article["tags"] = join_tags(data["tags"])
    if "summary" in data:
        article["summary_html"] = data["summary"]
    if "published" in data:
        article["published"] = data["published"]
    return article


@router.get("")
async def list_blogs(client: ShopifyClient = Depends(get_shopify_client)):
    try:
        blogs = await client.list_blogs()
    except ShopifyAPIError as e:
        safe_error_response(logger, e, "Failed to fetch blogs")
    return {"blogs": blogs}


@router.get("/{blog_id}/articles")
async def list_articles(blog_id: str, client: ShopifyClient = Depends(get_shopify_client)):
    """List up to 50 articles of a blog."""
    blog = _parse_id(blog_id, "blog")
    try:
        articles = await client.list_articles(blog)
    except ShopifyAPIError as e:
        safe_error_response(logger, e, "Failed to fetch articles")
    return {"articles": articles}


@router.post("/{blog_id}/articles")
async def create_article(
    blog_id: str,
    body: ArticleCreate,
    client: ShopifyClient = Depends(get_shopify_client),
    session: SessionData = Depends(require_session),
):
    """Create an article.

    ``title`` and ``content`` are required. The author defaults to the
    signed-in user's full name, then their email.
    """
    blog = _parse_id(blog_id, "blog")
    if not body.title or not body.content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title and content are required")

    article = _article_fields(body)
    article["published"] = body.published
    if not article.get("author"):
        article["author"] = session.user.full_name or session.user.email

    try:
        created = await client.create_article(blog, article)
    except ShopifyAPIError as e:
        safe_error_response(logger, e, "Failed to create article")

    logger.info("Created article %s in blog %s", created.get("id"), blog)
    return {"article": created}


@router.get("/{blog_id}/articles/{article_id}")
async def get_article(blog_id: str, article_id: str, client: ShopifyClient = Depends(get_shopify_client)):
    blog = _parse_id(blog_id, "blog")
    article = _parse_id(article_id, "article")
    try:
        found = await client.get_article(blog, article)
    except ShopifyAPIError as e:
        safe_error_response(logger, e, "Failed to fetch article")
    return {"article": found}


@router.put("/{blog_id}/articles/{article_id}")
async def update_article(
    blog_id: str,
    article_id: str,
    body: ArticleUpdate,
    client: ShopifyClient = Depends(get_shopify_client),
):
    """Partial update; only fields present in the body are sent."""
    blog = _parse_id(blog_id, "blog")
    article = _parse_id(article_id, "article")
    try:
        updated = await client.update_article(blog, article, _article_fields(body))
    except ShopifyAPIError as e:
        safe_error_response(logger, e, "Failed to update article")
    return {"article": updated}


@router.delete("/{blog_id}/articles/{article_id}")
async def delete_article(blog_id: str, article_id: str, client: ShopifyClient = Depends(get_shopify_client)):
    blog = _parse_id(blog_id, "blog")
    article = _parse_id(article_id, "article")
    try:
        await client.delete_article(blog, article)
    except ShopifyAPIError as e:
        safe_error_response(logger, e, "Failed to delete article")

    logger.info("Deleted article %s from blog %s", article, blog)
    return {"success": True}
