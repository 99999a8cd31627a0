"""Pydantic schemas for Blogen."""

from blogen.schemas.auth import AuthUrlResponse, SessionData, ShopInstallRequest, UserSnapshot
from blogen.schemas.blog import ArticleCreate, ArticleUpdate

__all__ = [
    "AuthUrlResponse",
    "SessionData",
    "ShopInstallRequest",
    "UserSnapshot",
    "ArticleCreate",
    "ArticleUpdate",
]
