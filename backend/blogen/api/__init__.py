"""API routers for Blogen."""

from fastapi import APIRouter

from blogen.api import auth, blogs, shopify_auth

api_router = APIRouter(prefix="/api")

# Shopify OAuth (public)
api_router.include_router(shopify_auth.router, tags=["shopify-oauth"])

# Session and account
api_router.include_router(auth.router, tags=["authentication"])

# Shopify content (session required)
api_router.include_router(blogs.router, prefix="/blogs", tags=["blogs"])

__all__ = ["api_router"]
