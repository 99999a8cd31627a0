"""Blog article request schemas."""

from typing import List, Optional, Union

from pydantic import BaseModel, Field


class ArticleCreate(BaseModel):
    """Body of POST /api/blogs/{blog_id}/articles.

    ``title`` and ``content`` are checked by the route so a missing value
    answers 400 with a readable message.
    """

    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    author: Optional[str] = Field(None, max_length=255)
    tags: Optional[Union[List[str], str]] = None
    summary: Optional[str] = None
    published: bool = False


class ArticleUpdate(BaseModel):
    """Body of PUT /api/blogs/{blog_id}/articles/{article_id}; every field optional."""

    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    author: Optional[str] = Field(None, max_length=255)
    tags: Optional[Union[List[str], str]] = None
    summary: Optional[str] = None
    published: Optional[bool] = None


def join_tags(tags: Union[List[str], str, None]) -> Optional[str]:
    """Shopify stores tags as one comma separated string."""
    if isinstance(tags, list):
        return ", ".join(tags)
    return tags
