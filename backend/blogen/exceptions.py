"""Custom exceptions for Blogen."""

from typing import Optional


class ShopifyAPIError(Exception):
    """Raised when a call to the Shopify Admin API fails.

    Covers non-2xx responses, undecodable bodies, timeouts and transport
    errors. ``status_code`` is None when no HTTP response was received.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class SessionError(Exception):
    """Raised when a session cookie cannot be decoded or has expired."""
    pass
