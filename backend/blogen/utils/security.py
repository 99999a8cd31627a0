"""Security utilities for input sanitization and request verification.

This module provides functions to prevent security vulnerabilities:
- Log injection: Sanitize user input before logging
- Sensitive data exposure: Mask tokens and secrets in logs
- Request forgery: Constant-time comparison and Shopify HMAC verification
"""

import hashlib
import hmac
import re
from typing import Mapping, Optional, Union


def sanitize_log_message(msg: Union[str, bytes, int, float, None]) -> str:
    """Remove newlines and control characters from log messages.

    Prevents log injection attacks where attackers inject newlines or control
    characters to corrupt log files or hide malicious activity.

    Examples:
        >>> sanitize_log_message("shop\\nmalicious\\nlog")
        'shopmaliciouslog'
    """
    if msg is None:
        return ""

    return re.sub(r'[\n\r\t\x00-\x1f\x7f-\x9f]', '', str(msg))


def mask_sensitive(value: Union[str, None], visible_chars: int = 4, mask_char: str = "*") -> str:
    """Mask sensitive values, showing only the last N characters.

    Examples:
        >>> mask_sensitive("shpua_1234567890abcdef")
        '***cdef'
        >>> mask_sensitive("abc")
        '***'
        >>> mask_sensitive(None)
        '***'
    """
    if not value or len(value) <= visible_chars:
        return mask_char * 3

    return f"{mask_char * 3}{value[-visible_chars:]}"


def constant_time_equals(presented: Optional[str], expected: Optional[str]) -> bool:
    """Exact string equality that does not leak timing; None never matches."""
    if presented is None or expected is None:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def compute_shopify_hmac(params: Mapping[str, str], secret: str) -> str:
    """Compute the hex HMAC-SHA256 Shopify attaches to OAuth redirects.

    The message is every query parameter except ``hmac`` and ``signature``,
    sorted by name and joined as ``key=value`` pairs with ``&``.
    """
    message = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if key not in ("hmac", "signature")
    )
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_shopify_hmac(params: Mapping[str, str], secret: str) -> bool:
    """Verify the ``hmac`` query parameter of a Shopify redirect."""
    presented = params.get("hmac")
    if not presented:
        return False
    return constant_time_equals(presented.lower(), compute_shopify_hmac(params, secret))
