"""Input validation for shop domains supplied by users and by Shopify redirects."""

import re

SHOP_DOMAIN_SUFFIX = ".myshopify.com"

# One DNS label (letters, digits, inner hyphens) followed by the canonical suffix
_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.myshopify\.com$")
_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)


class ValidationError(Exception):
    """Raised when validation fails."""
    pass


def normalize_shop_domain(shop: str) -> str:
    """Reduce user input to the canonical ``<name>.myshopify.com`` form.

    Strips surrounding whitespace, the protocol and trailing slashes, lower-cases
    the result and appends the ``.myshopify.com`` suffix when it is missing.
    The output is not guaranteed valid; pass it to ``validate_shop_domain``.

    Examples:
        >>> normalize_shop_domain("HTTPS://Foo.myshopify.com/")
        'foo.myshopify.com'
        >>> normalize_shop_domain("foo")
        'foo.myshopify.com'
    """
    if not shop:
        return ""

    shop = _PROTOCOL_RE.sub("", shop.strip())
    shop = shop.rstrip("/").lower()
    if not shop:
        return ""

    if not shop.endswith(SHOP_DOMAIN_SUFFIX):
        shop = f"{shop}{SHOP_DOMAIN_SUFFIX}"

    return shop


def validate_shop_domain(shop: str) -> str:
    """Validate a normalized shop domain before any URL is built from it.

    Outbound requests go to ``https://{shop}/...``, so anything other than a
    single store label under myshopify.com is rejected.

    Returns:
        The validated domain

    Raises:
        ValidationError: If the domain is empty or malformed
    """
    if not shop:
        raise ValidationError("Shop domain cannot be empty")

    if any(ch.isspace() for ch in shop):
        raise ValidationError("Shop domain cannot contain whitespace")

    if "--" in shop or ".." in shop:
        raise ValidationError("Shop domain cannot contain repeated separators")

    if not _SHOP_DOMAIN_RE.match(shop):
        raise ValidationError("Shop domain must look like <store>.myshopify.com")

    return shop


def is_valid_shop_domain(shop: str) -> bool:
    """Boolean form of ``validate_shop_domain``."""
    try:
        validate_shop_domain(shop)
    except ValidationError:
        return False
    return True
