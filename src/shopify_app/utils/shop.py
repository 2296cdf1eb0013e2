"""Shop domain helpers."""

from __future__ import annotations

import re

from shopify_app.utils.urls import split_url

SHOP_DOMAIN_SUFFIX = ".myshopify.com"
ADMIN_ORIGIN = "https://admin.shopify.com"

_SHOP_NAME_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9-]*")


def strip_shop_domain(value: str) -> str:
    """Reduce a shop domain or URL to the bare shop name.

    Example:
        >>> strip_shop_domain("https://test-shop.myshopify.com")
        'test-shop'
    """
    for scheme in ("https://", "http://"):
        if value.startswith(scheme):
            value = value[len(scheme) :]
    return value.replace(SHOP_DOMAIN_SUFFIX, "")


def shop_hostname(dest: str) -> str:
    """Hostname of a ``dest`` claim, which may or may not carry a scheme."""
    parts = split_url(dest)
    hostname = parts.hostname if parts is not None else None
    return hostname or dest


def is_valid_shop_name(shop: str) -> bool:
    """Whether ``shop`` is a bare shop name (no suffix, scheme or path)."""
    return bool(_SHOP_NAME_PATTERN.fullmatch(shop))


def shop_origin(shop: str) -> str:
    """``https://`` origin for a bare shop name or a full shop domain."""
    shop = strip_shop_domain(shop)
    return f"https://{shop}{SHOP_DOMAIN_SUFFIX}"
