"""Case-insensitive access to inbound request headers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any


def normalize_headers(headers: Mapping[str, Any]) -> dict[str, str]:
    """Lower-case header names for case-insensitive lookup.

    Frameworks hand over headers with arbitrary casing, and some represent
    repeated headers as lists. List values collapse to their first element.

    Args:
        headers: Mapping of header name to value or list of values.

    Returns:
        Dict keyed by lower-cased header name.

    Example:
        >>> normalize_headers({"X-Shopify-Hmac-SHA256": ["abc", "def"]})
        {'x-shopify-hmac-sha256': 'abc'}
    """
    normalized: dict[str, str] = {}
    for key, value in headers.items():
        if isinstance(value, (list, tuple)):
            value = value[0] if value else ""
        normalized[str(key).lower()] = "" if value is None else str(value)
    return normalized


def first_header(headers: Mapping[str, str], names: Iterable[str]) -> str | None:
    """Return the value of the first header in ``names`` that is present.

    ``headers`` must already be normalized.
    """
    for name in names:
        if name in headers:
            return headers[name]
    return None


def merge_headers(defaults: Mapping[str, str], overrides: Mapping[str, str]) -> dict[str, str]:
    """Overlay ``overrides`` on ``defaults``, matching names case-insensitively.

    The override's spelling of a name wins.

    Example:
        >>> merge_headers({"User-Agent": "lib"}, {"user-agent": "app"})
        {'user-agent': 'app'}
    """
    merged = dict(defaults)
    for name, value in overrides.items():
        for existing in [key for key in merged if key.lower() == name.lower()]:
            del merged[existing]
        merged[name] = value
    return merged
