"""URL splitting that tolerates client-controlled input.

Frameworks build the request URL from the ``Host`` header, so it can be
malformed (``https://[bad/path``). ``urlsplit`` raises on such input; these
helpers report it as None instead.
"""

from __future__ import annotations

from urllib.parse import SplitResult, urlsplit


def split_url(url: str) -> SplitResult | None:
    """``urlsplit`` returning None for URLs it cannot parse.

    Example:
        >>> split_url("https://[bad/apps") is None
        True
    """
    try:
        return urlsplit(url)
    except ValueError:
        return None


def url_query(url: str) -> str:
    """Raw query string of ``url``, empty when the URL cannot be parsed."""
    parts = split_url(url)
    return parts.query if parts is not None else ""
