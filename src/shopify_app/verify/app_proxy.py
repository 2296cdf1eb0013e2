"""App proxy signature verification.

Storefront requests forwarded through an app proxy carry a ``signature``
query parameter: the hex HMAC-SHA256 of the remaining query parameters in
canonical form. The canonical form sorts parameters by key and concatenates
``key=value`` pairs with no separator; repeated keys are joined with commas.

Example:
    ``?shop=test-shop.myshopify.com&path_prefix=/apps/x&timestamp=1700000000``
    canonicalizes to
    ``path_prefix=/apps/xshop=test-shop.myshopify.comtimestamp=1700000000``.
"""

from __future__ import annotations

import hashlib
import hmac
import math
import re
import time
from urllib.parse import unquote_plus

from shopify_app.logging import get_logger
from shopify_app.types import AppConfig, AppProxyResult, LogWithReq, RequestInput, ResponseInfo
from shopify_app.utils.shop import strip_shop_domain
from shopify_app.utils.urls import url_query

logger = get_logger(__name__)

MAX_TIMESTAMP_AGE_SECONDS = 90

_NUMERIC = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")

QueryParams = dict[str, str | list[str]]


def parse_proxy_query(query: str) -> QueryParams:
    """Parse a raw query string without collapsing repeated keys.

    Pairs without ``=`` are skipped. Keys are kept verbatim after decoding,
    so ``extra[]`` stays ``extra[]``.

    Example:
        >>> parse_proxy_query("a=1&b=2&a=3&flag")
        {'a': ['1', '3'], 'b': '2'}
    """
    params: QueryParams = {}
    if not query:
        return params
    for pair in query.split("&"):
        if "=" not in pair:
            continue
        raw_key, raw_value = pair.split("=", 1)
        key = unquote_plus(raw_key)
        value = unquote_plus(raw_value)
        existing = params.get(key)
        if existing is None:
            params[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            params[key] = [existing, value]
    return params


def canonical_param_string(params: QueryParams) -> str:
    """Canonical string signed by the platform (``signature`` must already be removed)."""
    parts = []
    for key in sorted(params):
        value = params[key]
        if isinstance(value, list):
            value = ",".join(value)
        parts.append(f"{key}={value}")
    return "".join(parts)


def compute_proxy_signature(params: QueryParams, secret: str) -> str:
    """Hex HMAC-SHA256 of the canonical parameter string."""
    message = canonical_param_string(params).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _parse_timestamp(value: str | list[str]) -> int | None:
    if not isinstance(value, str) or not _NUMERIC.match(value):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return int(number)


def _scalar(value: str | list[str] | None) -> str | None:
    if isinstance(value, list):
        return ",".join(value)
    return value


def _failure(req: RequestInput, code: str, detail: str, status: int = 401) -> AppProxyResult:
    logger.info("app_proxy_verification_failed", code=code)
    return AppProxyResult(
        ok=False,
        shop=None,
        logged_in_customer_id=None,
        log=LogWithReq(code=code, detail=detail, req=req.as_dict()),
        response=ResponseInfo(status=status, body="Unauthorized" if status == 401 else ""),
    )


def verify_app_proxy(config: AppConfig, req: RequestInput) -> AppProxyResult:
    """Verify an app proxy request from its query string.

    Args:
        config: App credentials.
        req: Inbound request; only ``url`` is inspected.

    Returns:
        AppProxyResult carrying the shop and, when a customer is logged in to
        the storefront, their customer ID.
    """
    if not isinstance(req.url, str) or not req.url:
        return _failure(
            req, "configuration_error", "Expected request.url to be a non-empty string", 500
        )

    params = parse_proxy_query(url_query(req.url))

    if "timestamp" not in params:
        return _failure(
            req,
            "missing_timestamp",
            "Required `timestamp` query parameter is missing. "
            "Respond 401 Unauthorized using the provided response.",
        )
    timestamp = _parse_timestamp(params["timestamp"])
    if timestamp is None:
        return _failure(
            req,
            "invalid_timestamp",
            "The `timestamp` query parameter is not a valid integer. "
            "Respond 401 Unauthorized using the provided response.",
        )
    if abs(int(time.time()) - timestamp) > MAX_TIMESTAMP_AGE_SECONDS:
        return _failure(
            req,
            "timestamp_too_old",
            "The `timestamp` query parameter is more than 90 seconds old. "
            "Respond 401 Unauthorized using the provided response.",
        )

    received = params.pop("signature", None)
    if not isinstance(received, str):
        return _failure(
            req,
            "missing_signature",
            "Required `signature` query parameter is missing. "
            "Respond 401 Unauthorized using the provided response.",
        )

    received_bytes = received.encode("utf-8")
    valid = any(
        hmac.compare_digest(compute_proxy_signature(params, secret).encode("ascii"), received_bytes)
        for secret in config.secrets
    )
    if not valid:
        return _failure(
            req,
            "invalid_signature",
            "`signature` query parameter does not match the expected HMAC. "
            "Respond 401 Unauthorized using the provided response.",
        )

    shop = strip_shop_domain(_scalar(params.get("shop")) or "") or None
    logger.debug("app_proxy_verified", shop=shop)
    return AppProxyResult(
        ok=True,
        shop=shop,
        logged_in_customer_id=_scalar(params.get("logged_in_customer_id")),
        log=LogWithReq(
            code="verified",
            detail="App Proxy request verified successfully. Proceed with business logic.",
            req=req.as_dict(),
        ),
        response=ResponseInfo(status=200),
    )
