"""Body HMAC verification for webhook and Flow action requests.

The platform signs the raw request body with the app's client secret and
sends ``base64(HMAC-SHA256(body, secret))`` in a header. Verification order:

1. Structural checks on the request (caller bugs, 500 ``configuration_error``)
2. Method must be POST (405 ``post_method_expected``)
3. An accepted HMAC header must be present (400 ``missing_hmac_header``)
4. Constant-time comparison with the current secret, then the old secret
   (401 ``invalid_hmac``)
5. Shop extracted from the shop-domain header (200 ``verified``)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass

from shopify_app.logging import get_logger
from shopify_app.types import AppConfig, LogWithReq, RequestInput, RequestResult, ResponseInfo
from shopify_app.utils.headers import first_header, normalize_headers
from shopify_app.utils.shop import strip_shop_domain

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class BodyHmacSurface:
    """Request surface signed with a body HMAC.

    Attributes:
        request_type: Label used in log details (e.g. "Webhook").
        hmac_headers: Accepted HMAC header names, first match wins.
        shop_headers: Accepted shop-domain header names, first match wins.
    """

    request_type: str
    hmac_headers: tuple[str, ...]
    shop_headers: tuple[str, ...]


WEBHOOK = BodyHmacSurface(
    request_type="Webhook",
    hmac_headers=("x-shopify-hmac-sha256", "shopify-hmac-sha256"),
    shop_headers=("x-shopify-shop-domain", "shopify-shop-domain"),
)

FLOW_ACTION = BodyHmacSurface(
    request_type="Flow action",
    hmac_headers=("x-shopify-hmac-sha256",),
    shop_headers=("x-shopify-shop-domain",),
)


def compute_body_hmac(body: bytes, secret: str) -> str:
    """Base64-encoded HMAC-SHA256 of ``body`` keyed with ``secret``.

    Example:
        >>> len(compute_body_hmac(b"{}", "secret"))
        44
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def _matches_any_secret(body: bytes, received: str, config: AppConfig) -> bool:
    received_bytes = received.encode("utf-8")
    for secret in config.secrets:
        expected = compute_body_hmac(body, secret).encode("ascii")
        if hmac.compare_digest(expected, received_bytes):
            return True
    return False


def _result(
    req: RequestInput,
    code: str,
    detail: str,
    status: int,
    body: str = "",
    shop: str | None = None,
) -> RequestResult:
    return RequestResult(
        ok=code == "verified",
        shop=shop,
        log=LogWithReq(code=code, detail=detail, req=req.as_dict()),
        response=ResponseInfo(status=status, body=body),
    )


def verify_body_hmac(
    config: AppConfig,
    req: RequestInput,
    surface: BodyHmacSurface,
) -> RequestResult:
    """Verify a body-HMAC-signed request.

    Args:
        config: App credentials.
        req: Inbound request; ``body`` must be the raw, unparsed body.
        surface: Surface definition (header names and log label).

    Returns:
        RequestResult. On failure ``response`` is ready to relay.
    """
    if not isinstance(req.method, str) or not req.method:
        return _result(
            req, "configuration_error", "Expected request.method to be a non-empty string", 500
        )
    if not isinstance(req.headers, Mapping):
        return _result(req, "configuration_error", "Expected request.headers to be an object", 500)
    if not isinstance(req.body, (str, bytes)):
        return _result(req, "configuration_error", "Expected request.body to be a string", 500)

    request_type = surface.request_type
    if req.method != "POST":
        result = _result(
            req,
            "post_method_expected",
            f"{request_type} requests are expected to use the POST method. "
            "Respond 405 Method Not Allowed using the provided response.",
            405,
            body="Method not allowed",
        )
        logger.info(
            "body_hmac_verification_failed", request_type=request_type, code=result.log.code
        )
        return result

    headers = normalize_headers(req.headers)
    received = first_header(headers, surface.hmac_headers)
    if received is None:
        result = _result(
            req,
            "missing_hmac_header",
            "Required `X-Shopify-Hmac-SHA256` header is missing. "
            "Respond 400 Bad Request using the provided response.",
            400,
            body="Bad Request",
        )
        logger.info(
            "body_hmac_verification_failed", request_type=request_type, code=result.log.code
        )
        return result

    body = req.body.encode("utf-8") if isinstance(req.body, str) else req.body
    if not _matches_any_secret(body, received, config):
        result = _result(
            req,
            "invalid_hmac",
            "`X-Shopify-Hmac-SHA256` header value does not match the body's HMAC. "
            "Respond 401 Unauthorized using the provided response.",
            401,
            body="Unauthorized",
        )
        logger.warning(
            "body_hmac_verification_failed", request_type=request_type, code=result.log.code
        )
        return result

    shop = strip_shop_domain(first_header(headers, surface.shop_headers) or "") or None
    logger.debug("body_hmac_verified", request_type=request_type, shop=shop)
    return _result(
        req,
        "verified",
        f"{request_type} request verified successfully. "
        "Respond 200 OK using the provided response.",
        200,
        shop=shop,
    )


def verify_webhook(config: AppConfig, req: RequestInput) -> RequestResult:
    """Verify a webhook delivery (accepts legacy unprefixed header names)."""
    return verify_body_hmac(config, req, WEBHOOK)


def verify_flow_action(config: AppConfig, req: RequestInput) -> RequestResult:
    """Verify a Flow action request (``X-Shopify-*`` header names only)."""
    return verify_body_hmac(config, req, FLOW_ACTION)
