"""Admin home (embedded app page) request verification.

Two request shapes reach an embedded app:

- **document** requests load the app inside the admin iframe. They carry no
  ``Authorization`` header; the ID token arrives as the ``id_token`` query
  parameter. A missing or stale token is answered with a redirect to the
  app's patch-ID-token page, which mints a fresh token and reloads the
  original path (carried in ``shopify-reload``).
- **fetch** requests are made by the loaded app through App Bridge with an
  ``Authorization: Bearer`` header. Failures are answered with 401 and the
  retry header so App Bridge retries with a fresh token.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, quote

from shopify_app.exceptions import IdTokenError
from shopify_app.logging import get_logger
from shopify_app.types import (
    AppConfig,
    ExchangeableIdTokenResult,
    IdToken,
    LogWithReq,
    RequestInput,
    ResponseInfo,
)
from shopify_app.utils.headers import normalize_headers
from shopify_app.utils.shop import ADMIN_ORIGIN, SHOP_DOMAIN_SUFFIX, shop_hostname
from shopify_app.utils.urls import split_url
from shopify_app.verify.id_token import (
    INVALID_AUD_DETAIL,
    INVALID_ID_TOKEN_DETAIL,
    audience_matches,
    bearer_token,
    decode_id_token,
    retry_invalid_session_headers,
)

logger = get_logger(__name__)

RELOAD_PARAM = "shopify-reload"

PRELOAD_LINK_HEADER = (
    '<https://cdn.shopify.com>; rel="preconnect", '
    '<https://cdn.shopify.com/shopifycloud/app-bridge.js>; rel="preload"; as="script", '
    '<https://cdn.shopify.com/shopifycloud/polaris.js>; rel="preload"; as="script"'
)


def document_headers(hostname: str) -> dict[str, str]:
    """Headers a verified document response must carry.

    The CSP restricts framing to the shop's admin and the unified admin.
    """
    return {
        "Content-Security-Policy": f"frame-ancestors https://{hostname} {ADMIN_ORIGIN};",
        "Link": PRELOAD_LINK_HEADER,
    }


def patch_id_token_location(url: str, patch_path: str) -> str:
    """Location of the patch-ID-token page for a document request.

    Query parameters other than ``id_token`` are kept, and ``shopify-reload``
    points back at the original path with those same parameters. Parameter
    values are written back decoded so base64 padding survives.

    Raises:
        ValueError: If ``url`` cannot be parsed.

    Example:
        >>> patch_id_token_location(
        ...     "https://a.io/orders?shop=s&host=YQ==&id_token=x", "/patch"
        ... )
        'https://a.io/patch?shop=s&host=YQ==&shopify-reload=%2Forders%3Fshop%3Ds%26host%3DYQ%3D%3D'
    """
    parts = split_url(url)
    if parts is None:
        raise ValueError(f"Cannot build a patch ID token location from {url!r}")
    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    params.pop("id_token", None)
    pairs = [f"{key}={value}" for key, value in params.items()]
    reload_path = parts.path + ("?" + "&".join(pairs) if pairs else "")
    query = "&".join([*pairs, f"{RELOAD_PARAM}={quote(reload_path, safe='')}"])
    return f"{parts.scheme}://{parts.netloc}{patch_path}?{query}"


def _result(
    req: RequestInput,
    code: str,
    detail: str,
    response: ResponseInfo,
) -> ExchangeableIdTokenResult:
    logger.info("app_home_verification_failed", code=code, status=response.status)
    return ExchangeableIdTokenResult(
        ok=False,
        shop=None,
        id_token=None,
        user_id=None,
        new_id_token_response=None,
        log=LogWithReq(code=code, detail=detail, req=req.as_dict()),
        response=response,
    )


def _config_error(req: RequestInput, detail: str) -> ExchangeableIdTokenResult:
    return _result(req, "configuration_error", detail, ResponseInfo(500))


def _redirect(req: RequestInput, patch_path: str) -> ExchangeableIdTokenResult:
    location = patch_id_token_location(req.url, patch_path)
    return _result(
        req,
        "redirect_to_patch_id_token_page",
        "Embedded app without id_token. Redirect to the patch ID token page "
        "to obtain a new token using the provided response.",
        ResponseInfo(302, "", {"Location": location}),
    )


def verify_app_home(
    config: AppConfig,
    req: RequestInput,
    patch_id_token_path: Any,
) -> ExchangeableIdTokenResult:
    """Verify a document or fetch request to the embedded app.

    Args:
        config: App credentials.
        req: Inbound request.
        patch_id_token_path: Path of the app's patch-ID-token page, e.g.
            ``/auth/patch-id-token``.

    Returns:
        ExchangeableIdTokenResult. For verified document requests
        ``response.headers`` must be copied onto the page response.
    """
    if not isinstance(patch_id_token_path, str):
        return _config_error(req, "Expected appHomePatchIdTokenPath to be a non-empty string")
    if not patch_id_token_path:
        return _config_error(
            req, "Expected appHomePatchIdTokenPath to be a non-empty string, but got ''"
        )
    if not isinstance(req.url, str) or not req.url:
        return _config_error(req, "Expected request.url to be a non-empty string")
    if not isinstance(req.headers, Mapping):
        return _config_error(req, "Expected request.headers to be an object")

    headers = normalize_headers(req.headers)
    authorization = headers.get("authorization", "")
    is_document = not authorization

    if is_document:
        parts = split_url(req.url)
        if parts is None:
            return _config_error(req, "Expected request.url to be a valid URL")
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        token = query.get("id_token", "")
        if not token:
            return _redirect(req, patch_id_token_path)
    else:
        token = bearer_token(authorization)
        if token is None:
            return _result(
                req,
                "invalid_id_token",
                INVALID_ID_TOKEN_DETAIL,
                ResponseInfo(401, "Unauthorized", retry_invalid_session_headers()),
            )
        if not token:
            return _result(
                req,
                "missing_authorization_and_id_token",
                "Neither Authorization header nor id_token query parameter present. "
                "Respond 401 Unauthorized using the provided response.",
                ResponseInfo(401, "Unauthorized"),
            )

    try:
        claims = decode_id_token(token, config)
    except IdTokenError as exc:
        if is_document:
            return _redirect(req, patch_id_token_path)
        return _result(
            req,
            exc.code,
            exc.message,
            ResponseInfo(401, "Unauthorized", retry_invalid_session_headers()),
        )

    if not audience_matches(claims, config):
        return _result(
            req,
            "invalid_aud",
            INVALID_AUD_DETAIL,
            ResponseInfo(
                401, "Unauthorized", {} if is_document else retry_invalid_session_headers()
            ),
        )

    dest = claims.get("dest")
    hostname = shop_hostname(dest) if isinstance(dest, str) else ""
    shop = hostname.replace(SHOP_DOMAIN_SUFFIX, "") or None
    sub = claims.get("sub")

    if is_document:
        response = ResponseInfo(200, "", document_headers(hostname))
        new_id_token_response = ResponseInfo(
            302, "", {"Location": patch_id_token_location(req.url, patch_id_token_path)}
        )
        detail = (
            "App Home request verified. Proceed with business logic."
            "  Include the headers in the provided response."
        )
    else:
        response = ResponseInfo(200)
        new_id_token_response = ResponseInfo(401, "", retry_invalid_session_headers())
        detail = "App Home request verified. Proceed with business logic."

    logger.debug("app_home_request_verified", shop=shop, document=is_document)
    return ExchangeableIdTokenResult(
        ok=True,
        shop=shop,
        id_token=IdToken(exchangeable=True, token=token, claims=claims),
        user_id=sub if isinstance(sub, str) and sub else None,
        new_id_token_response=new_id_token_response,
        log=LogWithReq(code="verified", detail=detail, req=req.as_dict()),
        response=response,
    )
