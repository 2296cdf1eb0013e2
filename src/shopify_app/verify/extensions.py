"""Verification of UI extension requests authenticated with a bearer ID token.

Checkout and customer account UI extensions receive non-exchangeable tokens:
they prove who is calling but cannot be traded for an access token. Admin
and POS UI extensions receive exchangeable tokens; failures on those surfaces
carry ``X-Shopify-Retry-Invalid-Session-Request: 1`` so the host can mint a
fresh token and retry.

Flow per request:

1. Structural checks (500 ``configuration_error``)
2. CORS preflight: ``OPTIONS`` from a different origin is answered with 204
3. ``Authorization`` header required (401 ``missing_authorization_header``)
4. Bearer scheme required (401 ``invalid_id_token``)
5. Signature and expiry (401 ``invalid_id_token`` / ``expired_id_token``)
6. Audience (401 ``invalid_aud``)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from shopify_app.exceptions import IdTokenError
from shopify_app.logging import get_logger
from shopify_app.types import (
    AppConfig,
    ExchangeableIdTokenResult,
    IdToken,
    LogWithReq,
    NonExchangeableIdTokenResult,
    RequestInput,
    ResponseInfo,
)
from shopify_app.utils.headers import normalize_headers
from shopify_app.utils.shop import strip_shop_domain
from shopify_app.verify.id_token import (
    INVALID_AUD_DETAIL,
    INVALID_ID_TOKEN_DETAIL,
    MISSING_AUTHORIZATION_DETAIL,
    RETRY_INVALID_SESSION_HEADER,
    audience_matches,
    bearer_token,
    decode_id_token,
    retry_invalid_session_headers,
)

logger = get_logger(__name__)

CORS_MAX_AGE = "7200"
CORS_ALLOW_HEADERS = "Authorization, Content-Type"
REAUTHORIZE_URL_HEADER = "X-Shopify-API-Request-Failure-Reauthorize-Url"


@dataclass(frozen=True, slots=True)
class ExtensionSurface:
    """A UI extension surface that authenticates with a bearer ID token.

    Attributes:
        request_type: Label used in log details.
        exchangeable: Whether tokens from this surface may be exchanged.
        cors_expose_header: Header exposed to the extension in CORS preflight.
    """

    request_type: str
    exchangeable: bool
    cors_expose_header: str


CHECKOUT_UI_EXTENSION = ExtensionSurface(
    "Checkout UI Extension", exchangeable=False, cors_expose_header=REAUTHORIZE_URL_HEADER
)
CUSTOMER_ACCOUNT_UI_EXTENSION = ExtensionSurface(
    "Customer Account UI Extension", exchangeable=False, cors_expose_header=REAUTHORIZE_URL_HEADER
)
ADMIN_UI_EXTENSION = ExtensionSurface(
    "Admin UI Extension", exchangeable=True, cors_expose_header=RETRY_INVALID_SESSION_HEADER
)
POS_UI_EXTENSION = ExtensionSurface(
    "POS UI Extension", exchangeable=True, cors_expose_header=RETRY_INVALID_SESSION_HEADER
)


@dataclass(frozen=True, slots=True)
class _Outcome:
    ok: bool
    code: str
    detail: str
    response: ResponseInfo
    token: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


def _claim_str(claims: Mapping[str, Any], name: str) -> str:
    value = claims.get(name)
    return value if isinstance(value, str) else ""


def _cors_preflight_headers(surface: ExtensionSurface) -> dict[str, str]:
    return {
        "Access-Control-Max-Age": CORS_MAX_AGE,
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Expose-Headers": surface.cors_expose_header,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }


def _check(config: AppConfig, req: RequestInput, surface: ExtensionSurface) -> _Outcome:
    def failure(code: str, detail: str, status: int = 401, retry: bool = True) -> _Outcome:
        headers = retry_invalid_session_headers() if surface.exchangeable and retry else {}
        body = "Unauthorized" if status == 401 else ""
        return _Outcome(False, code, detail, ResponseInfo(status, body, headers))

    if not isinstance(req.method, str) or not req.method:
        return failure(
            "configuration_error", "Expected request.method to be a non-empty string", 500, False
        )
    if not isinstance(req.headers, Mapping):
        return failure(
            "configuration_error", "Expected request.headers to be an object", 500, False
        )
    if surface.exchangeable and (not isinstance(req.url, str) or not req.url):
        return failure(
            "configuration_error", "Expected request.url to be a non-empty string", 500, False
        )

    headers = normalize_headers(req.headers)
    if req.method == "OPTIONS":
        origin = headers.get("origin", "")
        if origin and origin != req.url:
            return _Outcome(
                True,
                "options_request",
                "OPTIONS request handled for CORS preflight. "
                "Respond 204 No Content using the provided response.",
                ResponseInfo(204, "", _cors_preflight_headers(surface)),
            )

    authorization = headers.get("authorization")
    if authorization is None:
        return failure("missing_authorization_header", MISSING_AUTHORIZATION_DETAIL, retry=False)

    token = bearer_token(authorization)
    if token is None:
        return failure("invalid_id_token", INVALID_ID_TOKEN_DETAIL)

    try:
        claims = decode_id_token(token, config)
    except IdTokenError as exc:
        return failure(exc.code, exc.message)

    if not audience_matches(claims, config):
        return failure("invalid_aud", INVALID_AUD_DETAIL)

    return _Outcome(
        True,
        "verified",
        f"{surface.request_type} request verified. Proceed with business logic.",
        ResponseInfo(200),
        token=token,
        claims=claims,
    )


def verify_non_exchangeable(
    config: AppConfig,
    req: RequestInput,
    surface: ExtensionSurface,
) -> NonExchangeableIdTokenResult:
    """Verify a checkout or customer account UI extension request."""
    outcome = _check(config, req, surface)
    log = LogWithReq(code=outcome.code, detail=outcome.detail, req=req.as_dict())
    if outcome.token is None:
        _log_outcome(surface, outcome, None)
        return NonExchangeableIdTokenResult(
            ok=outcome.ok, shop=None, id_token=None, log=log, response=outcome.response
        )

    shop = strip_shop_domain(_claim_str(outcome.claims, "dest")) or None
    _log_outcome(surface, outcome, shop)
    return NonExchangeableIdTokenResult(
        ok=True,
        shop=shop,
        id_token=IdToken(exchangeable=False, token=outcome.token, claims=outcome.claims),
        log=log,
        response=outcome.response,
    )


def verify_exchangeable(
    config: AppConfig,
    req: RequestInput,
    surface: ExtensionSurface,
) -> ExchangeableIdTokenResult:
    """Verify an admin or POS UI extension request.

    On success ``new_id_token_response`` is a 401 carrying the retry header.
    Relay it when a later Admin API call rejects the exchanged access token.
    """
    outcome = _check(config, req, surface)
    log = LogWithReq(code=outcome.code, detail=outcome.detail, req=req.as_dict())
    if outcome.token is None:
        _log_outcome(surface, outcome, None)
        return ExchangeableIdTokenResult(
            ok=outcome.ok,
            shop=None,
            id_token=None,
            user_id=None,
            new_id_token_response=None,
            log=log,
            response=outcome.response,
        )

    shop = strip_shop_domain(_claim_str(outcome.claims, "dest")) or None
    _log_outcome(surface, outcome, shop)
    return ExchangeableIdTokenResult(
        ok=True,
        shop=shop,
        id_token=IdToken(exchangeable=True, token=outcome.token, claims=outcome.claims),
        user_id=_claim_str(outcome.claims, "sub") or None,
        new_id_token_response=ResponseInfo(401, "", retry_invalid_session_headers()),
        log=log,
        response=outcome.response,
    )


def _log_outcome(surface: ExtensionSurface, outcome: _Outcome, shop: str | None) -> None:
    if outcome.ok:
        logger.debug(
            "extension_request_verified",
            request_type=surface.request_type,
            code=outcome.code,
            shop=shop,
        )
    else:
        logger.info(
            "extension_verification_failed",
            request_type=surface.request_type,
            code=outcome.code,
        )
