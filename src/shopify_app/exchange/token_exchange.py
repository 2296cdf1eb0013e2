"""Token exchange: trade an exchangeable ID token for an Admin API access token.

Request flow:
1. Validate inputs (500 ``configuration_error``; always a caller bug)
2. POST the token-exchange grant to ``https://{shop}.myshopify.com/admin/oauth/access_token``
3. On 429, wait ``Retry-After`` seconds and retry, at most twice
4. Classify the outcome

Error classification:
- ``invalid_subject_token`` -> 401 (or the caller's ``invalid_token_response``)
- ``invalid_client`` -> 500 (wrong secret or app uninstalled)
- other OAuth errors -> 500 ``exchange_error``
- transport failures -> 500 ``network_error``, never retried
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from typing import Any

import httpx

from shopify_app.logging import REDACTED_VALUE, get_logger
from shopify_app.types import (
    AccessMode,
    AppConfig,
    HttpLog,
    IdToken,
    Log,
    ResponseInfo,
    TokenExchangeAccessToken,
    TokenExchangeResult,
)
from shopify_app.utils import retry
from shopify_app.utils.converters import to_associated_user, to_id_token, to_response_info
from shopify_app.utils.http import (
    DEFAULT_TIMEOUT,
    client_scope,
    json_request_headers,
    parse_json_object,
    request_snapshot,
    response_snapshot,
)
from shopify_app.utils.shop import SHOP_DOMAIN_SUFFIX, strip_shop_domain

logger = get_logger(__name__)

TOKEN_EXCHANGE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"
MAX_RETRIES = 2

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

SUCCESS_DETAIL = (
    "Token exchange successful. Store the access token and proceed with business logic."
)
RATE_LIMIT_EXCEEDED_DETAIL = (
    "Max retries reached after rate limiting. "
    "Respond 429 Too Many Requests using the provided response."
)
INVALID_SUBJECT_TOKEN_DETAIL = (
    "The ID token is invalid. Respond 401 Unauthorized using the provided response."
)
INVALID_CLIENT_DETAIL = (
    "Client credentials are invalid or the app has been uninstalled. "
    "Respond 500 Internal Server Error using the provided response."
)
NETWORK_ERROR_DETAIL = (
    "Network error occurred during token exchange. "
    "Respond 500 Internal Server Error using the provided response."
)


def requested_token_type(access_mode: str) -> str:
    return f"urn:shopify:params:oauth:token-type:{access_mode}-access-token"


def expires_at(seconds: Any, now: float | None = None) -> str | None:
    """UTC timestamp ``seconds`` from now, or None when ``seconds`` is absent.

    Example:
        >>> expires_at(60, now=0)
        '1970-01-01T00:01:00Z'
    """
    if seconds is None:
        return None
    try:
        delta = int(seconds)
    except (TypeError, ValueError):
        return None
    moment = (time.time() if now is None else now) + delta
    return time.strftime(TIMESTAMP_FORMAT, time.gmtime(moment))


def _failure(
    code: str,
    detail: str,
    status: int = 500,
    shop: str | None = None,
    http_logs: list[HttpLog] | None = None,
    response: ResponseInfo | None = None,
) -> TokenExchangeResult:
    return TokenExchangeResult(
        ok=False,
        shop=shop,
        access_token=None,
        log=Log(code=code, detail=detail),
        http_logs=tuple(http_logs or ()),
        response=response or ResponseInfo(status),
    )


def _config_error(detail: str) -> TokenExchangeResult:
    logger.error("token_exchange_configuration_error", detail=detail)
    return _failure("configuration_error", detail)


def _validate(
    config: AppConfig,
    access_mode: Any,
    id_token: IdToken | Mapping[str, Any] | None,
) -> TokenExchangeResult | IdToken:
    if not config.client_id:
        return _config_error("Expected clientId to be a non-empty string, but got ''")
    if not access_mode:
        return _config_error("Expected access mode to be 'online' or 'offline', but got ''")
    if access_mode not in (AccessMode.ONLINE, AccessMode.OFFLINE):
        return _config_error(
            f"Expected access mode to be 'online' or 'offline', but got '{access_mode}'"
        )
    if id_token is None:
        return _config_error(
            "Expected idToken to be an object with exchangeable, token, and claims properties"
        )
    if isinstance(id_token, Mapping) and not isinstance(id_token.get("token"), str):
        return _config_error("Expected idToken.token to be a non-empty string")

    normalized = to_id_token(id_token)
    if normalized is None:
        return _config_error(
            "Expected idToken to be an object with exchangeable, token, and claims properties"
        )
    if not normalized.exchangeable:
        return _config_error(
            "ID token is not exchangeable. Only App Home, Admin UI extension "
            "& POS UI Extension Id tokens can be exchanged."
        )
    if not normalized.token or not isinstance(normalized.token, str):
        return _config_error("Expected idToken.token to be a non-empty string")

    dest = normalized.claims.get("dest")
    if not dest or not isinstance(dest, str):
        return _config_error("Expected idToken.claims.dest to be a non-empty string")
    if SHOP_DOMAIN_SUFFIX not in dest:
        return _config_error(
            "Expected idToken.claims.dest to be a valid shop URL "
            "(e.g., 'https://shop.myshopify.com' or 'shop.myshopify.com')"
        )
    return normalized


def _access_token_from(
    data: Mapping[str, Any], shop: str, access_mode: str
) -> TokenExchangeAccessToken:
    user = None
    associated_user = data.get("associated_user")
    if access_mode == AccessMode.ONLINE and isinstance(associated_user, Mapping):
        user = to_associated_user(
            {**associated_user, "scope": data.get("associated_user_scope", "")}
        )
    return TokenExchangeAccessToken(
        access_mode=str(access_mode),
        shop=shop,
        token=str(data.get("access_token", "")),
        expires=expires_at(data.get("expires_in")),
        scope=str(data.get("scope", "")),
        refresh_token=str(data.get("refresh_token", "")),
        refresh_token_expires=expires_at(data.get("refresh_token_expires_in")),
        user=user,
    )


async def exchange_using_token_exchange(
    config: AppConfig,
    access_mode: str,
    id_token: IdToken | Mapping[str, Any] | None,
    invalid_token_response: ResponseInfo | Mapping[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> TokenExchangeResult:
    """Exchange an ID token for an online or offline access token.

    Args:
        config: App credentials.
        access_mode: ``"online"`` (bound to the staff member in ``sub``) or
            ``"offline"`` (app-level).
        id_token: Exchangeable ID token from an admin home, admin UI extension
            or POS UI extension verification.
        invalid_token_response: Response to relay when the platform rejects
            the ID token, usually the verifier's ``new_id_token_response``.
        client: Optional shared httpx.AsyncClient (caller manages lifecycle).
        timeout: Timeout for a per-call client when ``client`` is omitted.

    Returns:
        TokenExchangeResult; ``access_token`` is set when ``ok`` is True.
    """
    validated = _validate(config, access_mode, id_token)
    if isinstance(validated, TokenExchangeResult):
        return validated

    dest = str(validated.claims["dest"])
    shop_url = dest if dest.startswith("https://") else f"https://{dest}"
    shop = strip_shop_domain(dest)
    endpoint = f"{shop_url}/admin/oauth/access_token"

    payload = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "grant_type": TOKEN_EXCHANGE_GRANT_TYPE,
        "subject_token": validated.token,
        "subject_token_type": ID_TOKEN_TYPE,
        "requested_token_type": requested_token_type(access_mode),
        "expiring": 1,
    }
    headers = json_request_headers()
    logged_req = request_snapshot(
        "POST", endpoint, headers, json.dumps({**payload, "client_secret": REDACTED_VALUE})
    )

    http_logs: list[HttpLog] = []
    attempt = 0
    async with client_scope(client, timeout) as http:
        while True:
            try:
                response = await http.post(endpoint, content=json.dumps(payload), headers=headers)
            except httpx.HTTPError as exc:
                logger.warning("token_exchange_network_error", shop=shop, error=type(exc).__name__)
                http_logs.append(
                    HttpLog("network_error", NETWORK_ERROR_DETAIL, logged_req, ResponseInfo(0))
                )
                return _failure(
                    "network_error", NETWORK_ERROR_DETAIL, shop=shop, http_logs=http_logs
                )

            res = response_snapshot(response)
            status = response.status_code

            if status == 200:
                http_logs.append(HttpLog("success", SUCCESS_DETAIL, logged_req, res))
                access_token = _access_token_from(parse_json_object(response), shop, access_mode)
                logger.info("token_exchange_succeeded", shop=shop, access_mode=access_mode)
                return TokenExchangeResult(
                    ok=True,
                    shop=shop,
                    access_token=access_token,
                    log=Log("success", SUCCESS_DETAIL),
                    http_logs=tuple(http_logs),
                    response=ResponseInfo(200),
                )

            if status == 429 and attempt < MAX_RETRIES:
                delay = retry.retry_after_seconds(response)
                http_logs.append(
                    HttpLog(
                        "rate_limited_retry",
                        f"Rate limited. Retrying after {delay} seconds.",
                        logged_req,
                        res,
                    )
                )
                logger.info("token_exchange_retry", shop=shop, attempt=attempt, delay=delay)
                await retry.wait(delay)
                attempt += 1
                continue

            if status == 429:
                http_logs.append(
                    HttpLog("rate_limit_exceeded", RATE_LIMIT_EXCEEDED_DETAIL, logged_req, res)
                )
                logger.warning("token_exchange_rate_limited", shop=shop)
                return _failure(
                    "rate_limit_exceeded",
                    RATE_LIMIT_EXCEEDED_DETAIL,
                    shop=shop,
                    http_logs=http_logs,
                    response=ResponseInfo(
                        429,
                        json.dumps({"error": "Too many requests"}),
                        {"Content-Type": "application/json"},
                    ),
                )

            data = parse_json_object(response)
            return _error_result(data, shop, invalid_token_response, http_logs, logged_req, res)


def _error_result(
    data: Mapping[str, Any],
    shop: str,
    invalid_token_response: ResponseInfo | Mapping[str, Any] | None,
    http_logs: list[HttpLog],
    logged_req: dict[str, Any],
    res: ResponseInfo,
) -> TokenExchangeResult:
    error = data.get("error") or "unknown_error"

    if error == "invalid_subject_token":
        code, detail = "invalid_subject_token", INVALID_SUBJECT_TOKEN_DETAIL
        response = to_response_info(invalid_token_response) or ResponseInfo(401)
    elif error == "invalid_client":
        code, detail = "invalid_client", INVALID_CLIENT_DETAIL
        response = ResponseInfo(500)
    else:
        code = "exchange_error"
        detail = (
            f"Token exchange failed with error: {error}. "
            "Respond 500 Internal Server Error using the provided response."
        )
        response = ResponseInfo(500)

    http_logs.append(HttpLog(code, detail, logged_req, res))
    logger.warning("token_exchange_failed", shop=shop, code=code, status=res.status)
    return _failure(code, detail, shop=shop, http_logs=http_logs, response=response)
