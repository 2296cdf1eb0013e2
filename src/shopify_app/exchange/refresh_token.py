"""Refresh an expiring access token obtained through token exchange.

Two checks run before any network call:

- the refresh token itself has expired -> 401 ``refresh_token_expired``
  (the merchant must open the app again to get a new ID token)
- the access token is valid for more than another 60 seconds ->
  ``token_still_valid``, ``ok`` with no new token

Server errors (500-504) are retried immediately, at most twice. Request and
response bodies contain token material and are never logged.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import httpx

from shopify_app.exchange.token_exchange import expires_at
from shopify_app.logging import get_logger
from shopify_app.types import (
    AccessMode,
    AppConfig,
    HttpLog,
    Log,
    ResponseInfo,
    TokenExchangeAccessToken,
    TokenExchangeResult,
)
from shopify_app.utils.converters import to_token_exchange_access_token
from shopify_app.utils.http import (
    DEFAULT_TIMEOUT,
    client_scope,
    json_request_headers,
    parse_json_object,
    request_snapshot,
    response_snapshot,
)
from shopify_app.utils.shop import shop_origin

logger = get_logger(__name__)

MAX_RETRIES = 2
EXPIRY_BUFFER_SECONDS = 60

SUCCESS_DETAIL = (
    "Token refresh successful. Store the new access and refresh token "
    "then proceed with business logic."
)
SERVER_ERROR_DETAIL = (
    "Max retries reached after server errors. "
    "Respond 500 Internal Server Error using the provided response."
)
NETWORK_ERROR_DETAIL = (
    "Network error occurred during token refresh. "
    "Respond 500 Internal Server Error using the provided response."
)


def parse_timestamp(value: str | None) -> float | None:
    """Epoch seconds for an ISO-8601 timestamp; None when empty or unparseable.

    Timestamps without an offset are taken as UTC.
    """
    if not value:
        return None
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.timestamp()


def _result(
    ok: bool,
    code: str,
    detail: str,
    status: int,
    shop: str | None,
    http_logs: list[HttpLog] | None = None,
    access_token: TokenExchangeAccessToken | None = None,
) -> TokenExchangeResult:
    return TokenExchangeResult(
        ok=ok,
        shop=shop,
        access_token=access_token,
        log=Log(code=code, detail=detail),
        http_logs=tuple(http_logs or ()),
        response=ResponseInfo(status),
    )


async def refresh_token_exchanged_access_token(
    config: AppConfig,
    access_token: TokenExchangeAccessToken | Mapping[str, Any],
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> TokenExchangeResult:
    """Refresh ``access_token`` using its refresh token.

    Args:
        config: App credentials.
        access_token: Stored token, as returned by token exchange or loaded
            back from storage as a mapping.
        client: Optional shared httpx.AsyncClient (caller manages lifecycle).
        timeout: Timeout for a per-call client when ``client`` is omitted.

    Returns:
        TokenExchangeResult. ``access_token`` is None for ``token_still_valid``.
    """
    token = to_token_exchange_access_token(access_token)
    shop = token.shop or None
    now = time.time()

    refresh_expiry = parse_timestamp(token.refresh_token_expires)
    if refresh_expiry is not None and refresh_expiry <= now:
        logger.info("token_refresh_skipped", shop=shop, code="refresh_token_expired")
        return _result(
            False,
            "refresh_token_expired",
            "Refresh token has expired. User must re-authenticate. "
            "Respond 401 Unauthorized using the provided response.",
            401,
            shop,
        )

    expiry = parse_timestamp(token.expires)
    if expiry is not None and expiry > now + EXPIRY_BUFFER_SECONDS:
        logger.debug("token_refresh_skipped", shop=shop, code="token_still_valid")
        return _result(
            True,
            "token_still_valid",
            "Access token is still valid. No refresh needed. Proceed with business logic.",
            200,
            shop,
        )

    for value, name in (
        (token.shop, "shop"),
        (config.client_id, "clientId"),
        (token.refresh_token, "refresh token"),
    ):
        if not value:
            detail = f"Expected {name} to be a non-empty string, but got ''"
            logger.error("token_refresh_configuration_error", detail=detail)
            return _result(False, "configuration_error", detail, 500, shop)

    endpoint = f"{shop_origin(token.shop)}/admin/oauth/access_token"
    payload = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "grant_type": "refresh_token",
        "refresh_token": token.refresh_token,
    }
    headers = json_request_headers()
    logged_req = request_snapshot("POST", endpoint, headers, "")

    http_logs: list[HttpLog] = []
    attempt = 0
    async with client_scope(client, timeout) as http:
        while True:
            try:
                response = await http.post(endpoint, content=json.dumps(payload), headers=headers)
            except httpx.HTTPError as exc:
                logger.warning("token_refresh_network_error", shop=shop, error=type(exc).__name__)
                http_logs.append(
                    HttpLog("network_error", NETWORK_ERROR_DETAIL, logged_req, ResponseInfo(0))
                )
                return _result(False, "network_error", NETWORK_ERROR_DETAIL, 500, shop, http_logs)

            status = response.status_code
            res = response_snapshot(response, include_body=False)

            if status == 200:
                http_logs.append(HttpLog("success", SUCCESS_DETAIL, logged_req, res))
                data = parse_json_object(response)
                refreshed = TokenExchangeAccessToken(
                    access_mode=AccessMode.OFFLINE.value,
                    shop=token.shop,
                    token=str(data.get("access_token", "")),
                    expires=expires_at(data.get("expires_in")),
                    scope=str(data.get("scope", "")),
                    refresh_token=str(data.get("refresh_token", "")),
                    refresh_token_expires=expires_at(data.get("refresh_token_expires_in")),
                    user=None,
                )
                logger.info("token_refresh_succeeded", shop=shop)
                return _result(True, "success", SUCCESS_DETAIL, 200, shop, http_logs, refreshed)

            if 500 <= status <= 504:
                if attempt < MAX_RETRIES:
                    attempt += 1
                    http_logs.append(
                        HttpLog(
                            "server_error_retry",
                            f"Server error {status}, retrying "
                            f"(attempt {attempt} of {MAX_RETRIES}).",
                            logged_req,
                            res,
                        )
                    )
                    logger.info("token_refresh_retry", shop=shop, status=status, attempt=attempt)
                    continue
                http_logs.append(HttpLog("server_error", SERVER_ERROR_DETAIL, logged_req, res))
                logger.warning(
                    "token_refresh_failed", shop=shop, code="server_error", status=status
                )
                return _result(False, "server_error", SERVER_ERROR_DETAIL, 500, shop, http_logs)

            return _error_result(parse_json_object(response), shop, http_logs, logged_req, res)


def _error_result(
    data: Mapping[str, Any],
    shop: str | None,
    http_logs: list[HttpLog],
    logged_req: dict[str, Any],
    res: ResponseInfo,
) -> TokenExchangeResult:
    error = data.get("error") or "unknown_error"
    if error == "invalid_grant":
        code, status = "invalid_grant", 401
        detail = (
            "Refresh token is invalid, expired, or has been revoked. User must re-authenticate. "
            "Respond 401 Unauthorized using the provided response."
        )
    elif error == "invalid_client":
        code, status = "invalid_client", 500
        detail = (
            "Client credentials are invalid or app has been uninstalled. "
            "Respond 500 Internal Server Error using the provided response."
        )
    else:
        code, status = "refresh_error", 500
        detail = (
            f"Token refresh failed with error: {error}. "
            "Respond 500 Internal Server Error using the provided response."
        )
    http_logs.append(HttpLog(code, detail, logged_req, res))
    logger.warning("token_refresh_failed", shop=shop, code=code, status=res.status)
    return _result(False, code, detail, status, shop, http_logs)
