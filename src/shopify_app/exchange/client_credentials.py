"""Client credentials grant: server-to-server access tokens without an ID token.

Used by apps that act on a shop outside any merchant session (background
jobs, scheduled syncs). The token is always offline and carries no refresh
token. A single attempt is made; failures are returned for the caller to
retry at a higher level if it wants to.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import httpx

from shopify_app.exchange.token_exchange import INVALID_CLIENT_DETAIL, expires_at
from shopify_app.logging import REDACTED_VALUE, get_logger
from shopify_app.types import (
    AppConfig,
    ClientCredentialsAccessToken,
    ClientCredentialsResult,
    HttpLog,
    Log,
    ResponseInfo,
)
from shopify_app.utils.http import (
    DEFAULT_TIMEOUT,
    client_scope,
    json_request_headers,
    parse_json_object,
    request_snapshot,
    response_snapshot,
)
from shopify_app.utils.shop import SHOP_DOMAIN_SUFFIX, is_valid_shop_name

logger = get_logger(__name__)

NOMINAL_LIFETIME_SECONDS = 24 * 60 * 60

SUCCESS_DETAIL = (
    "Client credentials exchange successful. "
    "Store the access token and proceed with business logic."
)
NETWORK_ERROR_DETAIL = (
    "Network error occurred during client credentials exchange. "
    "Respond 500 Internal Server Error using the provided response."
)


def _failure(
    code: str,
    detail: str,
    shop: str | None = None,
    http_logs: list[HttpLog] | None = None,
) -> ClientCredentialsResult:
    return ClientCredentialsResult(
        ok=False,
        shop=shop,
        access_token=None,
        log=Log(code=code, detail=detail),
        http_logs=tuple(http_logs or ()),
        response=ResponseInfo(500),
    )


async def exchange_using_client_credentials(
    config: AppConfig,
    shop: Any,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> ClientCredentialsResult:
    """Obtain an offline access token for ``shop`` with the client credentials grant.

    Args:
        config: App credentials.
        shop: Bare shop name such as ``"my-shop"``; domains are rejected.
        client: Optional shared httpx.AsyncClient (caller manages lifecycle).
        timeout: Timeout for a per-call client when ``client`` is omitted.

    Returns:
        ClientCredentialsResult; ``access_token`` is set when ``ok`` is True.
    """
    if not isinstance(shop, str) or not shop:
        logger.error("client_credentials_configuration_error", shop=shop)
        return _failure("configuration_error", "Expected shop to be a non-empty string, but got ''")
    if not is_valid_shop_name(shop):
        logger.error("client_credentials_configuration_error", shop=shop)
        return _failure(
            "configuration_error", "Expected shop to be a valid shop domain (e.g., 'shop-name')"
        )

    endpoint = f"https://{shop}{SHOP_DOMAIN_SUFFIX}/admin/oauth/access_token"
    payload = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "grant_type": "client_credentials",
    }
    headers = json_request_headers()
    logged_req = request_snapshot(
        "POST", endpoint, headers, json.dumps({**payload, "client_secret": REDACTED_VALUE})
    )

    async with client_scope(client, timeout) as http:
        try:
            response = await http.post(endpoint, content=json.dumps(payload), headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("client_credentials_network_error", shop=shop, error=type(exc).__name__)
            http_logs = [
                HttpLog("network_error", NETWORK_ERROR_DETAIL, logged_req, ResponseInfo(0))
            ]
            return _failure("network_error", NETWORK_ERROR_DETAIL, shop, http_logs)

    res = response_snapshot(response)
    data = parse_json_object(response)

    if response.status_code == 200:
        access_token = ClientCredentialsAccessToken(
            shop=shop,
            token=str(data.get("access_token", "")),
            expires=expires_at(data.get("expires_in", NOMINAL_LIFETIME_SECONDS)),
            scope=str(data.get("scope", "")),
        )
        logger.info("client_credentials_succeeded", shop=shop)
        return ClientCredentialsResult(
            ok=True,
            shop=shop,
            access_token=access_token,
            log=Log("success", SUCCESS_DETAIL),
            http_logs=(HttpLog("success", SUCCESS_DETAIL, logged_req, res),),
            response=ResponseInfo(200),
        )

    return _error_result(data, shop, logged_req, res)


def _error_result(
    data: Mapping[str, Any],
    shop: str,
    logged_req: dict[str, Any],
    res: ResponseInfo,
) -> ClientCredentialsResult:
    error = data.get("error") or "unknown_error"
    if error == "invalid_client":
        code, detail = "invalid_client", INVALID_CLIENT_DETAIL
    else:
        code = "exchange_error"
        detail = (
            f"Client credentials exchange failed with error: {error}. "
            "Respond 500 Internal Server Error using the provided response."
        )
    logger.warning("client_credentials_failed", shop=shop, code=code, status=res.status)
    return _failure(code, detail, shop, [HttpLog(code, detail, logged_req, res)])
