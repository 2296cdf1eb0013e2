"""Admin GraphQL API executor with classification-driven retries.

Per-attempt outcome:

==========================  ===========================================
Response                    Outcome
==========================  ===========================================
200 without ``errors``      ``success`` (ok)
200 with ``errors``         ``graphql_errors``, response relayed
401                         ``unauthorized``, caller's invalid-token
                            response relayed when given
429                         wait ``Retry-After``, retry; then
                            ``rate_limited`` (429)
502 / 503 / 504             exponential backoff with jitter, retry;
                            then ``http_error_{status}``
400 / 403 / other           ``http_error_{status}``, not retried
transport failure           ``network_error`` (500), not retried
==========================  ===========================================

Every attempt is recorded in ``http_logs``; the top-level ``log`` mirrors
the last entry.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import httpx

from shopify_app.logging import REDACTED_VALUE, get_logger
from shopify_app.types import GraphQLResult, HttpLog, Log, ResponseInfo
from shopify_app.utils import retry
from shopify_app.utils.converters import to_response_info
from shopify_app.utils.headers import merge_headers
from shopify_app.utils.http import (
    DEFAULT_TIMEOUT,
    client_scope,
    parse_json_object,
    request_snapshot,
    response_snapshot,
)
from shopify_app.utils.shop import shop_origin
from shopify_app.utils.user_agent import user_agent

logger = get_logger(__name__)

ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"
DEFAULT_MAX_RETRIES = 2
TRANSIENT_STATUSES = frozenset({502, 503, 504})

_STATUS_TEXT = {502: "Bad Gateway", 503: "Service Unavailable", 504: "Gateway Timeout"}

SUCCESS_DETAIL = "GraphQL request successful. Proceed with business logic."
GRAPHQL_ERRORS_DETAIL = "GraphQL request returned errors"
UNAUTHORIZED_DETAIL = "Access token is invalid or has been revoked."
RATE_LIMITED_DETAIL = "Max retries reached after rate limiting. Return 429 Too Many Requests."
NETWORK_ERROR_DETAIL = "Network error occurred during GraphQL request"


def graphql_endpoint(shop: str, api_version: str) -> str:
    """Admin GraphQL endpoint for a shop name or full shop domain.

    Example:
        >>> graphql_endpoint("test-shop", "2025-01")
        'https://test-shop.myshopify.com/admin/api/2025-01/graphql.json'
    """
    return f"{shop_origin(shop)}/admin/api/{api_version}/graphql.json"


def _result(
    code: str,
    detail: str,
    http_logs: list[HttpLog],
    response: ResponseInfo,
    *,
    ok: bool = False,
    shop: str | None = None,
    data: dict[str, Any] | None = None,
    extensions: dict[str, Any] | None = None,
) -> GraphQLResult:
    return GraphQLResult(
        ok=ok,
        shop=shop,
        data=data,
        extensions=extensions,
        log=Log(code=code, detail=detail),
        http_logs=tuple(http_logs),
        response=response,
    )


def _as_object(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


async def admin_graphql_request(
    query: str,
    shop: str,
    access_token: str,
    api_version: str,
    invalid_token_response: ResponseInfo | Mapping[str, Any] | None = None,
    variables: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> GraphQLResult:
    """Execute an Admin GraphQL API request.

    Args:
        query: GraphQL document.
        shop: Shop name (``my-shop``) or domain (``my-shop.myshopify.com``).
        access_token: Admin API access token.
        api_version: API version such as ``2025-01``.
        invalid_token_response: Response to relay on 401, usually the
            verifier's ``new_id_token_response``.
        variables: GraphQL variables; omitted from the body when empty.
        headers: Extra request headers; they override the defaults.
        max_retries: Retries allowed for 429 and 502/503/504 responses.
        client: Optional shared httpx.AsyncClient (caller manages lifecycle).
        timeout: Timeout for a per-call client when ``client`` is omitted.

    Returns:
        GraphQLResult with ``data`` and ``extensions`` when ``ok`` is True.
    """
    for value, code, detail in (
        (shop, "missing_shop", "Shop domain is required"),
        (access_token, "missing_access_token", "Access token is required"),
        (api_version, "missing_api_version", "API version is required"),
        (query, "missing_query", "GraphQL query is required"),
    ):
        if not value:
            logger.error("graphql_request_rejected", code=code)
            return _result(code, detail, [], ResponseInfo(400))

    endpoint = graphql_endpoint(shop, api_version)
    request_headers = merge_headers(
        {
            "Content-Type": "application/json",
            ACCESS_TOKEN_HEADER: access_token,
            "User-Agent": user_agent(),
        },
        headers or {},
    )
    payload: dict[str, Any] = {"query": query}
    if variables:
        payload["variables"] = dict(variables)
    body = json.dumps(payload)
    logged_headers = {
        name: REDACTED_VALUE if name.lower() == ACCESS_TOKEN_HEADER.lower() else value
        for name, value in request_headers.items()
    }
    logged_req = request_snapshot("POST", endpoint, logged_headers, body)

    http_logs: list[HttpLog] = []
    max_retries = max(max_retries, 0)
    attempt = 0
    async with client_scope(client, timeout) as http:
        while True:
            try:
                response = await http.post(endpoint, content=body, headers=request_headers)
            except httpx.HTTPError as exc:
                logger.warning("graphql_network_error", shop=shop, error=type(exc).__name__)
                http_logs.append(
                    HttpLog("network_error", NETWORK_ERROR_DETAIL, logged_req, ResponseInfo(0))
                )
                return _result("network_error", NETWORK_ERROR_DETAIL, http_logs, ResponseInfo(500))

            status = response.status_code
            res = response_snapshot(response)
            attempts_left = attempt < max_retries

            if status == 200:
                data = parse_json_object(response)
                if data.get("errors"):
                    http_logs.append(
                        HttpLog("graphql_errors", GRAPHQL_ERRORS_DETAIL, logged_req, res)
                    )
                    logger.info("graphql_request_completed", shop=shop, code="graphql_errors")
                    return _result("graphql_errors", GRAPHQL_ERRORS_DETAIL, http_logs, res)
                http_logs.append(HttpLog("success", SUCCESS_DETAIL, logged_req, res))
                logger.debug(
                    "graphql_request_completed", shop=shop, code="success", attempts=attempt + 1
                )
                return _result(
                    "success",
                    SUCCESS_DETAIL,
                    http_logs,
                    res,
                    ok=True,
                    shop=shop,
                    data=_as_object(data.get("data")),
                    extensions=_as_object(data.get("extensions")),
                )

            if status == 401:
                http_logs.append(HttpLog("unauthorized", UNAUTHORIZED_DETAIL, logged_req, res))
                logger.info("graphql_request_completed", shop=shop, code="unauthorized")
                relayed = to_response_info(invalid_token_response) or ResponseInfo(401)
                return _result("unauthorized", UNAUTHORIZED_DETAIL, http_logs, relayed)

            if status == 429 and attempts_left:
                delay = retry.retry_after_seconds(response)
                http_logs.append(
                    HttpLog(
                        "rate_limited_retry",
                        f"Rate limited. Retrying after {delay} seconds "
                        f"(attempt {attempt + 1} of {max_retries + 1}).",
                        logged_req,
                        res,
                    )
                )
                logger.info("graphql_request_retry", shop=shop, status=status, delay=delay)
                await retry.wait(delay)
                attempt += 1
                continue

            if status == 429:
                http_logs.append(HttpLog("rate_limited", RATE_LIMITED_DETAIL, logged_req, res))
                logger.warning("graphql_request_completed", shop=shop, code="rate_limited")
                return _result(
                    "rate_limited",
                    RATE_LIMITED_DETAIL,
                    http_logs,
                    ResponseInfo(
                        429,
                        json.dumps({"error": "Too many requests"}),
                        {"Content-Type": "application/json"},
                    ),
                )

            if status in TRANSIENT_STATUSES and attempts_left:
                delay = retry.backoff_delay(attempt)
                http_logs.append(
                    HttpLog(
                        f"http_error_{status}_retry",
                        f"HTTP {status} error. Retrying with exponential backoff "
                        f"(attempt {attempt + 1} of {max_retries + 1}).",
                        logged_req,
                        res,
                    )
                )
                logger.info("graphql_request_retry", shop=shop, status=status, delay=delay)
                await retry.wait(delay)
                attempt += 1
                continue

            code = f"http_error_{status}"
            if status in TRANSIENT_STATUSES:
                detail = (
                    f"Max retries reached for transient error. "
                    f"Return {status} {_STATUS_TEXT[status]}."
                )
                relayed = ResponseInfo(status)
            elif status == 400:
                detail, relayed = "GraphQL query syntax is invalid. Do not retry.", res
            elif status == 403:
                detail, relayed = "Access token lacks required permissions. Do not retry.", res
            else:
                detail, relayed = f"HTTP error {status}", res

            http_logs.append(HttpLog(code, detail, logged_req, res))
            logger.warning("graphql_request_completed", shop=shop, code=code)
            return _result(code, detail, http_logs, relayed)
