"""Outbound HTTP helpers shared by the exchange engines and the GraphQL executor.

The transport is an ``httpx.AsyncClient``. Callers may inject one (to reuse
connections or set their own timeouts); otherwise a client is created for
the duration of a single operation and closed afterwards.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx

from shopify_app.types import ResponseInfo
from shopify_app.utils.user_agent import user_agent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

DEFAULT_TIMEOUT = 10.0


def json_request_headers() -> dict[str, str]:
    """Default headers for JSON POSTs to the token endpoint."""
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": user_agent(),
    }


@asynccontextmanager
async def client_scope(
    client: httpx.AsyncClient | None,
    timeout: float = DEFAULT_TIMEOUT,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a per-call client that is closed on exit.

    An injected client is never closed here; its lifecycle belongs to the caller.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


def request_snapshot(
    method: str,
    url: str,
    headers: dict[str, str],
    body: str,
) -> dict[str, Any]:
    """Request as recorded in an HttpLog entry."""
    return {"method": method, "url": url, "headers": dict(headers), "body": body}


def response_headers(response: httpx.Response) -> dict[str, str]:
    """Flatten response headers, joining repeated headers with ``", "``."""
    return {name: ", ".join(response.headers.get_list(name)) for name in response.headers}


def response_snapshot(response: httpx.Response, *, include_body: bool = True) -> ResponseInfo:
    """Response as recorded in an HttpLog entry."""
    return ResponseInfo(
        status=response.status_code,
        body=response.text if include_body else "",
        headers=response_headers(response),
    )


def parse_json_object(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body, returning an empty dict for anything else."""
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}
