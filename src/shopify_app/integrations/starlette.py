"""Starlette adapter.

Install with the ``starlette`` extra. Usage in a route:

    from shopify_app.integrations.starlette import (
        request_input_from_starlette,
        to_starlette_response,
    )

    async def webhooks(request: Request) -> Response:
        result = app.verify_webhook_req(await request_input_from_starlette(request))
        if not result.ok:
            return to_starlette_response(result.response)
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import Response

from shopify_app.types import RequestInput

if TYPE_CHECKING:
    from starlette.requests import Request

    from shopify_app.types import ResponseInfo


async def request_input_from_starlette(request: Request) -> RequestInput:
    """Build a RequestInput from a Starlette request.

    The body is read as raw bytes so body HMACs are computed over exactly
    what was sent. Repeated headers keep their first value.
    """
    body = await request.body()
    return RequestInput(
        method=request.method,
        headers=dict(request.headers),
        url=str(request.url),
        body=body,
    )


def to_starlette_response(response: ResponseInfo) -> Response:
    """Starlette Response relaying a verifier or exchange response verbatim."""
    return Response(
        content=response.body,
        status_code=response.status,
        headers=dict(response.headers),
    )
