"""Shared fixtures: credentials, signed ID tokens and mock HTTP transports."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx
import jwt
import pytest

from shopify_app import AppConfig, ShopifyApp
from shopify_app.utils import retry

CLIENT_ID = "test-client-id"
# HS256 keys shorter than 32 bytes trigger PyJWT warnings.
CLIENT_SECRET = "test-client-secret-0123456789abcdef"
OLD_CLIENT_SECRET = "old-client-secret-0123456789abcdef"
SHOP_DEST = "https://test-shop.myshopify.com"

ResponseFactory = Callable[[httpx.Request], httpx.Response]


def make_id_token(
    secret: str = CLIENT_SECRET,
    *,
    aud: Any = CLIENT_ID,
    dest: str = SHOP_DEST,
    sub: str = "42",
    expires_in: int = 60,
    **extra: Any,
) -> str:
    """Sign an ID token the way the platform does."""
    now = int(time.time())
    claims = {
        "iss": f"{dest}/admin",
        "dest": dest,
        "aud": aud,
        "sub": sub,
        "exp": now + expires_in,
        "nbf": now - 5,
        "iat": now - 5,
        "jti": "f8912129-1af6-4cad-9ca3-76b0f7621087",
        "sid": "aaea182f2732d44c23057c0fea584021a4485b2bd25d3eb7fd349313ad24c685",
        **extra,
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def respond(status: int, **kwargs: Any) -> ResponseFactory:
    """Factory building a fresh httpx.Response for each request."""

    def build(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, **kwargs)

    return build


def fail_with(exc_type: type[httpx.TransportError] = httpx.ConnectError) -> ResponseFactory:
    """Factory raising a transport error instead of responding."""

    def build(request: httpx.Request) -> httpx.Response:
        raise exc_type("connection failed", request=request)

    return build


class SequenceTransport:
    """Replays response factories in order; the last one repeats.

    Attributes:
        requests: Every request the client sent, in order.
    """

    def __init__(self, *factories: ResponseFactory) -> None:
        self._factories = list(factories)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._factories)) - 1
        return self._factories[index](request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture()
def config() -> AppConfig:
    return AppConfig(client_id=CLIENT_ID, client_secret=CLIENT_SECRET)


@pytest.fixture()
def rotating_config() -> AppConfig:
    return AppConfig(
        client_id=CLIENT_ID, client_secret=CLIENT_SECRET, old_client_secret=OLD_CLIENT_SECRET
    )


@pytest.fixture()
def app() -> ShopifyApp:
    return ShopifyApp(CLIENT_ID, CLIENT_SECRET)


@pytest.fixture()
def waits(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Replace retry waits with a recorder so tests never sleep."""
    delays: list[float] = []

    async def record(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(retry, "wait", record)
    return delays
