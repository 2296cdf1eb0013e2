"""Tests for the token exchange engine."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from conftest import CLIENT_ID, CLIENT_SECRET, SequenceTransport, fail_with, make_id_token, respond

from shopify_app import AppConfig, IdToken, ResponseInfo
from shopify_app.exchange.token_exchange import exchange_using_token_exchange, expires_at

ENDPOINT = "https://test-shop.myshopify.com/admin/oauth/access_token"

OFFLINE_BODY = {
    "access_token": "shpat_offline",
    "scope": "read_products,write_orders",
    "expires_in": 3600,
    "refresh_token": "shprt_refresh",
    "refresh_token_expires_in": 7776000,
}

ONLINE_BODY = {
    "access_token": "shpua_online",
    "scope": "read_products",
    "expires_in": 86399,
    "associated_user_scope": "read_products",
    "associated_user": {
        "id": 902541635,
        "first_name": "John",
        "last_name": "Smith",
        "email": "john@example.com",
        "email_verified": True,
        "account_owner": True,
        "locale": "en",
        "collaborator": False,
    },
}


def id_token(dest: str = "https://test-shop.myshopify.com", exchangeable: bool = True) -> IdToken:
    token = make_id_token(dest=dest)
    return IdToken(exchangeable=exchangeable, token=token, claims={"dest": dest, "sub": "42"})


@pytest.mark.unit
class TestTokenExchangeSuccess:
    @pytest.mark.asyncio
    async def test_offline_exchange(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(200, json=OFFLINE_BODY))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.ok is True
        assert result.shop == "test-shop"
        assert result.log.code == "success"
        token = result.access_token
        assert token is not None
        assert token.access_mode == "offline"
        assert token.token == "shpat_offline"
        assert token.refresh_token == "shprt_refresh"
        assert token.user is None
        assert token.expires is not None
        expires = datetime.strptime(token.expires, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=UTC)
        assert abs(expires - (datetime.now(UTC) + timedelta(seconds=3600))) < timedelta(seconds=5)
        assert len(result.http_logs) == 1

    @pytest.mark.asyncio
    async def test_request_body_and_headers(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(200, json=OFFLINE_BODY))
        token = id_token()

        await exchange_using_token_exchange(config, "online", token, client=transport.client())

        request = transport.requests[0]
        assert str(request.url) == ENDPOINT
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["User-Agent"].startswith("shopify-app-python v")
        assert json.loads(request.content) == {
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "grant_type": "urn:ietf:params:oauth:grant-type:token-exchange",
            "subject_token": token.token,
            "subject_token_type": "urn:ietf:params:oauth:token-type:id_token",
            "requested_token_type": "urn:shopify:params:oauth:token-type:online-access-token",
            "expiring": 1,
        }

    @pytest.mark.asyncio
    async def test_client_secret_is_not_logged(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(200, json=OFFLINE_BODY))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert CLIENT_SECRET not in result.http_logs[0].req["body"]

    @pytest.mark.asyncio
    async def test_online_exchange_maps_user(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(200, json=ONLINE_BODY))

        result = await exchange_using_token_exchange(
            config, "online", id_token(), client=transport.client()
        )

        user = result.access_token.user  # type: ignore[union-attr]
        assert user is not None
        assert user.id == 902541635
        assert user.first_name == "John"
        assert user.scope == "read_products"
        assert user.account_owner is True
        assert result.access_token.refresh_token_expires is None  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_offline_mode_ignores_associated_user(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(200, json=ONLINE_BODY))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.access_token.user is None  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_dest_without_scheme(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(200, json=OFFLINE_BODY))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(dest="test-shop.myshopify.com"), client=transport.client()
        )

        assert result.ok is True
        assert str(transport.requests[0].url) == ENDPOINT

    @pytest.mark.asyncio
    async def test_mapping_id_token_is_accepted(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(200, json=OFFLINE_BODY))
        token = id_token()
        mapping = {"exchangeable": True, "token": token.token, "claims": token.claims}

        result = await exchange_using_token_exchange(
            config, "offline", mapping, client=transport.client()
        )

        assert result.ok is True


@pytest.mark.unit
class TestTokenExchangeRetries:
    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self, config: AppConfig, waits: list[float]) -> None:
        transport = SequenceTransport(
            respond(429, headers={"Retry-After": "2"}),
            respond(200, json=OFFLINE_BODY),
        )

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.ok is True
        assert waits == [2]
        assert [log.code for log in result.http_logs] == ["rate_limited_retry", "success"]

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, config: AppConfig, waits: list[float]) -> None:
        transport = SequenceTransport(respond(429))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.ok is False
        assert result.log.code == "rate_limit_exceeded"
        assert result.response.status == 429
        assert json.loads(result.response.body) == {"error": "Too many requests"}
        assert result.response.headers == {"Content-Type": "application/json"}
        assert len(transport.requests) == 3
        assert waits == [1, 1]

    @pytest.mark.asyncio
    async def test_network_error_is_not_retried(
        self, config: AppConfig, waits: list[float]
    ) -> None:
        transport = SequenceTransport(fail_with(httpx.ConnectTimeout))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.log.code == "network_error"
        assert result.response.status == 500
        assert len(transport.requests) == 1
        assert result.http_logs[0].res.status == 0
        assert waits == []


@pytest.mark.unit
class TestTokenExchangeErrors:
    @pytest.mark.asyncio
    async def test_invalid_subject_token_plain_401(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(400, json={"error": "invalid_subject_token"}))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.log.code == "invalid_subject_token"
        assert result.response == ResponseInfo(401)

    @pytest.mark.asyncio
    async def test_invalid_subject_token_relays_caller_response(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(400, json={"error": "invalid_subject_token"}))
        retry_response = ResponseInfo(401, "", {"X-Shopify-Retry-Invalid-Session-Request": "1"})

        result = await exchange_using_token_exchange(
            config,
            "offline",
            id_token(),
            invalid_token_response=retry_response,
            client=transport.client(),
        )

        assert result.response == retry_response

    @pytest.mark.asyncio
    async def test_invalid_client(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(401, json={"error": "invalid_client"}))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.log.code == "invalid_client"
        assert result.response.status == 500

    @pytest.mark.asyncio
    async def test_other_error(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(400, json={"error": "invalid_request"}))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.log.code == "exchange_error"
        assert "invalid_request" in result.log.detail
        assert result.response.status == 500

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, config: AppConfig) -> None:
        transport = SequenceTransport(respond(500, text="<html>oops</html>"))

        result = await exchange_using_token_exchange(
            config, "offline", id_token(), client=transport.client()
        )

        assert result.log.code == "exchange_error"
        assert "unknown_error" in result.log.detail


@pytest.mark.unit
class TestTokenExchangeConfiguration:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("access_mode", "token", "detail"),
        [
            ("", None, "Expected access mode to be 'online' or 'offline', but got ''"),
            (
                "forever",
                None,
                "Expected access mode to be 'online' or 'offline', but got 'forever'",
            ),
            ("offline", None, "Expected idToken to be an object"),
            ("offline", {"token": 123}, "Expected idToken.token to be a non-empty string"),
            (
                "offline",
                IdToken(exchangeable=False, token="abc", claims={}),
                "ID token is not exchangeable",
            ),
            (
                "offline",
                IdToken(exchangeable=True, token="", claims={}),
                "Expected idToken.token to be a non-empty string",
            ),
            (
                "offline",
                IdToken(exchangeable=True, token="abc", claims={}),
                "Expected idToken.claims.dest to be a non-empty string",
            ),
            (
                "offline",
                IdToken(exchangeable=True, token="abc", claims={"dest": "https://evil.com"}),
                "Expected idToken.claims.dest to be a valid shop URL",
            ),
        ],
    )
    async def test_configuration_errors(
        self, config: AppConfig, access_mode: str, token: object, detail: str
    ) -> None:
        transport = SequenceTransport(respond(200, json=OFFLINE_BODY))

        result = await exchange_using_token_exchange(
            config, access_mode, token, client=transport.client()  # type: ignore[arg-type]
        )

        assert result.ok is False
        assert result.log.code == "configuration_error"
        assert result.log.detail.startswith(detail)
        assert result.response.status == 500
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_missing_client_id(self) -> None:
        config = AppConfig(client_id="", client_secret=CLIENT_SECRET)

        result = await exchange_using_token_exchange(config, "offline", id_token())

        assert result.log.code == "configuration_error"


@pytest.mark.unit
class TestExpiresAt:
    def test_formats_utc(self) -> None:
        assert expires_at(3600, now=0) == "1970-01-01T01:00:00Z"

    def test_absent_is_none(self) -> None:
        assert expires_at(None) is None
