"""Tests for the ShopifyApp facade."""

from __future__ import annotations

import pytest
from conftest import CLIENT_ID, CLIENT_SECRET, OLD_CLIENT_SECRET, SequenceTransport, respond

from shopify_app import AppConfig, ConfigurationError, ShopifyApp, ShopifyAppSettings
from shopify_app.settings import get_shopify_app_settings


@pytest.mark.unit
class TestConstruction:
    def test_empty_client_id_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="clientId is required"):
            ShopifyApp("", CLIENT_SECRET)

    def test_missing_client_secret_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="clientSecret is required"):
            ShopifyApp(CLIENT_ID)

    def test_configuration_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            ShopifyApp("", "")

    def test_accepts_app_config(self) -> None:
        config = AppConfig(CLIENT_ID, CLIENT_SECRET, OLD_CLIENT_SECRET)

        app = ShopifyApp(config)

        assert app.config is config
        assert app.config.secrets == (CLIENT_SECRET, OLD_CLIENT_SECRET)

    def test_empty_old_secret_is_ignored(self) -> None:
        assert ShopifyApp(CLIENT_ID, CLIENT_SECRET, "").config.secrets == (CLIENT_SECRET,)

    def test_repr_hides_secrets(self, app: ShopifyApp) -> None:
        assert CLIENT_SECRET not in repr(app)
        assert CLIENT_SECRET not in repr(app.config)


@pytest.mark.unit
class TestFromSettings:
    def test_builds_from_settings(self) -> None:
        settings = ShopifyAppSettings(
            _env_file=None, client_id=CLIENT_ID, client_secret=CLIENT_SECRET, http_timeout=3
        )

        app = ShopifyApp.from_settings(settings)

        assert app.config.client_id == CLIENT_ID

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHOPIFY_CLIENT_ID", "env-client")
        monkeypatch.setenv("SHOPIFY_CLIENT_SECRET", "env-secret")
        get_shopify_app_settings.cache_clear()
        try:
            app = ShopifyApp.from_settings()
        finally:
            get_shopify_app_settings.cache_clear()

        assert app.config.client_id == "env-client"

    def test_incomplete_settings_raise(self) -> None:
        settings = ShopifyAppSettings(_env_file=None, client_id=CLIENT_ID, client_secret="")

        with pytest.raises(ConfigurationError, match="SHOPIFY_CLIENT_SECRET is required"):
            ShopifyApp.from_settings(settings)


@pytest.mark.unit
class TestFacadeDelegation:
    def test_verifiers_accept_mappings(self, app: ShopifyApp) -> None:
        result = app.verify_webhook_req(
            {"method": "POST", "headers": {}, "url": "https://app.example.com/webhooks", "body": ""}
        )

        assert result.log.code == "missing_hmac_header"

    def test_malformed_request_is_configuration_error(self, app: ShopifyApp) -> None:
        result = app.verify_app_proxy_req({"method": "GET"})

        assert result.log.code == "configuration_error"
        assert result.response.status == 500

    @pytest.mark.asyncio
    async def test_graphql_delegates(self, app: ShopifyApp) -> None:
        transport = SequenceTransport(respond(200, json={"data": {"shop": {"id": "1"}}}))

        result = await app.admin_graphql_request(
            "{ shop { id } }", "test-shop", "shpat_x", "2025-01", client=transport.client()
        )

        assert result.ok is True
        assert result.data == {"shop": {"id": "1"}}

    @pytest.mark.asyncio
    async def test_client_credentials_delegates(self, app: ShopifyApp) -> None:
        transport = SequenceTransport(respond(200, json={"access_token": "shpat_cc", "scope": ""}))

        result = await app.exchange_using_client_credentials("test-shop", client=transport.client())

        assert result.ok is True
        assert result.access_token.token == "shpat_cc"  # type: ignore[union-attr]
