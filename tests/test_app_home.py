"""Tests for admin home request verification (document and fetch requests)."""

from __future__ import annotations

from urllib.parse import parse_qs, unquote, urlsplit

import pytest
from conftest import make_id_token

from shopify_app import AppConfig, RequestInput, ShopifyApp
from shopify_app.verify.app_home import patch_id_token_location, verify_app_home

PATCH_PATH = "/auth/patch-id-token"
RETRY = {"X-Shopify-Retry-Invalid-Session-Request": "1"}
APP_ORIGIN = "https://app.example.com"
APP_URL = f"{APP_ORIGIN}/orders?shop=test-shop.myshopify.com&host=YWRtaW4=&embedded=1"


def document_request(url: str) -> RequestInput:
    return RequestInput(method="GET", headers={"Accept": "text/html"}, url=url)


def fetch_request(authorization: str, url: str = f"{APP_ORIGIN}/api/data") -> RequestInput:
    return RequestInput(method="GET", headers={"Authorization": authorization}, url=url)


@pytest.mark.unit
class TestDocumentRequests:
    def test_missing_id_token_redirects_to_patch_page(self, config: AppConfig) -> None:
        result = verify_app_home(config, document_request(APP_URL), PATCH_PATH)

        assert result.ok is False
        assert result.log.code == "redirect_to_patch_id_token_page"
        assert result.response.status == 302
        location = result.response.headers["Location"]
        assert location.startswith(f"https://app.example.com{PATCH_PATH}?")
        assert "host=YWRtaW4=" in location
        reload = parse_qs(urlsplit(location).query)["shopify-reload"][0]
        assert reload == "/orders?shop=test-shop.myshopify.com&host=YWRtaW4=&embedded=1"

    def test_reload_path_strips_id_token(self, config: AppConfig) -> None:
        url = "https://app.example.com/orders?shop=test-shop.myshopify.com&id_token=&embedded=1"

        result = verify_app_home(config, document_request(url), PATCH_PATH)

        location = result.response.headers["Location"]
        assert "id_token" not in location
        reload = unquote(location.split("shopify-reload=", 1)[1])
        assert reload == "/orders?shop=test-shop.myshopify.com&embedded=1"

    def test_reload_path_without_params(self, config: AppConfig) -> None:
        result = verify_app_home(config, document_request("https://app.example.com/"), PATCH_PATH)

        assert result.response.headers["Location"] == (
            f"https://app.example.com{PATCH_PATH}?shopify-reload=%2F"
        )

    def test_invalid_token_redirects(self, config: AppConfig) -> None:
        url = f"{APP_URL}&id_token=not.a.jwt"

        result = verify_app_home(config, document_request(url), PATCH_PATH)

        assert result.log.code == "redirect_to_patch_id_token_page"
        assert result.response.status == 302

    def test_expired_token_redirects(self, config: AppConfig) -> None:
        url = f"{APP_URL}&id_token={make_id_token(expires_in=-60)}"

        result = verify_app_home(config, document_request(url), PATCH_PATH)

        assert result.response.status == 302

    def test_valid_token_is_verified_with_document_headers(self, config: AppConfig) -> None:
        token = make_id_token(sub="1001")

        req = document_request(f"{APP_URL}&id_token={token}")

        result = verify_app_home(config, req, PATCH_PATH)

        assert result.ok is True
        assert result.shop == "test-shop"
        assert result.user_id == "1001"
        assert result.id_token is not None
        assert result.id_token.exchangeable is True
        assert result.response.status == 200
        assert result.response.headers["Content-Security-Policy"] == (
            "frame-ancestors https://test-shop.myshopify.com https://admin.shopify.com;"
        )
        assert "app-bridge.js" in result.response.headers["Link"]
        assert result.log.detail.endswith("Include the headers in the provided response.")

    def test_new_id_token_response_is_redirect(self, config: AppConfig) -> None:
        token = make_id_token()

        req = document_request(f"{APP_URL}&id_token={token}")

        result = verify_app_home(config, req, PATCH_PATH)

        assert result.new_id_token_response is not None
        assert result.new_id_token_response.status == 302
        assert token not in result.new_id_token_response.headers["Location"]

    def test_audience_mismatch_has_no_retry_header(self, config: AppConfig) -> None:
        token = make_id_token(aud="other-app")

        req = document_request(f"{APP_URL}&id_token={token}")

        result = verify_app_home(config, req, PATCH_PATH)

        assert result.log.code == "invalid_aud"
        assert result.response.status == 401
        assert result.response.headers == {}


@pytest.mark.unit
class TestFetchRequests:
    def test_valid_token_is_verified(self, config: AppConfig) -> None:
        result = verify_app_home(config, fetch_request(f"Bearer {make_id_token()}"), PATCH_PATH)

        assert result.ok is True
        assert result.response.headers == {}
        assert result.log.detail == "App Home request verified. Proceed with business logic."
        assert result.new_id_token_response is not None
        assert result.new_id_token_response.status == 401
        assert result.new_id_token_response.headers == RETRY

    def test_invalid_token_returns_retry_401(self, config: AppConfig) -> None:
        result = verify_app_home(config, fetch_request("Bearer not.a.jwt"), PATCH_PATH)

        assert result.log.code == "invalid_id_token"
        assert result.response.status == 401
        assert result.response.headers == RETRY

    def test_expired_token_returns_retry_401(self, config: AppConfig) -> None:
        token = make_id_token(expires_in=-60)

        result = verify_app_home(config, fetch_request(f"Bearer {token}"), PATCH_PATH)

        assert result.log.code == "expired_id_token"
        assert result.response.headers == RETRY

    def test_non_bearer_scheme(self, config: AppConfig) -> None:
        result = verify_app_home(config, fetch_request("Basic abc"), PATCH_PATH)

        assert result.log.code == "invalid_id_token"
        assert result.response.headers == RETRY

    def test_empty_bearer_token(self, config: AppConfig) -> None:
        result = verify_app_home(config, fetch_request("Bearer "), PATCH_PATH)

        assert result.log.code == "missing_authorization_and_id_token"
        assert result.response.status == 401
        assert result.response.headers == {}

    def test_audience_mismatch_carries_retry_header(self, config: AppConfig) -> None:
        token = make_id_token(aud="other-app")

        result = verify_app_home(config, fetch_request(f"Bearer {token}"), PATCH_PATH)

        assert result.log.code == "invalid_aud"
        assert result.response.headers == RETRY


@pytest.mark.unit
class TestConfiguration:
    @pytest.mark.parametrize("path", [None, 42])
    def test_patch_path_must_be_string(self, config: AppConfig, path: object) -> None:
        result = verify_app_home(config, document_request(APP_URL), path)

        assert result.log.code == "configuration_error"
        assert result.response.status == 500

    def test_patch_path_must_not_be_empty(self, config: AppConfig) -> None:
        result = verify_app_home(config, document_request(APP_URL), "")

        assert result.log.detail.endswith("but got ''")

    def test_facade_default_path_is_configuration_error(self, app: ShopifyApp) -> None:
        result = app.verify_app_home_req({"method": "GET", "headers": {}, "url": APP_URL})
        assert result.log.code == "configuration_error"


@pytest.mark.unit
class TestPatchIdTokenLocation:
    def test_keeps_port_and_padding(self) -> None:
        location = patch_id_token_location(
            "http://localhost:3000/?host=YQ==&id_token=abc", "/patch"
        )
        assert location == (
            "http://localhost:3000/patch?host=YQ==&shopify-reload=%2F%3Fhost%3DYQ%3D%3D"
        )


@pytest.mark.unit
class TestUnparseableUrl:
    BAD_URL = "https://[bad/app?shop=test-shop.myshopify.com"

    def test_document_request_is_configuration_error(self, config: AppConfig) -> None:
        result = verify_app_home(config, document_request(self.BAD_URL), PATCH_PATH)

        assert result.ok is False
        assert result.log.code == "configuration_error"
        assert result.response.status == 500

    def test_fetch_request_does_not_need_the_url(self, config: AppConfig) -> None:
        req = fetch_request(f"Bearer {make_id_token()}", url=self.BAD_URL)

        result = verify_app_home(config, req, PATCH_PATH)

        assert result.ok is True
        assert result.shop == "test-shop"

    def test_patch_location_rejects_unparseable_url(self) -> None:
        with pytest.raises(ValueError, match="Cannot build a patch ID token location"):
            patch_id_token_location(self.BAD_URL, PATCH_PATH)
