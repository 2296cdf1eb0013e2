"""ShopifyApp: one entry point per verification and credential operation.

Example:
    >>> app = ShopifyApp("client-id", "client-secret")
    >>> result = app.verify_webhook_req(
    ...     {"method": "POST", "headers": {}, "url": "https://app.example.com/hooks", "body": "{}"}
    ... )
    >>> result.log.code
    'missing_hmac_header'
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from shopify_app.exceptions import ConfigurationError
from shopify_app.exchange import (
    exchange_using_client_credentials,
    exchange_using_token_exchange,
    refresh_token_exchanged_access_token,
)
from shopify_app.graphql import admin_graphql_request
from shopify_app.redirect import app_home_parent_redirect, app_home_redirect
from shopify_app.settings import ShopifyAppSettings, get_shopify_app_settings
from shopify_app.types import (
    AppConfig,
    AppProxyResult,
    ClientCredentialsResult,
    ExchangeableIdTokenResult,
    GraphQLResult,
    IdToken,
    NonExchangeableIdTokenResult,
    RedirectResult,
    RequestInput,
    RequestResult,
    ResponseInfo,
    TokenExchangeAccessToken,
    TokenExchangeResult,
)
from shopify_app.utils.converters import to_request_input
from shopify_app.utils.http import DEFAULT_TIMEOUT
from shopify_app.verify import (
    ADMIN_UI_EXTENSION,
    CHECKOUT_UI_EXTENSION,
    CUSTOMER_ACCOUNT_UI_EXTENSION,
    POS_UI_EXTENSION,
    verify_app_home,
    verify_app_proxy,
    verify_exchangeable,
    verify_flow_action,
    verify_non_exchangeable,
    verify_webhook,
)

if TYPE_CHECKING:
    import httpx

RequestLike = RequestInput | Mapping[str, Any]


class ShopifyApp:
    """Verifies inbound platform requests and manages access tokens for one app.

    Instances hold only the immutable credentials and are safe to share
    across threads and tasks.

    Args:
        client_id: App client ID, or a complete AppConfig.
        client_secret: App client secret (ignored when ``client_id`` is an AppConfig).
        old_client_secret: Previous client secret, accepted during rotation.
        http_timeout: Timeout in seconds for per-call HTTP clients.

    Raises:
        ConfigurationError: If the client ID or client secret is empty.
    """

    def __init__(
        self,
        client_id: str | AppConfig,
        client_secret: str | None = None,
        old_client_secret: str | None = None,
        http_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if isinstance(client_id, AppConfig):
            config = client_id
        else:
            config = AppConfig(
                client_id=client_id,
                client_secret=client_secret or "",
                old_client_secret=old_client_secret or None,
            )

        if not config.client_id:
            raise ConfigurationError(
                "clientId is required in ShopifyApp configuration", context={"field": "client_id"}
            )
        if not config.client_secret:
            raise ConfigurationError(
                "clientSecret is required in ShopifyApp configuration",
                context={"field": "client_secret"},
            )

        self._config = config
        self._http_timeout = http_timeout

    @classmethod
    def from_settings(cls, settings: ShopifyAppSettings | None = None) -> ShopifyApp:
        """Build an app from SHOPIFY_* environment settings.

        Raises:
            ConfigurationError: If SHOPIFY_CLIENT_ID or SHOPIFY_CLIENT_SECRET is missing.
        """
        if settings is None:
            settings = get_shopify_app_settings()
        try:
            settings.validate_credentials()
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        return cls(
            settings.client_id,
            settings.client_secret,
            settings.old_client_secret,
            http_timeout=settings.http_timeout,
        )

    @property
    def config(self) -> AppConfig:
        return self._config

    def __repr__(self) -> str:
        return f"ShopifyApp(client_id={self._config.client_id!r})"

    # Request verification

    def verify_webhook_req(self, req: RequestLike) -> RequestResult:
        return verify_webhook(self._config, to_request_input(req))

    def verify_flow_action_req(self, req: RequestLike) -> RequestResult:
        return verify_flow_action(self._config, to_request_input(req))

    def verify_checkout_ui_ext_req(self, req: RequestLike) -> NonExchangeableIdTokenResult:
        return verify_non_exchangeable(self._config, to_request_input(req), CHECKOUT_UI_EXTENSION)

    def verify_customer_account_ui_ext_req(self, req: RequestLike) -> NonExchangeableIdTokenResult:
        return verify_non_exchangeable(
            self._config, to_request_input(req), CUSTOMER_ACCOUNT_UI_EXTENSION
        )

    def verify_admin_ui_ext_req(self, req: RequestLike) -> ExchangeableIdTokenResult:
        return verify_exchangeable(self._config, to_request_input(req), ADMIN_UI_EXTENSION)

    def verify_pos_ui_ext_req(self, req: RequestLike) -> ExchangeableIdTokenResult:
        return verify_exchangeable(self._config, to_request_input(req), POS_UI_EXTENSION)

    def verify_app_home_req(
        self,
        req: RequestLike,
        app_home_patch_id_token_path: Any = "",
    ) -> ExchangeableIdTokenResult:
        """Verify an admin home request.

        Args:
            req: Inbound request.
            app_home_patch_id_token_path: Path of the app's patch-ID-token
                page, where document requests without a valid token are sent.
        """
        return verify_app_home(self._config, to_request_input(req), app_home_patch_id_token_path)

    def verify_app_proxy_req(self, req: RequestLike) -> AppProxyResult:
        return verify_app_proxy(self._config, to_request_input(req))

    # App home redirects

    def app_home_redirect(self, req: RequestLike, redirect_url: str, shop: str) -> RedirectResult:
        """Redirect to ``redirect_url`` (a relative path) inside the app iframe."""
        return app_home_redirect(to_request_input(req), redirect_url, shop)

    def app_home_parent_redirect(
        self,
        req: RequestLike,
        redirect_url: str,
        shop: str,
        target: str | None = None,
    ) -> RedirectResult:
        """Redirect the admin window (``_top``) or a new window (``_blank``) to ``redirect_url``."""
        return app_home_parent_redirect(to_request_input(req), redirect_url, shop, target)

    # Access tokens

    async def exchange_using_token_exchange(
        self,
        access_mode: str,
        id_token: IdToken | Mapping[str, Any] | None,
        invalid_token_response: ResponseInfo | Mapping[str, Any] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> TokenExchangeResult:
        return await exchange_using_token_exchange(
            self._config,
            access_mode,
            id_token,
            invalid_token_response=invalid_token_response,
            client=client,
            timeout=self._http_timeout,
        )

    async def refresh_token_exchanged_access_token(
        self,
        access_token: TokenExchangeAccessToken | Mapping[str, Any],
        client: httpx.AsyncClient | None = None,
    ) -> TokenExchangeResult:
        return await refresh_token_exchanged_access_token(
            self._config, access_token, client=client, timeout=self._http_timeout
        )

    async def exchange_using_client_credentials(
        self,
        shop: str,
        client: httpx.AsyncClient | None = None,
    ) -> ClientCredentialsResult:
        return await exchange_using_client_credentials(
            self._config, shop, client=client, timeout=self._http_timeout
        )

    # Admin API

    async def admin_graphql_request(
        self,
        query: str,
        shop: str,
        access_token: str,
        api_version: str,
        invalid_token_response: ResponseInfo | Mapping[str, Any] | None = None,
        variables: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        max_retries: int = 2,
        client: httpx.AsyncClient | None = None,
    ) -> GraphQLResult:
        return await admin_graphql_request(
            query,
            shop,
            access_token,
            api_version,
            invalid_token_response=invalid_token_response,
            variables=variables,
            headers=headers,
            max_retries=max_retries,
            client=client,
            timeout=self._http_timeout,
        )
