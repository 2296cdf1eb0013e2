"""Request verification and access token management for Shopify apps."""

from shopify_app._version import __version__
from shopify_app.app import ShopifyApp
from shopify_app.exceptions import ConfigurationError, IdTokenError, ShopifyAppError
from shopify_app.settings import ShopifyAppSettings, get_shopify_app_settings
from shopify_app.types import (
    AccessMode,
    AppConfig,
    AppProxyResult,
    AssociatedUser,
    ClientCredentialsAccessToken,
    ClientCredentialsResult,
    ExchangeableIdTokenResult,
    GraphQLResult,
    HttpLog,
    IdToken,
    Log,
    LogWithReq,
    NonExchangeableIdTokenResult,
    RedirectResult,
    RequestInput,
    RequestResult,
    ResponseInfo,
    TokenExchangeAccessToken,
    TokenExchangeResult,
)

__all__ = [
    "AccessMode",
    "AppConfig",
    "AppProxyResult",
    "AssociatedUser",
    "ClientCredentialsAccessToken",
    "ClientCredentialsResult",
    "ConfigurationError",
    "ExchangeableIdTokenResult",
    "GraphQLResult",
    "HttpLog",
    "IdToken",
    "IdTokenError",
    "Log",
    "LogWithReq",
    "NonExchangeableIdTokenResult",
    "RedirectResult",
    "RequestInput",
    "RequestResult",
    "ResponseInfo",
    "ShopifyApp",
    "ShopifyAppError",
    "ShopifyAppSettings",
    "TokenExchangeAccessToken",
    "TokenExchangeResult",
    "__version__",
    "get_shopify_app_settings",
]
