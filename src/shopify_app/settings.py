"""Shopify app configuration settings.

Loaded from environment variables with SHOPIFY_ prefix.
Follows Pydantic BaseSettings pattern for type-safe configuration.

Environment Variables:
    SHOPIFY_CLIENT_ID: App client ID (the API key shown in the Partner Dashboard)
    SHOPIFY_CLIENT_SECRET: App client secret
    SHOPIFY_OLD_CLIENT_SECRET: Previous client secret, kept during secret rotation
    SHOPIFY_HTTP_TIMEOUT: Timeout in seconds for outbound HTTP calls
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShopifyAppSettings(BaseSettings):
    """Shopify app configuration loaded from environment variables.

    Environment Variables:
        SHOPIFY_CLIENT_ID: App client ID
        SHOPIFY_CLIENT_SECRET: App client secret (hidden from repr)
        SHOPIFY_OLD_CLIENT_SECRET: Previous client secret (hidden from repr)
        SHOPIFY_HTTP_TIMEOUT: Outbound HTTP timeout in seconds

    Example:
        >>> settings = ShopifyAppSettings()
        >>> settings.http_timeout
        10.0
        >>> settings.is_configured()
        False
    """

    model_config = SettingsConfigDict(
        env_prefix="SHOPIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    client_id: str = Field(
        default="",
        description="App client ID",
    )
    client_secret: str = Field(
        default="",
        repr=False,
        description="App client secret used to sign webhooks, proxies and ID tokens",
    )
    old_client_secret: str | None = Field(
        default=None,
        repr=False,
        description="Previous client secret, accepted while a rotation is in progress",
    )
    http_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout in seconds for token endpoint and Admin API calls",
    )

    @field_validator("old_client_secret", mode="before")
    @classmethod
    def empty_old_secret_is_none(cls, v: object) -> object:
        """Treat an empty SHOPIFY_OLD_CLIENT_SECRET as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def validate_credentials(self) -> None:
        """Validate credential completeness.

        Raises:
            ValueError: If the client ID or client secret is missing.
        """
        if not self.client_id:
            raise ValueError("SHOPIFY_CLIENT_ID is required")

        if not self.client_secret:
            raise ValueError("SHOPIFY_CLIENT_SECRET is required")

    def is_configured(self) -> bool:
        """Check if credentials are complete (non-throwing).

        Returns:
            True if both client ID and client secret are set.
        """
        return bool(self.client_id and self.client_secret)


@lru_cache(maxsize=1)
def get_shopify_app_settings() -> ShopifyAppSettings:
    """Get singleton ShopifyAppSettings instance.

    Clear cache with ``get_shopify_app_settings.cache_clear()`` for testing.

    Returns:
        ShopifyAppSettings instance with configuration from environment.
    """
    return ShopifyAppSettings()
