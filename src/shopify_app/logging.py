"""Structured logging configuration using structlog.

Every operation returns its own ``log``/``http_logs`` for the caller to record.
In addition, the library emits structlog events so that an application which
calls :func:`configure_logging` gets a uniform stream of verification and
exchange outcomes:

- JSON output for production environments
- Console output with colors for development
- Secret and token redaction

Usage:
    from shopify_app.logging import configure_logging, get_logger

    configure_logging()
    logger = get_logger(__name__)
    logger.info("webhook_verified", shop="test-shop")
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from collections.abc import MutableMapping

Processor = structlog.types.Processor

SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "x-shopify-api-request-failure-reauthorize-url",
    }
)

# Any key containing one of these is redacted: client_secret, refresh_token,
# X-Shopify-Access-Token, X-Shopify-Hmac-Sha256, signature, ...
SENSITIVE_SUBSTRINGS: tuple[str, ...] = ("secret", "token", "hmac", "signature")

# Query parameters that authenticate app home and app proxy URLs.
_SENSITIVE_QUERY_PARAM = re.compile(r"([?&](?:id_token|signature|hmac)=)[^&#]*")

REDACTED_VALUE: str = "***REDACTED***"


class LoggingSettings(BaseSettings):
    """Logging configuration settings from environment variables.

    Attributes:
        log_level: Minimum log level to output (LOG_LEVEL). Default: INFO
        environment: Environment name for format selection (ENVIRONMENT).
            Default: development

    Example:
        >>> LoggingSettings(environment="production").use_json_logs
        True
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Minimum log level to output",
    )
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT",
        description="Environment name for format selection",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        if isinstance(v, str):
            return v.upper()
        return str(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known level.

        Raises:
            ValueError: If log level is not a valid Python logging level.
        """
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            msg = f"log_level must be one of {valid_levels}"
            raise ValueError(msg)
        return v

    @property
    def use_json_logs(self) -> bool:
        return self.environment == "production"

    @property
    def log_level_int(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)


class SensitiveDataProcessor:
    """Structlog processor to redact credentials from log context.

    Applied recursively, so request snapshots (``req``, ``headers``) logged
    as nested mappings are covered too. Redacts:

    1. Keys in SENSITIVE_FIELDS (case-insensitive), e.g. ``Authorization``
    2. Keys containing any of SENSITIVE_SUBSTRINGS, e.g. ``X-Shopify-Access-Token``
    3. ``id_token``, ``signature`` and ``hmac`` query values inside ``url`` fields

    Example:
        >>> processor = SensitiveDataProcessor()
        >>> processor(None, "info", {"event": "refresh", "refresh_token": "abc"})
        {'event': 'refresh', 'refresh_token': '***REDACTED***'}
    """

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        for key in list(event_dict.keys()):
            event_dict[key] = self._redact(key, event_dict[key])
        return event_dict

    def _redact(self, key: str, value: Any) -> Any:
        if self._is_sensitive(key):
            return REDACTED_VALUE
        if isinstance(value, Mapping):
            return {k: self._redact(str(k), v) for k, v in value.items()}
        if key.lower() == "url" and isinstance(value, str):
            return _SENSITIVE_QUERY_PARAM.sub(lambda m: m.group(1) + REDACTED_VALUE, value)
        return value

    def _is_sensitive(self, key: str) -> bool:
        key_lower = key.lower()
        if key_lower in SENSITIVE_FIELDS:
            return True
        return any(part in key_lower for part in SENSITIVE_SUBSTRINGS)


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached LoggingSettings instance.

    Clear cache with ``get_logging_settings.cache_clear()`` for testing.
    """
    return LoggingSettings()


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Configure structlog for structured logging.

    Should be called once by the embedding application during startup.

    Args:
        settings: Optional LoggingSettings instance. If not provided,
            settings are loaded from environment variables.
    """
    if settings is None:
        settings = get_logging_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        SensitiveDataProcessor(),
        structlog.processors.format_exc_info,
    ]

    if settings.use_json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level_int),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger carrying the given name.

    The logger is a lazy proxy: it is assembled from the configuration active
    when it first logs, so module-level loggers created at import time still
    pick up :func:`configure_logging` and its redaction. The name is carried
    as the ``logger_name`` key.

    Args:
        name: Logger name (typically __name__ from calling module).
            If None, returns unnamed logger.

    Returns:
        structlog logger with name context.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger_name=name)
