"""Exception hierarchy for shopify-app.

Operations never raise: verification and exchange failures are returned as
typed results. Exceptions are reserved for construction-time programming
errors (missing credentials) and for signalling inside a verifier, where they
are caught and converted into results before reaching the caller.

Example:
    >>> from shopify_app.exceptions import ConfigurationError
    >>> raise ConfigurationError("clientId is required", context={"field": "client_id"})
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "ConfigurationError",
    "IdTokenError",
    "ShopifyAppError",
]


class ShopifyAppError(Exception):
    """Base class for all shopify-app errors.

    Attributes:
        error_code: Machine-readable error code.
        message: Human-readable error description.
        context: Structured debugging information.
    """

    error_code: str = "SHOPIFY_APP_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(ShopifyAppError, ValueError):
    """Raised when the app is constructed with missing or invalid credentials.

    Subclasses ValueError so callers validating settings can catch either.
    """

    error_code: str = "CONFIGURATION_ERROR"


class IdTokenError(ShopifyAppError):
    """Raised by the ID token decoder when no configured secret verifies a token.

    Attributes:
        code: Result code to report (``invalid_id_token`` or ``expired_id_token``).
    """

    error_code: str = "ID_TOKEN_ERROR"

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message, context={"code": code})
