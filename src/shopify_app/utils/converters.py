"""Boundary normalizers.

Public operations accept either the typed value objects from
:mod:`shopify_app.types` or plain mappings (for example a token loaded back
from a JSON column). These helpers turn the mapping form into the typed form
once, so business logic never branches on input shape.

Mapping keys may use snake_case (``refresh_token``) or the camelCase spelling
used by the other Shopify app libraries (``refreshToken``).
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from shopify_app.types import (
    AssociatedUser,
    IdToken,
    RequestInput,
    ResponseInfo,
    TokenExchangeAccessToken,
)


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_timestamp(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return str(value)


def to_request_input(req: RequestInput | Mapping[str, Any]) -> RequestInput:
    """Normalize a request mapping into a RequestInput.

    Missing keys become None so the verifier can report which one is wrong.
    """
    if isinstance(req, RequestInput):
        return req
    if not isinstance(req, Mapping):
        return RequestInput(method=None, headers=None, url=None, body=None)
    return RequestInput(
        method=req.get("method"),
        headers=req.get("headers"),
        url=req.get("url"),
        body=req.get("body"),
    )


def to_id_token(value: IdToken | Mapping[str, Any] | None) -> IdToken | None:
    """Normalize an ID token mapping into an IdToken.

    Returns None when ``value`` is None or not a mapping.
    """
    if value is None or isinstance(value, IdToken):
        return value
    if not isinstance(value, Mapping):
        return None
    claims = value.get("claims")
    return IdToken(
        exchangeable=bool(value.get("exchangeable", False)),
        token=_as_str(value.get("token")),
        claims=dict(claims) if isinstance(claims, Mapping) else {},
    )


def to_associated_user(value: AssociatedUser | Mapping[str, Any] | None) -> AssociatedUser | None:
    if value is None or isinstance(value, AssociatedUser):
        return value
    if not isinstance(value, Mapping):
        return None
    return AssociatedUser(
        id=_as_int(_pick(value, "id")),
        first_name=_as_str(_pick(value, "first_name", "firstName")),
        last_name=_as_str(_pick(value, "last_name", "lastName")),
        scope=_as_str(_pick(value, "scope")),
        email=_as_str(_pick(value, "email")),
        account_owner=bool(_pick(value, "account_owner", "accountOwner", default=False)),
        locale=_as_str(_pick(value, "locale")),
        collaborator=bool(_pick(value, "collaborator", default=False)),
        email_verified=bool(_pick(value, "email_verified", "emailVerified", default=False)),
    )


def to_token_exchange_access_token(
    value: TokenExchangeAccessToken | Mapping[str, Any],
) -> TokenExchangeAccessToken:
    """Normalize a stored access token mapping into a TokenExchangeAccessToken.

    Missing string fields become empty strings; the refresh engine reports
    them as configuration errors.
    """
    if isinstance(value, TokenExchangeAccessToken):
        return value
    if not isinstance(value, Mapping):
        value = {}
    return TokenExchangeAccessToken(
        access_mode=_as_str(_pick(value, "access_mode", "accessMode")),
        shop=_as_str(_pick(value, "shop")),
        token=_as_str(_pick(value, "token")),
        expires=_as_timestamp(_pick(value, "expires")),
        scope=_as_str(_pick(value, "scope")),
        refresh_token=_as_str(_pick(value, "refresh_token", "refreshToken")),
        refresh_token_expires=_as_timestamp(
            _pick(value, "refresh_token_expires", "refreshTokenExpires")
        ),
        user=to_associated_user(_pick(value, "user")),
    )


def to_response_info(value: ResponseInfo | Mapping[str, Any] | None) -> ResponseInfo | None:
    """Normalize a response mapping (``status``, ``body``, ``headers``) into a ResponseInfo."""
    if value is None or isinstance(value, ResponseInfo):
        return value
    if not isinstance(value, Mapping):
        return None
    headers = value.get("headers")
    return ResponseInfo(
        status=_as_int(value.get("status")),
        body=_as_str(value.get("body")),
        headers=(
            {str(k): str(v) for k, v in headers.items()} if isinstance(headers, Mapping) else {}
        ),
    )
