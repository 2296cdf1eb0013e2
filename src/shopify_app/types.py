"""Immutable value objects and result variants.

Every operation returns one of a small closed set of result dataclasses that
share the same spine (``ok``, ``shop``, ``log``, ``response``). When ``ok`` is
False the ``response`` is complete and can be relayed to the client verbatim.

All dataclasses are frozen: results are created fresh per call and never
mutated afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

__all__ = [
    "AccessMode",
    "AppConfig",
    "AppProxyResult",
    "AssociatedUser",
    "ClientCredentialsAccessToken",
    "ClientCredentialsResult",
    "ExchangeableIdTokenResult",
    "GraphQLResult",
    "HttpLog",
    "IdToken",
    "Log",
    "LogWithReq",
    "NonExchangeableIdTokenResult",
    "RedirectResult",
    "RequestInput",
    "RequestResult",
    "ResponseInfo",
    "TokenExchangeAccessToken",
    "TokenExchangeResult",
]


class AccessMode(StrEnum):
    """Access token flavour requested from the token exchange endpoint."""

    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True, slots=True)
class AppConfig:
    """App credentials shared by every operation.

    Read-only after construction; safe to share across threads and tasks.

    Attributes:
        client_id: App client ID. Expected ``aud`` of every ID token.
        client_secret: Current client secret.
        old_client_secret: Previous client secret, accepted during rotation.
    """

    client_id: str
    client_secret: str = field(repr=False)
    old_client_secret: str | None = field(default=None, repr=False)

    @property
    def secrets(self) -> tuple[str, ...]:
        """Secrets for HMAC checks, current first."""
        if self.old_client_secret is None:
            return (self.client_secret,)
        return (self.client_secret, self.old_client_secret)


@dataclass(frozen=True, slots=True)
class RequestInput:
    """Inbound HTTP request as seen by the verifiers.

    Field types are not enforced here; verifiers report structural problems
    as ``configuration_error`` results.
    """

    method: Any
    headers: Any
    url: Any
    body: Any = ""

    def as_dict(self) -> dict[str, Any]:
        body = self.body
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        headers = dict(self.headers) if isinstance(self.headers, Mapping) else self.headers
        return {"method": self.method, "headers": headers, "url": self.url, "body": body}


@dataclass(frozen=True, slots=True)
class ResponseInfo:
    """Response the caller should send (or relay) to its client."""

    status: int
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"status": self.status, "body": self.body, "headers": dict(self.headers)}


@dataclass(frozen=True, slots=True)
class Log:
    """Top-level outcome of an operation.

    Attributes:
        code: Short machine-readable result code (e.g. ``invalid_hmac``).
        detail: Human-readable explanation including the suggested response.
    """

    code: str
    detail: str


@dataclass(frozen=True, slots=True)
class LogWithReq:
    """Outcome of a request verification, with a snapshot of the request."""

    code: str
    detail: str
    req: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class HttpLog:
    """One outbound HTTP attempt: what was sent, what came back, how it was classified."""

    code: str
    detail: str
    req: dict[str, Any]
    res: ResponseInfo


@dataclass(frozen=True, slots=True)
class IdToken:
    """Decoded ID token.

    Attributes:
        exchangeable: Whether the token may be traded for an access token.
            Fixed by the surface that verified it, never read from the token.
        token: Raw compact JWT.
        claims: Verified claims.
    """

    exchangeable: bool
    token: str
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AssociatedUser:
    """Merchant staff member an online access token is bound to."""

    id: int
    first_name: str = ""
    last_name: str = ""
    scope: str = ""
    email: str = ""
    account_owner: bool = False
    locale: str = ""
    collaborator: bool = False
    email_verified: bool = False


@dataclass(frozen=True, slots=True)
class TokenExchangeAccessToken:
    """Access token obtained through token exchange or refresh.

    ``expires`` and ``refresh_token_expires`` are ISO-8601 UTC timestamps
    (``2024-01-01T00:00:00Z``), or None for non-expiring tokens.
    """

    access_mode: str
    shop: str
    token: str = field(repr=False)
    expires: str | None
    scope: str
    refresh_token: str = field(repr=False)
    refresh_token_expires: str | None
    user: AssociatedUser | None = None


@dataclass(frozen=True, slots=True)
class ClientCredentialsAccessToken:
    """Server-to-server access token. Always offline, never bound to a user."""

    shop: str
    token: str = field(repr=False)
    expires: str | None
    scope: str
    access_mode: str = AccessMode.OFFLINE.value
    user: None = None


@dataclass(frozen=True, slots=True)
class RequestResult:
    """Result of webhook and Flow action verification."""

    ok: bool
    shop: str | None
    log: LogWithReq
    response: ResponseInfo


@dataclass(frozen=True, slots=True)
class NonExchangeableIdTokenResult:
    """Result of checkout and customer account UI extension verification."""

    ok: bool
    shop: str | None
    id_token: IdToken | None
    log: LogWithReq
    response: ResponseInfo


@dataclass(frozen=True, slots=True)
class ExchangeableIdTokenResult:
    """Result of admin home, admin UI extension and POS UI extension verification.

    Attributes:
        new_id_token_response: Response to send if a later downstream call
            finds the session invalid; it makes the host mint a fresh ID token
            and retry the request.
    """

    ok: bool
    shop: str | None
    id_token: IdToken | None
    user_id: str | None
    new_id_token_response: ResponseInfo | None
    log: LogWithReq
    response: ResponseInfo


@dataclass(frozen=True, slots=True)
class AppProxyResult:
    """Result of app proxy verification.

    ``logged_in_customer_id`` identifies a storefront customer, never a
    merchant staff member.
    """

    ok: bool
    shop: str | None
    logged_in_customer_id: str | None
    log: LogWithReq
    response: ResponseInfo


@dataclass(frozen=True, slots=True)
class TokenExchangeResult:
    """Result of token exchange and token refresh."""

    ok: bool
    shop: str | None
    access_token: TokenExchangeAccessToken | None
    log: Log
    http_logs: tuple[HttpLog, ...]
    response: ResponseInfo


@dataclass(frozen=True, slots=True)
class ClientCredentialsResult:
    """Result of the client credentials grant."""

    ok: bool
    shop: str | None
    access_token: ClientCredentialsAccessToken | None
    log: Log
    http_logs: tuple[HttpLog, ...]
    response: ResponseInfo


@dataclass(frozen=True, slots=True)
class GraphQLResult:
    """Result of an Admin GraphQL request."""

    ok: bool
    shop: str | None
    data: dict[str, Any] | None
    extensions: dict[str, Any] | None
    log: Log
    http_logs: tuple[HttpLog, ...]
    response: ResponseInfo


@dataclass(frozen=True, slots=True)
class RedirectResult:
    """Result of the app home redirect helpers.

    Attributes:
        location: Final redirect target, None when the redirect was rejected.
        target: Window the parent redirect opens ``location`` in (``_top`` or
            ``_blank``); None for in-app redirects.
    """

    ok: bool
    shop: str | None
    location: str | None
    target: str | None
    log: LogWithReq
    response: ResponseInfo
