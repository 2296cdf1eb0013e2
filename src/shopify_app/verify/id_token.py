"""ID token decoding shared by the extension and admin home verifiers.

ID tokens are HS256 JWTs signed with the app's client secret. The old secret
(when configured) is tried first, then the current one; the first secret
that verifies signature and expiry wins. The ``aud`` claim is compared to the
client ID after decoding rather than by the JWT library, so that an
audience mismatch is reported separately from a bad signature.
"""

from __future__ import annotations

from typing import Any

import jwt

from shopify_app.exceptions import IdTokenError
from shopify_app.types import AppConfig

ID_TOKEN_ALGORITHMS = ["HS256"]
ID_TOKEN_LEEWAY_SECONDS = 10
BEARER_PREFIX = "Bearer "

RETRY_INVALID_SESSION_HEADER = "X-Shopify-Retry-Invalid-Session-Request"

INVALID_ID_TOKEN_DETAIL = (
    "ID token verification failed. Respond 401 Unauthorized using the provided response."
)
EXPIRED_ID_TOKEN_DETAIL = (
    "ID token has expired. Respond 401 Unauthorized using the provided response."
)
INVALID_AUD_DETAIL = (
    "ID token audience (aud) claim does not match clientId. "
    "Respond 401 Unauthorized using the provided response."
)
MISSING_AUTHORIZATION_DETAIL = (
    "Required `Authorization` header is missing. "
    "Respond 401 Unauthorized using the provided response."
)


def retry_invalid_session_headers() -> dict[str, str]:
    """Headers telling App Bridge to fetch a new ID token and retry the request."""
    return {RETRY_INVALID_SESSION_HEADER: "1"}


def decode_id_token(token: str, config: AppConfig) -> dict[str, Any]:
    """Verify an ID token's signature and expiry and return its claims.

    Args:
        token: Compact JWT.
        config: App credentials. The old secret is tried before the current one.

    Returns:
        Verified claims. ``aud`` has not been checked; see :func:`audience_matches`.

    Raises:
        IdTokenError: ``expired_id_token`` when the last attempt failed on
            expiry, ``invalid_id_token`` for any other failure.
    """
    last_error: jwt.PyJWTError | None = None
    for secret in reversed(config.secrets):
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=ID_TOKEN_ALGORITHMS,
                leeway=ID_TOKEN_LEEWAY_SECONDS,
                options={"verify_aud": False},
            )
        except jwt.PyJWTError as exc:
            last_error = exc

    if isinstance(last_error, jwt.ExpiredSignatureError):
        raise IdTokenError("expired_id_token", EXPIRED_ID_TOKEN_DETAIL) from last_error
    raise IdTokenError("invalid_id_token", INVALID_ID_TOKEN_DETAIL) from last_error


def audience_matches(claims: dict[str, Any], config: AppConfig) -> bool:
    """Whether the ``aud`` claim is exactly the app's client ID."""
    return claims.get("aud") == config.client_id


def bearer_token(authorization: str) -> str | None:
    """Token from an ``Authorization: Bearer <token>`` value, None for other schemes."""
    if not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX) :]
