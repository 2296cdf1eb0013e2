"""Retry timing for rate-limited and transiently failing upstream calls.

Waiting goes through :func:`wait` so that the delay is a cooperative
``asyncio.sleep`` and tests can replace it.
"""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

DEFAULT_RETRY_AFTER_SECONDS = 1
BASE_BACKOFF_SECONDS = 1.0
MAX_JITTER_SECONDS = 0.1


async def wait(seconds: float) -> None:
    """Suspend the calling task for ``seconds``."""
    await asyncio.sleep(seconds)


def retry_after_seconds(
    response: httpx.Response,
    default: int = DEFAULT_RETRY_AFTER_SECONDS,
) -> int:
    """Whole seconds to wait according to the ``Retry-After`` header.

    Falls back to ``default`` when the header is absent or not a number.

    Example:
        >>> import httpx
        >>> retry_after_seconds(httpx.Response(429, headers={"Retry-After": "2.0"}))
        2
    """
    raw = response.headers.get("Retry-After")
    if raw is None:
        return default
    try:
        seconds = int(float(raw.strip()))
    except ValueError:
        return default
    return max(seconds, 0)


def backoff_delay(
    attempt: int,
    base_delay: float = BASE_BACKOFF_SECONDS,
    max_jitter: float = MAX_JITTER_SECONDS,
) -> float:
    """Exponential backoff with jitter: ``base_delay * 2**attempt + uniform(0, max_jitter)``.

    Args:
        attempt: Zero-based index of the attempt that just failed.
    """
    return base_delay * (2**attempt) + random.uniform(0, max_jitter)  # noqa: S311
