"""Backoff loop shared by the subgraph and allocation API clients.

Only connection-level failures and overloaded-server answers (429, 5xx)
are retried. Any other response goes back to the caller as is.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryError(Exception):
    """Raised when a request still fails after the last retry."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


class TransientHTTPError(Exception):
    """An overloaded or failing upstream answered with a retryable status."""


async def send_with_retry(
    send: Callable[[], Awaitable[httpx.Response]],
    *,
    description: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
) -> httpx.Response:
    """Call ``send`` until it yields a non-retryable response.

    The delay before retry ``n`` (0-based) is ``base_delay * 2**n``.

    Raises:
        RetryError: After ``max_retries`` retries all failed.
    """
    failure: Exception | None = None
    for attempt in range(max_retries + 1):
        if attempt:
            delay = base_delay * 2 ** (attempt - 1)
            logger.warning("%s failed (%s), retry %d/%d in %.1fs", description, failure, attempt, max_retries, delay)
            await asyncio.sleep(delay)
        try:
            response = await send()
        except httpx.TransportError as e:
            failure = e
            continue
        if response.status_code not in RETRY_STATUS_CODES:
            return response
        failure = TransientHTTPError(f"{response.request.url} returned HTTP {response.status_code}")

    raise RetryError(f"{description} failed after {max_retries + 1} attempts", last_exception=failure)
