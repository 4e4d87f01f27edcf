"""Retry with exponential backoff for upstream calls."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 200

NON_RETRYABLE_MARKERS = ("401", "403", "invalid api key", "unauthorized")
NON_RETRYABLE_STATUS = {401, 403}


def is_non_retryable(error: BaseException) -> bool:
    """Auth and permission failures are never worth retrying."""
    if getattr(error, "status_code", None) in NON_RETRYABLE_STATUS:
        return True
    message = str(error).lower()
    return any(marker in message for marker in NON_RETRYABLE_MARKERS)


class RetryExecutor:
    """Run an async operation, retrying transient failures.

    Delays are deterministic: base_delay_ms * 2**attempt (200, 400, 800 ms
    with the defaults). There is no jitter and no overall timeout.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    ) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if is_non_retryable(e):
                    raise
                if attempt >= max_retries:
                    raise
                delay_ms = base_delay_ms * (2 ** attempt)
                logger.warning(
                    "[RETRY] Attempt %d failed (%s), retrying in %dms", attempt + 1, e, delay_ms
                )
                await self._sleep(delay_ms / 1000)
                attempt += 1
