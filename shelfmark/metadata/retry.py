"""
Async retry with exponential backoff.

Applied to the Google Books adapter only; the other sources fail fast
and let the merge fill the gap.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from loguru import logger


T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryableStatusError(Exception):
    """Raised inside a retried call to request another attempt."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")


def is_retryable_http_error(exc: BaseException) -> bool:
    """Default predicate: retryable status, timeouts and transport errors."""
    if isinstance(exc, RetryableStatusError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.15,
    retryable: Callable[[BaseException], bool] = is_retryable_http_error,
    label: str = "operation",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Run ``operation`` up to ``attempts`` times.

    The delay before attempt ``n`` (1-based, n > 1) is
    ``base_delay * 2 ** (n - 2)``. Non-retryable errors and the final
    failure propagate unchanged.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    sleep = sleep or asyncio.sleep

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if attempt >= attempts or not retryable(exc):
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"{label}: attempt {attempt}/{attempts} failed ({type(exc).__name__}: {exc}), "
                f"retrying in {delay:.2f}s"
            )
            await sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
