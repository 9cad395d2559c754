"""
Retry logic for handling transient failures.

Provides a coroutine combinator for retrying async operations that may
fail due to network issues or temporary errors. Every attempt is a full
re-invocation of the wrapped coroutine function, so the operation must be
idempotent.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    *args,
    max_attempts: int = 3,
    delay: float = 1.0,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    **kwargs,
) -> Any:
    """
    Await func(*args, **kwargs), retrying on failure with a fixed delay.

    Args:
        func: Coroutine function to call
        max_attempts: Total number of attempts (1 = no retries)
        delay: Seconds to wait between attempts
        on_retry: Optional callback(attempt, exception, delay), called before sleeping

    Raises:
        RetryError: After max_attempts failures, chained to the last exception

    Example:
        batch = await retry_async(fetcher.fetch, url, max_attempts=3, delay=2.0)
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            # Don't sleep after the last attempt
            if attempt == max_attempts:
                raise RetryError(
                    f"Failed after {max_attempts} attempts: {e}", attempts=max_attempts
                ) from e

            if on_retry:
                on_retry(attempt, e, delay)
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
