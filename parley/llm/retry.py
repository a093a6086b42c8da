"""
Bounded retries with exponential backoff.

Attempt N that fails (with N < attempts) waits ``2**N * 1000`` ms before
attempt N + 1, so attempt 1 waits 2000 ms, attempt 2 waits 4000 ms, and so
on. There is no jitter and no classification inside BackendError: every
backend failure is retried identically. The wait suspends only the calling
task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from parley.config.logging import get_logger
from parley.errors import BackendError, RequestFailedError

logger = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]
RetryCallback = Callable[[int, BaseException, int], None]


def compute_delay_ms(attempt: int) -> int:
    """Backoff before the attempt after ``attempt`` (1-based)."""
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return (2 ** attempt) * 1000


class RetryExecutor:
    """
    Runs an async operation up to ``attempts`` times.

    Args:
        sleep: Awaitable sleep taking seconds (injectable for tests)
        retry_on: Exception types that trigger a retry; anything else
            propagates immediately
    """

    def __init__(
        self,
        sleep: SleepFn = asyncio.sleep,
        retry_on: tuple[type[BaseException], ...] = (BackendError,),
    ):
        self._sleep = sleep
        self._retry_on = retry_on

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        attempts: int,
        on_retry: RetryCallback | None = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            attempts: Total attempts including the first (>= 1)
            on_retry: Called as ``on_retry(attempt, error, delay_ms)`` before
                each backoff wait

        Raises:
            RequestFailedError: After the final attempt fails, with the last
                error as ``cause``
            ValueError: If ``attempts`` < 1
        """
        if attempts < 1:
            raise ValueError("attempts must be >= 1")

        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except self._retry_on as e:
                if attempt == attempts:
                    logger.debug(f"Attempt {attempt}/{attempts} failed, giving up: {e}")
                    raise RequestFailedError(cause=e, attempts=attempts) from e

                delay_ms = compute_delay_ms(attempt)
                logger.debug(f"Attempt {attempt}/{attempts} failed, retrying in {delay_ms}ms: {e}")
                if on_retry is not None:
                    on_retry(attempt, e, delay_ms)
                await self._sleep(delay_ms / 1000)

        # Unreachable: the loop either returns or raises
        raise AssertionError("retry loop exited without a result")
