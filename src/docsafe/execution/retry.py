"""Retry with backoff for asynchronous operations.

A failing operation is re-invoked under a :class:`RetryPolicy` until it
succeeds, the policy's ``is_retryable`` predicate declines the error, or
``max_attempts`` total attempts have been made.

Delay before retry ``n`` (zero-based)::

    exponential:  base_delay * 2 ** n      (capped at max_delay when set)
    constant:     base_delay

Example:
    >>> from docsafe.execution.retry import RetryPolicy, with_retry
    >>> from docsafe.core.errors import is_transient_save_error
    >>>
    >>> policy = RetryPolicy(max_attempts=3, base_delay=1.0,
    ...                      is_retryable=is_transient_save_error)
    >>> await with_retry(save, policy, on_retry=lambda n: print("retry", n))
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar

from docsafe.core.logging import get_logger
from docsafe.core.timestamps import utc_now

logger = get_logger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[Any]]


def _always(error: Exception) -> bool:
    return True


@dataclass
class RetryPolicy:
    """Retry configuration.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay in seconds before the first retry
        use_exponential_backoff: Double the delay on every retry
        max_delay: Optional cap on any single delay
        is_retryable: Predicate deciding whether an error may be retried
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    use_exponential_backoff: bool = True
    max_delay: float | None = None
    is_retryable: Callable[[Exception], bool] = field(default=_always, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def next_delay(self, retry_index: int) -> float:
        """Delay in seconds before retry ``retry_index`` (0 = first retry)."""
        delay = self.base_delay * (2 ** retry_index) if self.use_exponential_backoff else self.base_delay
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return max(0.0, delay)


@dataclass
class RetryContext:
    """Tracks one retried call.

    Example:
        >>> ctx = RetryContext(RetryPolicy(max_attempts=3))
        >>> result = await ctx.run(call_api)
        >>> ctx.attempt
        1
    """

    policy: RetryPolicy
    on_retry: Callable[[int], Any] | None = None
    sleep: Sleeper = field(default=asyncio.sleep, repr=False)
    attempt: int = field(default=0, init=False)
    last_error: Exception | None = field(default=None, init=False)
    errors: list[tuple[int, Exception, datetime]] = field(default_factory=list, init=False)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Execute ``operation`` with retry logic.

        Raises:
            The first non-retryable error, or the last error once attempts run out
        """
        while True:
            self.attempt += 1
            try:
                return await operation()
            except Exception as e:
                self.last_error = e
                self.errors.append((self.attempt, e, utc_now()))

                if not self.policy.is_retryable(e):
                    logger.debug("retry.not_retryable", attempt=self.attempt, error=str(e))
                    raise

                if self.attempt >= self.policy.max_attempts:
                    logger.warning(
                        "retry.exhausted",
                        attempts=self.attempt,
                        error=str(e),
                    )
                    raise

                delay = self.policy.next_delay(self.attempt - 1)
                logger.debug("retry.scheduled", attempt=self.attempt, delay=delay, error=str(e))

                if self.on_retry:
                    self.on_retry(self.attempt)

                await self.sleep(delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    on_retry: Callable[[int], Any] | None = None,
    *,
    sleep: Sleeper = asyncio.sleep,
) -> T:
    """Run ``operation`` under ``policy`` (default: 3 attempts, exponential, retry all).

    Args:
        operation: Zero-argument coroutine function
        policy: Retry policy
        on_retry: Called with the number of failed attempts so far, before each sleep
        sleep: Awaitable sleep, injectable for tests
    """
    ctx = RetryContext(policy=policy or RetryPolicy(), on_retry=on_retry, sleep=sleep)
    return await ctx.run(operation)


__all__ = ["RetryPolicy", "RetryContext", "with_retry"]
