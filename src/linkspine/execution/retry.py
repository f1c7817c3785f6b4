"""Retry strategies with backoff for transient store and webhook failures.

Only errors flagged ``retryable`` (rate limits, timeouts, 5xx) are retried.
When the failing call carried a retry hint (``Retry-After`` on a 429) the
hint wins over the computed delay.

Example:
    >>> from linkspine.execution.retry import ExponentialBackoff
    >>>
    >>> strategy = ExponentialBackoff(max_retries=5, base_delay=1.0, jitter=False)
    >>> [strategy.next_delay(a) for a in range(3)]
    [1.0, 2.0, 4.0]
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from linkspine.core.errors import get_retry_after, is_retryable

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    max_retries: int

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before next retry attempt.

        Args:
            attempt: Zero-based retry number (0 = first retry)

        Returns:
            Delay in seconds before next attempt
        """
        ...

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """Determine if another retry should be attempted.

        Args:
            attempt: Number of retries already made
            error: The exception that caused the failure
        """
        if attempt >= self.max_retries:
            return False
        if error is not None:
            return is_retryable(error)
        return True

    def delay_for(self, attempt: int, error: Exception | None = None) -> float:
        """Delay before retry ``attempt``; the error's hint overrides."""
        hint = get_retry_after(error) if error is not None else None
        if hint is not None:
            return max(0.0, float(hint))
        return self.next_delay(attempt)


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) + jitter
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        delay = min(
            self.base_delay * (self.multiplier ** attempt),
            self.max_delay,
        )

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0, delay)

        return delay


@dataclass
class ConstantBackoff(RetryStrategy):
    """Constant delay between retries.

    The store asks for a fixed 30 s pause after a 429, so this is the
    dispatcher's default.
    """

    max_retries: int = 3
    delay: float = 30.0

    def next_delay(self, attempt: int) -> float:
        return self.delay


@dataclass
class NoRetry(RetryStrategy):
    """No retry - fail immediately."""

    max_retries: int = 0

    def next_delay(self, attempt: int) -> float:
        return 0.0

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        return False


@dataclass
class RetryContext:
    """Retry state for one logical call.

    Example:
        >>> ctx = RetryContext(ExponentialBackoff(max_retries=3))
        >>> result = await ctx.run_async(post_period, payload)
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, Exception, float], None] | None = None
    sleep: Sleep = asyncio.sleep
    attempt: int = field(default=0, init=False)
    last_error: Exception | None = field(default=None, init=False)
    errors: list[tuple[int, Exception, datetime]] = field(default_factory=list, init=False)

    @property
    def attempts(self) -> int:
        """Number of attempts made."""
        return self.attempt

    async def run_async(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute an async function with retry logic.

        Raises:
            The last exception once retries are exhausted or the error is
            not retryable.
        """
        while True:
            self.attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                self.last_error = e
                self.errors.append((self.attempt, e, utcnow()))

                retries_made = self.attempt - 1
                if not self.strategy.should_retry(retries_made, e):
                    raise

                delay = self.strategy.delay_for(retries_made, e)

                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)

                await self.sleep(delay)
