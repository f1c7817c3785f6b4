"""Tests for retry strategies and RetryContext."""

from __future__ import annotations

import pytest

from linkspine.core.errors import NetworkError, RateLimitError, SourceError
from linkspine.execution.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    NoRetry,
    RetryContext,
)


class TestStrategies:
    def test_exponential_without_jitter(self):
        strategy = ExponentialBackoff(base_delay=1.0, jitter=False)
        assert [strategy.next_delay(a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_exponential_capped(self):
        strategy = ExponentialBackoff(base_delay=10.0, max_delay=15.0, jitter=False)
        assert strategy.next_delay(5) == 15.0

    def test_exponential_jitter_within_range(self):
        strategy = ExponentialBackoff(base_delay=4.0, jitter=True, jitter_range=0.25)
        for _ in range(20):
            assert 3.0 <= strategy.next_delay(0) <= 5.0

    def test_constant(self):
        assert ConstantBackoff(delay=30.0).next_delay(7) == 30.0

    def test_should_retry_respects_budget(self):
        strategy = ConstantBackoff(max_retries=2)
        assert strategy.should_retry(0, RateLimitError())
        assert strategy.should_retry(1, RateLimitError())
        assert not strategy.should_retry(2, RateLimitError())

    def test_should_retry_only_retryable(self):
        strategy = ConstantBackoff(max_retries=3)
        assert not strategy.should_retry(0, SourceError("x"))
        assert not strategy.should_retry(0, ValueError("x"))

    def test_hint_overrides_delay(self):
        strategy = ConstantBackoff(delay=30.0)
        assert strategy.delay_for(0, RateLimitError(retry_after=2)) == 2.0
        assert strategy.delay_for(0, RateLimitError()) == 30.0

    def test_no_retry(self):
        assert not NoRetry().should_retry(0, RateLimitError())


class TestRetryContext:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, no_sleep):
        calls = {"n": 0}

        async def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 3:
                raise NetworkError("reset")
            return "ok"

        retried = []
        ctx = RetryContext(
            ConstantBackoff(max_retries=3, delay=1.0),
            on_retry=lambda attempt, e, delay: retried.append((attempt, delay)),
            sleep=no_sleep,
        )
        assert await ctx.run_async(flaky) == "ok"
        assert ctx.attempts == 3
        assert retried == [(1, 1.0), (2, 1.0)]
        assert no_sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_raises_after_budget(self, no_sleep):
        async def always() -> None:
            raise NetworkError("down")

        ctx = RetryContext(ConstantBackoff(max_retries=2, delay=0.5), sleep=no_sleep)
        with pytest.raises(NetworkError):
            await ctx.run_async(always)
        assert ctx.attempts == 3
        assert len(ctx.errors) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, no_sleep):
        async def bad() -> None:
            raise SourceError("400")

        ctx = RetryContext(ConstantBackoff(max_retries=5), sleep=no_sleep)
        with pytest.raises(SourceError):
            await ctx.run_async(bad)
        assert ctx.attempts == 1
        assert no_sleep.delays == []
