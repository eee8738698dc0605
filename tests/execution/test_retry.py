"""Tests for retry strategies used around page fetches."""

from __future__ import annotations

import pytest

from omnimap.core.errors import NotAuthenticatedError, UpstreamQueryError
from omnimap.execution.retry import ExponentialBackoff, NoRetry, RetryContext, is_retryable


class TestExponentialBackoff:
    def test_delays_grow_and_cap(self):
        strategy = ExponentialBackoff(base_delay=1.0, max_delay=3.0, jitter=False)
        assert [strategy.next_delay(i) for i in range(4)] == [1.0, 2.0, 3.0, 3.0]

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=1.0, jitter=True, jitter_range=0.25)
        for _ in range(50):
            assert 0.75 <= strategy.next_delay(0) <= 1.25

    def test_should_retry_respects_flag(self):
        strategy = ExponentialBackoff(max_retries=2)
        assert strategy.should_retry(1, UpstreamQueryError("flaky")) is True
        assert strategy.should_retry(1, NotAuthenticatedError("denied")) is False
        assert strategy.should_retry(3, UpstreamQueryError("flaky")) is False


class TestRetryContext:
    def test_retries_then_succeeds(self):
        calls = []
        sleeps = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise UpstreamQueryError("HTTP 503")
            return "page"

        ctx = RetryContext(ExponentialBackoff(max_retries=2, jitter=False), sleep=sleeps.append)
        assert ctx.run(flaky) == "page"
        assert ctx.attempt == 3
        assert sleeps == [0.5, 1.0]

    def test_exhausted_raises_last_error(self):
        def always_fails():
            raise UpstreamQueryError("HTTP 500")

        ctx = RetryContext(ExponentialBackoff(max_retries=1, jitter=False), sleep=lambda s: None)
        with pytest.raises(UpstreamQueryError):
            ctx.run(always_fails)
        assert len(ctx.errors) == 2

    def test_non_retryable_fails_fast(self):
        ctx = RetryContext(ExponentialBackoff(max_retries=5), sleep=lambda s: None)
        with pytest.raises(NotAuthenticatedError):
            ctx.run(lambda: (_ for _ in ()).throw(NotAuthenticatedError("401")))
        assert ctx.attempt == 1

    def test_on_retry_callback(self):
        seen = []
        attempts = iter([UpstreamQueryError("x"), None])

        def func():
            err = next(attempts)
            if err:
                raise err
            return 1

        ctx = RetryContext(
            ExponentialBackoff(max_retries=1, jitter=False),
            on_retry=lambda attempt, error, delay: seen.append((attempt, delay)),
            sleep=lambda s: None,
        )
        ctx.run(func)
        assert seen == [(1, 0.5)]

    def test_no_retry(self):
        ctx = RetryContext(NoRetry(), sleep=lambda s: None)
        with pytest.raises(UpstreamQueryError):
            ctx.run(lambda: (_ for _ in ()).throw(UpstreamQueryError("x")))


def test_is_retryable_plain_exception():
    assert is_retryable(ValueError("x")) is False
