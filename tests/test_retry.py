"""Tests for the pool-exhaustion retry helper."""

import pytest

from survey_fields.errors import PoolExhaustedError
from survey_fields.retry import RetryPolicy, with_pool_retry


class Flaky:
    """Raises PoolExhaustedError ``failures`` times, then returns 'ok'."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise PoolExhaustedError("busy")
        return "ok", args, kwargs


class TestWithPoolRetry:

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        fn = Flaky(failures=2)
        result = await with_pool_retry(fn, 1, attempts=3, base_delay=0, key="v")
        assert result == ("ok", (1,), {"key": "v"})
        assert fn.calls == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        fn = Flaky(failures=5)
        with pytest.raises(PoolExhaustedError):
            await with_pool_retry(fn, attempts=3, base_delay=0)
        assert fn.calls == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        calls = 0

        async def broken():
            nonlocal calls
            calls += 1
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await with_pool_retry(broken, attempts=3, base_delay=0)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_policy_delegates(self):
        fn = Flaky(failures=1)
        policy = RetryPolicy(attempts=2, base_delay=0)
        assert (await policy.run(fn))[0] == "ok"
