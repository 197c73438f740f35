"""
Unit tests for the Stage 3 concurrency limiter.

Critical: tests must not block; every wait is a short asyncio.sleep.
"""

import asyncio

import pytest

from docdetect.core.errors import ConfigurationError
from docdetect.core.rate_limiter import (
    DEFAULT_MAX_CONCURRENT,
    ConcurrencyLimiter,
    get_concurrency_limiter,
    reset_concurrency_limiter,
)


async def _hold(limiter, seconds, active, peaks):
    async with limiter.slot():
        active.append(1)
        peaks.append(len(active))
        await asyncio.sleep(seconds)
        active.pop()


class TestConcurrencyLimiter:
    """Tests for slot accounting."""

    @pytest.mark.parametrize("value", [0, -1, 2.5, None])
    def test_invalid_limit(self, value):
        with pytest.raises(ConfigurationError):
            ConcurrencyLimiter(value)

    @pytest.mark.timeout(10)
    def test_never_exceeds_limit(self):
        limiter = ConcurrencyLimiter(3)
        active, peaks = [], []

        async def main():
            await asyncio.gather(*(_hold(limiter, 0.02, active, peaks) for _ in range(10)))

        asyncio.run(main())

        status = limiter.get_status()
        assert max(peaks) == 3
        assert status["peak_in_flight"] == 3
        assert status["total_acquired"] == 10
        assert status["in_flight"] == 0

    @pytest.mark.timeout(10)
    def test_slot_released_on_error(self):
        limiter = ConcurrencyLimiter(1)

        async def failing():
            async with limiter.slot():
                raise RuntimeError("boom")

        async def main():
            with pytest.raises(RuntimeError):
                await failing()
            # Would deadlock if the slot leaked
            await asyncio.wait_for(_hold(limiter, 0, [], []), timeout=1)

        asyncio.run(main())
        assert limiter.get_status()["in_flight"] == 0

    @pytest.mark.timeout(10)
    def test_usable_across_event_loops(self):
        limiter = ConcurrencyLimiter(2)

        for _ in range(2):
            asyncio.run(_hold(limiter, 0, [], []))

        assert limiter.get_status()["total_acquired"] == 2

    def test_reset_stats(self):
        limiter = ConcurrencyLimiter(2)
        asyncio.run(_hold(limiter, 0, [], []))

        limiter.reset_stats()

        assert limiter.get_status()["total_acquired"] == 0
        assert limiter.get_status()["peak_in_flight"] == 0


class TestGlobalLimiter:
    """Tests for the process-wide limiter."""

    def test_singleton(self):
        assert get_concurrency_limiter() is get_concurrency_limiter()

    def test_default_limit(self):
        assert get_concurrency_limiter().max_concurrent == DEFAULT_MAX_CONCURRENT

    def test_same_limit_reuses_limiter(self):
        limiter = get_concurrency_limiter(2)

        assert get_concurrency_limiter(2) is limiter
        assert get_concurrency_limiter() is limiter

    def test_conflicting_limit_rejected(self):
        limiter = get_concurrency_limiter(2)

        with pytest.raises(ConfigurationError, match="already created with limit 2"):
            get_concurrency_limiter(8)
        assert limiter.max_concurrent == 2

    def test_reset(self):
        first = get_concurrency_limiter()
        reset_concurrency_limiter()
        assert get_concurrency_limiter() is not first
