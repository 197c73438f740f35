"""
Concurrency limiting for Stage 3 calls.

Downloads and inference calls are expensive and rate limited upstream, so
the number running at once is capped by a counting semaphore. One limiter
is shared by every orchestrator run in the process; it is the only mutable
state shared between concurrent runs.
"""

import asyncio
import threading
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from .errors import ConfigurationError

DEFAULT_MAX_CONCURRENT = 4


class ConcurrencyLimiter:
    """
    Counting semaphore for Stage 3 work.

    asyncio semaphores belong to one event loop, so one is created lazily per
    running loop. Within a loop the limit is exact; counters are kept under
    a thread lock for status reporting.

    Usage:
        limiter = ConcurrencyLimiter(3)
        async with limiter.slot():
            await download_and_classify()
    """

    def __init__(self, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        """
        Args:
            max_concurrent: Maximum simultaneous Stage 3 tasks per event loop

        Raises:
            ConfigurationError: If max_concurrent < 1
        """
        if not isinstance(max_concurrent, int) or max_concurrent < 1:
            raise ConfigurationError(
                f"max_concurrent must be a positive integer, got {max_concurrent!r}"
            )
        self.max_concurrent = max_concurrent
        self._semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak = 0
        self._total = 0

    def _semaphore(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        with self._lock:
            semaphore = self._semaphores.get(loop)
            if semaphore is None:
                semaphore = asyncio.Semaphore(self.max_concurrent)
                self._semaphores[loop] = semaphore
            return semaphore

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block."""
        async with self._semaphore():
            with self._lock:
                self._in_flight += 1
                self._total += 1
                self._peak = max(self._peak, self._in_flight)
            try:
                yield
            finally:
                with self._lock:
                    self._in_flight -= 1

    def get_status(self) -> Dict:
        """
        Current limiter status.

        Returns:
            Dict with limit, in-flight count, peak and total acquisitions
        """
        with self._lock:
            return {
                "max_concurrent": self.max_concurrent,
                "in_flight": self._in_flight,
                "peak_in_flight": self._peak,
                "total_acquired": self._total,
            }

    def reset_stats(self) -> None:
        with self._lock:
            self._peak = self._in_flight
            self._total = 0


# Global limiter instance
_limiter: Optional[ConcurrencyLimiter] = None
_limiter_lock = threading.Lock()


def get_concurrency_limiter(max_concurrent: Optional[int] = None) -> ConcurrencyLimiter:
    """
    Get or create the process-wide limiter.

    Args:
        max_concurrent: Limit used when the limiter is first created.
            None accepts whatever limit the existing limiter has.

    Raises:
        ConfigurationError: If a limiter with a different limit already exists
    """
    global _limiter

    with _limiter_lock:
        if _limiter is None:
            _limiter = ConcurrencyLimiter(max_concurrent or DEFAULT_MAX_CONCURRENT)
        elif max_concurrent and max_concurrent != _limiter.max_concurrent:
            raise ConfigurationError(
                f"Concurrency limiter already created with limit "
                f"{_limiter.max_concurrent}; cannot switch to {max_concurrent}. "
                f"Pass an explicit ConcurrencyLimiter for a separate limit."
            )
        return _limiter


def reset_concurrency_limiter() -> None:
    """Drop the global limiter (mainly for testing)."""
    global _limiter
    with _limiter_lock:
        _limiter = None
