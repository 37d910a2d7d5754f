"""In-memory minimum-interval pacer.

Notes:
- Per-process only: running multiple workers multiplies the effective rate.
- One slot, no burst: a leaky bucket of size 1 that remembers only the last
  request time.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from intelbot.adapters.rate_limit.base import AbstractPacer, PacingResult


class MinIntervalPacer(AbstractPacer):
    """Enforce a minimum gap between consecutive requests of one client.

    The check, the sleep and the update of the last-request timestamp all run
    under one ``asyncio.Lock``, so concurrent callers queue behind each other
    instead of reading the same stale timestamp.
    """

    def __init__(
        self,
        *,
        min_interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the pacer.

        Args:
            min_interval_seconds: Minimum time between request starts.
            clock: Monotonic time source in seconds.
            sleep: Coroutine used to wait; injectable for tests.

        Raises:
            ValueError: If min_interval_seconds is negative.
        """
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")

        self._min_interval = min_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_at: float | None = None

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval

    @property
    def last_request_at(self) -> float | None:
        return self._last_request_at

    async def acquire(self) -> PacingResult:
        async with self._lock:
            waited = 0.0
            if self._last_request_at is not None and self._min_interval > 0:
                wait = self._last_request_at + self._min_interval - self._clock()
                if wait > 0:
                    await self._sleep(wait)
                    waited = wait

            self._last_request_at = self._clock()
            return PacingResult(waited_seconds=waited, granted_at=self._last_request_at)
