"""Rolling-window limit on how many jobs may start."""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class StartRateLimiter:
    """At most `max_starts` acquisitions in any `window_seconds` span."""

    def __init__(
        self,
        max_starts: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_starts < 1:
            raise ValueError("max_starts must be >= 1")
        self.max_starts = max_starts
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._starts: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._starts and self._starts[0] <= now - self.window_seconds:
            self._starts.popleft()

    def delay(self) -> float:
        """Seconds until another start is allowed; 0 if one is allowed now."""
        now = self._clock()
        self._prune(now)
        if len(self._starts) < self.max_starts:
            return 0.0
        return self._starts[0] + self.window_seconds - now

    def remaining(self) -> int:
        self._prune(self._clock())
        return max(0, self.max_starts - len(self._starts))

    async def acquire(self) -> None:
        async with self._lock:
            wait = self.delay()
            while wait > 0:
                logger.info(f"[WORKER] Start rate limit reached, waiting {wait:.1f}s")
                await self._sleep(wait)
                wait = self.delay()
            self._starts.append(self._clock())
