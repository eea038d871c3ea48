"""Sliding-window rate limiter for outbound provider requests."""

import asyncio
import time
from collections import deque
from typing import Callable, Deque


class RateLimiter:
    """Request-count limiter over a rolling window.

    ``acquire`` is non-blocking; ``wait`` polls with backoff until a slot frees
    up or the deadline passes.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._timestamps: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def acquire(self) -> bool:
        """Record a request if the window has room."""
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) >= self.max_requests:
            return False
        self._timestamps.append(now)
        return True

    def seconds_until_available(self) -> float:
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) < self.max_requests:
            return 0.0
        return max(0.0, self._timestamps[0] + self.window_seconds - now)

    async def wait(self, max_wait_seconds: float) -> bool:
        """Block until a slot is acquired; False once ``max_wait_seconds`` elapse."""
        deadline = self._clock() + max_wait_seconds
        while True:
            if self.acquire():
                return True
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.seconds_until_available() or 0.05, remaining))

    @property
    def in_flight(self) -> int:
        self._prune(self._clock())
        return len(self._timestamps)
