"""Per-provider circuit breaker.

A breaker opens after ``failure_threshold`` consecutive failures inside
``failure_window_seconds``, stays open for ``cooldown_seconds``, then admits
a single trial request. The trial's outcome closes or re-opens it.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation, requests flow through
    OPEN = "open"          # Failing, requests are blocked
    HALF_OPEN = "half_open"  # One trial request allowed


@dataclass(frozen=True)
class CircuitPermit:
    """Permission for one request, returned by ``CircuitBreaker.acquire``."""

    trial: bool = False
    generation: int = 0


class CircuitBreaker:
    """Circuit breaker for a single provider."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        failure_window_seconds: float = 300.0,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.failure_window_seconds = failure_window_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

        self._state = CircuitState.CLOSED
        self._failures: Deque[float] = deque()
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        # Incremented for every trial so stale permits cannot touch a newer one
        self._trial_generation = 0

    def _prune_failures(self, now: float) -> None:
        cutoff = now - self.failure_window_seconds
        while self._failures and self._failures[0] < cutoff:
            self._failures.popleft()

    def _cooldown_elapsed(self, now: float) -> bool:
        return self._opened_at is not None and now - self._opened_at >= self.cooldown_seconds

    def _holds_trial(self, permit: Optional[CircuitPermit]) -> bool:
        return (
            permit is not None
            and permit.trial
            and self._trial_in_flight
            and permit.generation == self._trial_generation
        )

    @property
    def state(self) -> CircuitState:
        """Current state, reporting OPEN as HALF_OPEN once the cool-down has passed."""
        if self._state == CircuitState.OPEN and self._cooldown_elapsed(self._clock()):
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def failure_count(self) -> int:
        self._prune_failures(self._clock())
        return len(self._failures)

    def is_open(self) -> bool:
        """True while requests must not be sent to this provider."""
        state = self.state
        if state == CircuitState.OPEN:
            return True
        return state == CircuitState.HALF_OPEN and self._trial_in_flight

    async def acquire(self) -> Optional[CircuitPermit]:
        """Reserve permission for one request.

        Returns None when the breaker is open or a half-open trial is
        already running.
        """
        async with self._lock:
            now = self._clock()
            if self._state == CircuitState.OPEN:
                if not self._cooldown_elapsed(now):
                    return None
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = False
                logger.info(f"Circuit for '{self.name}' transitioning to half-open")

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    return None
                self._trial_in_flight = True
                self._trial_generation += 1
                return CircuitPermit(trial=True, generation=self._trial_generation)
            return CircuitPermit()

    async def record_success(self, permit: Optional[CircuitPermit] = None) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                # Only the trial decides a half-open breaker
                if permit is not None and not self._holds_trial(permit):
                    return
                logger.info(f"Circuit for '{self.name}' closed after successful trial")
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._opened_at = None
            self._trial_in_flight = False

    async def record_failure(self, permit: Optional[CircuitPermit] = None) -> None:
        async with self._lock:
            now = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                if permit is not None and not self._holds_trial(permit):
                    return
                self._open(now)
                logger.warning(f"Circuit for '{self.name}' reopened after failed trial")
                return

            if self._state == CircuitState.OPEN:
                return

            self._failures.append(now)
            self._prune_failures(now)
            if len(self._failures) >= self.failure_threshold:
                count = len(self._failures)
                self._open(now)
                logger.warning(f"Circuit for '{self.name}' opened after {count} failures")

    async def release(self, permit: Optional[CircuitPermit]) -> None:
        """Give back a half-open trial slot without recording an outcome.

        Permits that do not hold the current trial are ignored.
        """
        async with self._lock:
            if self._holds_trial(permit):
                self._trial_in_flight = False

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._failures.clear()
        self._trial_in_flight = False

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        self._state = CircuitState.CLOSED
        self._failures.clear()
        self._opened_at = None
        self._trial_in_flight = False
        logger.info(f"Circuit for '{self.name}' manually reset")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "opened_at": self._opened_at,
            "failure_threshold": self.failure_threshold,
            "cooldown_seconds": self.cooldown_seconds,
        }
