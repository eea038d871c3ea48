"""Background health polling and rolling performance metrics per provider."""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

from .factory import ProviderFactory
from .models import ProviderHealth, ProviderPerformance, ProviderType

logger = logging.getLogger(__name__)

MAX_TRACKED_OUTCOMES = 100
RECENT_ERROR_WINDOW_SECONDS = 15 * 60


@dataclass
class RequestOutcome:
    """Single recorded attempt or poll."""
    timestamp: float
    success: bool
    response_time_ms: float
    error: Optional[str] = None


class ProviderHealthMonitor:
    """Tracks availability and performance of every provider.

    Health is replaced both by the periodic poll and by live traffic
    reported through ``record_metrics``.
    """

    def __init__(
        self,
        factory: ProviderFactory,
        interval_seconds: float = 300.0,
        check_timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.factory = factory
        self.interval_seconds = interval_seconds
        self.check_timeout_seconds = check_timeout_seconds
        self._clock = clock
        self._health: Dict[ProviderType, ProviderHealth] = {}
        self._outcomes: Dict[ProviderType, Deque[RequestOutcome]] = {}
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _check_one(self, provider_type: ProviderType) -> None:
        provider = self.factory.get_provider(provider_type)
        if provider is None:
            return
        start = time.perf_counter()
        try:
            health = await asyncio.wait_for(provider.check_health(), timeout=self.check_timeout_seconds)
        except asyncio.TimeoutError:
            health = ProviderHealth(
                available=False,
                response_time_ms=(time.perf_counter() - start) * 1000,
                error="Health check timed out",
            )
            logger.warning(f"Health check timeout for '{provider_type.value}'")

        self._health[provider_type] = health
        self._record(provider_type, health.available, health.response_time_ms or 0.0, health.error)

    async def check_all_providers(self) -> Dict[ProviderType, ProviderHealth]:
        """Poll every initialized provider concurrently."""
        provider_types = self.factory.get_available_providers()
        results = await asyncio.gather(
            *(self._check_one(t) for t in provider_types), return_exceptions=True
        )
        for provider_type, result in zip(provider_types, results):
            if isinstance(result, Exception):
                logger.error(f"Health check error for '{provider_type.value}': {result}")
        return self.get_health_status()

    async def _monitor_loop(self) -> None:
        while True:
            try:
                await self.check_all_providers()
            except Exception as e:
                logger.error(f"Health check loop error: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start_monitoring(self) -> None:
        """Start background health check task."""
        if self._task is not None and not self._task.done():
            logger.warning("Health monitoring already running")
            return
        if self.interval_seconds <= 0:
            logger.info("Health monitoring disabled (interval is 0)")
            return
        self._task = asyncio.create_task(self._monitor_loop())
        logger.info(f"Started provider health monitoring every {self.interval_seconds}s")

    async def stop_monitoring(self) -> None:
        """Stop background health check task."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped provider health monitoring")

    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Live traffic
    # ------------------------------------------------------------------

    def _record(
        self,
        provider_type: ProviderType,
        success: bool,
        response_time_ms: float,
        error: Optional[str] = None,
    ) -> None:
        outcomes = self._outcomes.setdefault(provider_type, deque(maxlen=MAX_TRACKED_OUTCOMES))
        outcomes.append(RequestOutcome(self._clock(), success, response_time_ms, error))

    def record_metrics(
        self,
        provider_type: ProviderType,
        success: bool,
        response_time_ms: float,
        error: Optional[str] = None,
    ) -> None:
        """Record a live attempt and refresh the provider's health from it."""
        self._record(provider_type, success, response_time_ms, error)
        self._health[provider_type] = ProviderHealth(
            available=success,
            response_time_ms=response_time_ms,
            error=None if success else error,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_health_status(self) -> Dict[ProviderType, ProviderHealth]:
        return dict(self._health)

    def get_provider_health(self, provider_type: ProviderType) -> Optional[ProviderHealth]:
        return self._health.get(provider_type)

    def get_provider_metrics(self, provider_type: ProviderType) -> ProviderPerformance:
        outcomes = list(self._outcomes.get(provider_type, ()))
        if not outcomes:
            return ProviderPerformance()

        successes = sum(1 for o in outcomes if o.success)
        cutoff = self._clock() - RECENT_ERROR_WINDOW_SECONDS
        return ProviderPerformance(
            average_response_time_ms=sum(o.response_time_ms for o in outcomes) / len(outcomes),
            success_rate=successes / len(outcomes) * 100,
            total_requests=len(outcomes),
            recent_errors=sum(1 for o in outcomes if not o.success and o.timestamp >= cutoff),
        )

    def get_performance_summary(self) -> Dict[ProviderType, ProviderPerformance]:
        provider_types = set(self._outcomes) | set(self.factory.get_available_providers())
        return {t: self.get_provider_metrics(t) for t in provider_types}

    def get_system_health_summary(self) -> Dict[str, Any]:
        """Aggregate view across all providers."""
        health = self.get_health_status()
        healthy = [t.value for t, h in health.items() if h.available]
        unhealthy = [t.value for t, h in health.items() if not h.available]
        available = self.factory.get_available_providers()

        if not available:
            status = "unavailable"
        elif unhealthy and not healthy:
            status = "unhealthy"
        elif unhealthy:
            status = "degraded"
        else:
            status = "healthy"

        return {
            "status": status,
            "total_providers": len(available),
            "healthy_providers": healthy,
            "unhealthy_providers": unhealthy,
            "monitoring": self.is_monitoring(),
        }
