"""Provider failover with circuit breakers and degraded fallbacks.

``analyze_with_fallback`` always returns a result. Providers are attempted
in chain order; when all of them fail, the last known genuine result for
the same content is served with reduced confidence, and failing that a
neutral zero-confidence placeholder.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from .. import metrics
from .base import BaseLLMProvider
from .circuit_breaker import CircuitBreaker, CircuitState
from .exceptions import ProviderError, ProviderErrorType
from .factory import ProviderFactory
from .health_monitor import ProviderHealthMonitor
from .models import (
    CACHED_FALLBACK_PROVIDER,
    BiasAnalysisRequest,
    BiasAnalysisResult,
    FactoryConfig,
    ProviderType,
    neutral_result,
)

if TYPE_CHECKING:
    from ..cache.analysis_cache import BiasAnalysisCache

logger = logging.getLogger(__name__)


class ProviderFallbackManager:
    """Runs one analysis across the provider chain."""

    def __init__(
        self,
        factory: ProviderFactory,
        config: FactoryConfig,
        health_monitor: ProviderHealthMonitor,
        cache: Optional["BiasAnalysisCache"] = None,
        failure_threshold: int = 3,
        failure_window_seconds: float = 300.0,
        cooldown_seconds: float = 300.0,
        cached_confidence_penalty: float = 20.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.factory = factory
        self.config = config
        self.health_monitor = health_monitor
        self.cache = cache
        self.cached_confidence_penalty = cached_confidence_penalty
        self._breakers: Dict[ProviderType, CircuitBreaker] = {
            provider_type: CircuitBreaker(
                provider_type.value,
                failure_threshold=failure_threshold,
                failure_window_seconds=failure_window_seconds,
                cooldown_seconds=cooldown_seconds,
                clock=clock,
            )
            for provider_type in config.provider_chain
        }

    def get_circuit_breaker(self, provider_type: ProviderType) -> Optional[CircuitBreaker]:
        return self._breakers.get(provider_type)

    # ------------------------------------------------------------------
    # Candidate selection
    # ------------------------------------------------------------------

    def _ordered_chain(self, preferred_provider: Optional[ProviderType]) -> List[ProviderType]:
        chain = self.config.provider_chain
        if preferred_provider is not None and self.factory.get_provider(preferred_provider) is not None:
            chain = [preferred_provider] + [t for t in chain if t != preferred_provider]
        return chain

    def _candidates(
        self, preferred_provider: Optional[ProviderType]
    ) -> List[Tuple[ProviderType, BaseLLMProvider]]:
        candidates = []
        for provider_type in self._ordered_chain(preferred_provider):
            provider = self.factory.get_provider(provider_type)
            if provider is None:
                continue
            breaker = self._breakers.get(provider_type)
            if breaker is not None and breaker.is_open():
                logger.debug(f"Skipping {provider_type.value}: circuit {breaker.state.value}")
                continue
            candidates.append((provider_type, provider))

        if not self.config.enable_failover:
            candidates = candidates[:1]
        return candidates

    def _breaker_for(self, provider_type: ProviderType) -> CircuitBreaker:
        breaker = self._breakers.get(provider_type)
        if breaker is None:
            breaker = CircuitBreaker(provider_type.value)
            self._breakers[provider_type] = breaker
        return breaker

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def _attempt(
        self,
        provider_type: ProviderType,
        provider: BaseLLMProvider,
        request: BiasAnalysisRequest,
    ) -> BiasAnalysisResult:
        # Retries inside the provider share this bound
        timeout = provider.config.timeout_seconds
        try:
            return await asyncio.wait_for(provider.analyze_article(request), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(
                ProviderErrorType.TIMEOUT, provider_type.value, f"No result within {timeout:g}s", cause=e
            )

    async def analyze_with_fallback(
        self,
        request: BiasAnalysisRequest,
        preferred_provider: Optional[ProviderType] = None,
    ) -> BiasAnalysisResult:
        """Analyze ``request`` with the first provider that succeeds. Never raises."""
        if not request.has_content:
            # Caller error, not a provider fault: breakers and health stay untouched
            logger.warning("Rejecting bias analysis request with empty title or content")
            result = neutral_result()
            metrics.record_fallback(result.provider)
            return result

        fingerprint = request.fingerprint()
        candidates = self._candidates(preferred_provider)
        if not candidates:
            logger.warning("No bias analysis provider is currently available")

        for provider_type, provider in candidates:
            breaker = self._breaker_for(provider_type)
            permit = await breaker.acquire()
            if permit is None:
                logger.debug(f"Skipping {provider_type.value}: half-open trial already in flight")
                continue

            start = time.perf_counter()
            try:
                result = await self._attempt(provider_type, provider, request)
            except asyncio.CancelledError:
                await breaker.release(permit)
                raise
            except Exception as e:
                elapsed_ms = (time.perf_counter() - start) * 1000
                message = e.message if isinstance(e, ProviderError) else str(e) or type(e).__name__
                self.health_monitor.record_metrics(provider_type, False, elapsed_ms, message)
                metrics.record_provider_attempt(provider_type.value, False, elapsed_ms)
                await breaker.record_failure(permit)
                metrics.set_circuit_state(provider_type.value, breaker.state.value)
                logger.warning(f"Provider {provider_type.value} failed, trying next: {message}")
                continue

            elapsed_ms = (time.perf_counter() - start) * 1000
            self.health_monitor.record_metrics(provider_type, True, elapsed_ms)
            metrics.record_provider_attempt(provider_type.value, True, elapsed_ms)
            await breaker.record_success(permit)
            metrics.set_circuit_state(provider_type.value, breaker.state.value)
            await self._remember(fingerprint, result)
            return result

        return await self._degraded_result(fingerprint)

    async def _remember(self, fingerprint: str, result: BiasAnalysisResult) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set_stale(fingerprint, result)
        except Exception as e:
            logger.warning(f"Failed to store fallback copy of analysis: {e}")

    async def _degraded_result(self, fingerprint: str) -> BiasAnalysisResult:
        cached = None
        if self.cache is not None:
            try:
                cached = await self.cache.get_last_known(fingerprint)
            except Exception as e:
                logger.warning(f"Failed to read cached analysis for fallback: {e}")

        if cached is not None:
            logger.warning("All providers failed, serving cached analysis with reduced confidence")
            metrics.record_fallback(CACHED_FALLBACK_PROVIDER)
            confidence = max(0.0, cached.confidence - self.cached_confidence_penalty)
            nested = max(0.0, cached.bias_analysis.confidence - self.cached_confidence_penalty)
            return cached.model_copy(update={
                "provider": CACHED_FALLBACK_PROVIDER,
                "confidence": confidence,
                "bias_analysis": cached.bias_analysis.model_copy(update={"confidence": nested}),
                "processing_time_ms": 0,
            })

        logger.error("All providers failed and no cached analysis exists, returning neutral result")
        result = neutral_result()
        metrics.record_fallback(result.provider)
        return result

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_provider_chain_health(self) -> Dict[str, Any]:
        return {
            "primary": self.config.primary_provider.value,
            "fallbacks": [t.value for t in self.config.fallback_providers],
            "circuit_breakers": {t.value: b.to_dict() for t, b in self._breakers.items()},
        }

    def get_performance_summary(self) -> Dict[str, Any]:
        summary = {}
        for provider_type, performance in self.health_monitor.get_performance_summary().items():
            breaker = self._breakers.get(provider_type)
            summary[provider_type.value] = {
                **performance.model_dump(),
                "circuit_state": breaker.state.value if breaker else CircuitState.CLOSED.value,
            }
        return summary

    def reset_circuit_breakers(self) -> None:
        for provider_type, breaker in self._breakers.items():
            breaker.reset()
            metrics.set_circuit_state(provider_type.value, breaker.state.value)
