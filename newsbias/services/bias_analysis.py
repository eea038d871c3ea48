"""Bias analysis service.

Entry point used by request handlers and the scheduler. Wires the provider
factory, health monitor, fallback manager and result cache together, and
bridges them to the article store.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .. import metrics
from ..cache.analysis_cache import BiasAnalysisCache
from ..cache.store import CacheStore, MemoryCacheStore, RedisCacheStore
from ..config.provider_config import ProviderConfigManager
from ..config.settings import ServiceSettings
from ..llm.exceptions import ProviderError
from ..llm.factory import ProviderConstructor, ProviderFactory
from ..llm.fallback_manager import ProviderFallbackManager
from ..llm.health_monitor import ProviderHealthMonitor
from ..llm.models import (
    CACHED_DATABASE_PROVIDER,
    BiasAnalysisRequest,
    BiasAnalysisResult,
    ProviderTestResult,
    ProviderType,
    coerce_provider_type,
    neutral_result,
    sample_request,
)
from .article_store import ArticleFilters, ArticleStore

logger = logging.getLogger(__name__)

ProviderName = Union[str, ProviderType, None]


class BiasAnalysisService:
    """Resilient bias analysis over the configured provider chain."""

    def __init__(
        self,
        config_manager: ProviderConfigManager,
        article_store: Optional[ArticleStore] = None,
        cache_store: Optional[CacheStore] = None,
        settings: Optional[ServiceSettings] = None,
        registry: Optional[Mapping[ProviderType, ProviderConstructor]] = None,
    ):
        self.config_manager = config_manager
        self.article_store = article_store
        self.settings = settings or ServiceSettings()
        self.cache_store: CacheStore = cache_store if cache_store is not None else MemoryCacheStore()
        self.cache = BiasAnalysisCache(
            self.cache_store,
            ttl_seconds=self.settings.cache_ttl_seconds,
            stale_ttl_seconds=self.settings.stale_cache_ttl_seconds,
        )
        self._registry = registry
        self._owns_cache_store = False

        self.factory: Optional[ProviderFactory] = None
        self.health_monitor: Optional[ProviderHealthMonitor] = None
        self.fallback_manager: Optional[ProviderFallbackManager] = None
        self._initialized = False
        self._lifecycle_lock = asyncio.Lock()

    @classmethod
    def from_env(
        cls,
        article_store: Optional[ArticleStore] = None,
        environ: Optional[Mapping[str, str]] = None,
        settings: Optional[ServiceSettings] = None,
    ) -> "BiasAnalysisService":
        """Build the service graph from environment variables.

        Args:
            article_store: Optional persistence for stored-article operations
            environ: Mapping read for the provider chain and provider settings;
                defaults to ``os.environ``
            settings: Service-level settings. ``ServiceSettings`` always reads
                the process environment, so pass an instance explicitly when
                ``environ`` is not ``os.environ``.
        """
        settings = settings or ServiceSettings()
        if settings.redis_url:
            cache_store: CacheStore = RedisCacheStore(settings.redis_url)
            logger.info("Using Redis cache for bias analysis results")
        else:
            cache_store = MemoryCacheStore()
            logger.info("REDIS_URL not set, using in-process cache for bias analysis results")

        service = cls(
            ProviderConfigManager(environ),
            article_store=article_store,
            cache_store=cache_store,
            settings=settings,
        )
        service._owns_cache_store = True
        return service

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Start providers and health monitoring.

        Raises:
            ProviderError: If the primary provider is not configured
        """
        async with self._lifecycle_lock:
            if self._initialized:
                return

            logger.info("Initializing bias analysis service with LLM providers")
            self.config_manager.validate_configuration()

            config = self.config_manager.get_factory_config()
            factory = ProviderFactory(config, registry=self._registry)
            await factory.initialize()

            health_monitor = ProviderHealthMonitor(
                factory,
                interval_seconds=config.health_check_interval_seconds,
                check_timeout_seconds=self.settings.health_check_timeout_seconds,
            )
            health_monitor.start_monitoring()

            self.factory = factory
            self.health_monitor = health_monitor
            self.fallback_manager = ProviderFallbackManager(
                factory,
                config,
                health_monitor,
                cache=self.cache,
                failure_threshold=self.settings.circuit_failure_threshold,
                failure_window_seconds=self.settings.circuit_failure_window_seconds,
                cooldown_seconds=self.settings.circuit_cooldown_seconds,
                cached_confidence_penalty=self.settings.cached_confidence_penalty,
            )
            self._initialized = True
            logger.info("Bias analysis service initialized successfully")

    async def cleanup(self) -> None:
        async with self._lifecycle_lock:
            if not self._initialized:
                return

            logger.info("Cleaning up bias analysis service")
            try:
                if self.health_monitor is not None:
                    await self.health_monitor.stop_monitoring()
                if self.factory is not None:
                    await self.factory.cleanup()
                if self._owns_cache_store:
                    await self.cache_store.close()
            except Exception as e:
                logger.error(f"Failed to clean up bias analysis service: {e}")
            finally:
                self.factory = None
                self.health_monitor = None
                self.fallback_manager = None
                self._initialized = False
            logger.info("Bias analysis service cleanup completed")

    def is_initialized(self) -> bool:
        return self._initialized

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    def _require_store(self) -> ArticleStore:
        if self.article_store is None:
            raise RuntimeError("Article store is not configured")
        return self.article_store

    @staticmethod
    def _resolve_provider(preferred_provider: ProviderName) -> Optional[ProviderType]:
        provider_type = coerce_provider_type(preferred_provider)
        if preferred_provider is not None and provider_type is None:
            logger.warning(f"Ignoring unknown preferred provider {preferred_provider!r}")
        return provider_type

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def _get_cached(self, fingerprint: str) -> Optional[BiasAnalysisResult]:
        try:
            return await self.cache.get(fingerprint)
        except Exception as e:
            logger.warning(f"Failed to get cached bias analysis: {e}")
            return None

    async def _cache_result(self, fingerprint: str, result: BiasAnalysisResult) -> None:
        try:
            await self.cache.set(fingerprint, result)
        except Exception as e:
            logger.warning(f"Failed to cache bias analysis: {e}")

    async def analyze_article(
        self,
        request: BiasAnalysisRequest,
        preferred_provider: ProviderName = None,
    ) -> BiasAnalysisResult:
        """Analyze article content, serving cached results when available."""
        await self._ensure_initialized()
        provider_type = self._resolve_provider(preferred_provider)
        fingerprint = request.fingerprint()

        cached = await self._get_cached(fingerprint)
        metrics.record_cache_lookup(cached is not None)
        if cached is not None:
            logger.info(f"Returning cached bias analysis from {cached.provider}")
            return cached

        logger.info(f"Performing new bias analysis: {request.title[:100]!r}")
        try:
            result = await self.fallback_manager.analyze_with_fallback(request, provider_type)
        except Exception as e:
            logger.error(f"Bias analysis failed completely: {e}")
            return neutral_result()

        if result.is_genuine:
            await self._cache_result(fingerprint, result)

        logger.info(
            f"Bias analysis completed: provider={result.provider}, score={result.bias_score}, "
            f"lean={result.bias_analysis.political_lean.value}, confidence={result.confidence}"
        )
        return result

    async def analyze_and_store_article(
        self,
        article_id: int,
        preferred_provider: ProviderName = None,
    ) -> Optional[BiasAnalysisResult]:
        """Analyze a stored article and persist the outcome.

        Articles that already carry an analysis are returned as stored without
        calling any provider. Degraded results are returned but not persisted,
        so the article stays eligible for a later genuine analysis.
        """
        store = self._require_store()
        article = await store.find_by_id(article_id)
        if article is None:
            logger.warning(f"Article {article_id} not found for bias analysis")
            return None

        if article.has_bias_analysis:
            logger.info(f"Article {article_id} already has bias analysis")
            return BiasAnalysisResult(
                bias_score=article.bias_score,
                bias_analysis=article.bias_analysis,
                provider=CACHED_DATABASE_PROVIDER,
                confidence=article.bias_analysis.confidence,
                processing_time_ms=0,
            )

        request = BiasAnalysisRequest(
            title=article.title,
            content=article.content,
            summary=article.summary,
            source=article.source,
        )
        result = await self.analyze_article(request, preferred_provider)

        if result.is_genuine:
            await store.update_bias_analysis(article_id, result.bias_score, result.bias_analysis)
            logger.info(f"Bias analysis stored for article {article_id}: score={result.bias_score}")
        else:
            logger.warning(f"Not storing {result.provider} analysis for article {article_id}")
        return result

    async def batch_analyze_articles(
        self,
        article_ids: Iterable[int],
        preferred_provider: ProviderName = None,
    ) -> Dict[int, BiasAnalysisResult]:
        """Analyze many articles with bounded concurrency.

        Every id is attempted; failures are logged and left out of the result.
        """
        ids = list(article_ids)
        semaphore = asyncio.Semaphore(self.settings.batch_concurrency)
        logger.info(f"Starting batch bias analysis of {len(ids)} articles")

        async def analyze_one(article_id: int) -> Optional[BiasAnalysisResult]:
            async with semaphore:
                try:
                    return await self.analyze_and_store_article(article_id, preferred_provider)
                except Exception as e:
                    logger.error(f"Failed to analyze article {article_id} in batch: {e}")
                    return None

        outcomes = await asyncio.gather(*(analyze_one(article_id) for article_id in ids))
        results = {
            article_id: result
            for article_id, result in zip(ids, outcomes)
            if result is not None
        }
        logger.info(f"Batch bias analysis completed: {len(results)}/{len(ids)} processed")
        return results

    async def get_articles_needing_analysis(self, limit: int = 50) -> List[int]:
        store = self._require_store()
        articles = await store.find_with_filters(ArticleFilters(needs_analysis=True), limit)
        return [article.id for article in articles if article.bias_score is None]

    async def analyze_recent_articles(self, limit: int = 20) -> Dict[int, BiasAnalysisResult]:
        """Scheduler entry point: analyze articles still lacking a score."""
        logger.info("Starting automatic bias analysis for recent articles")
        article_ids = await self.get_articles_needing_analysis(limit)
        if not article_ids:
            logger.info("No articles need bias analysis")
            return {}
        return await self.batch_analyze_articles(article_ids)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def get_provider_health(self) -> Dict[str, Any]:
        await self._ensure_initialized()
        health = self.fallback_manager.get_provider_chain_health()
        health["providers"] = {
            t.value: h.model_dump(mode="json") for t, h in self.health_monitor.get_health_status().items()
        }
        health["system"] = self.health_monitor.get_system_health_summary()
        return health

    async def get_performance_summary(self) -> Dict[str, Any]:
        await self._ensure_initialized()
        return self.fallback_manager.get_performance_summary()

    def reset_circuit_breakers(self) -> None:
        if self.fallback_manager is not None:
            self.fallback_manager.reset_circuit_breakers()

    async def get_available_providers(self) -> List[str]:
        await self._ensure_initialized()
        return [t.value for t in self.factory.get_available_providers()]

    def get_provider_configurations(self) -> Dict[str, Any]:
        """Per-provider configuration with API keys redacted."""
        return self.config_manager.get_config_summary()["providers"]

    async def test_provider(
        self,
        provider_name: ProviderName,
        sample: Optional[BiasAnalysisRequest] = None,
    ) -> ProviderTestResult:
        """Call one provider directly, bypassing fallback and cache."""
        await self._ensure_initialized()
        start = time.perf_counter()
        label = provider_name.value if isinstance(provider_name, ProviderType) else str(provider_name)

        provider_type = coerce_provider_type(provider_name)
        provider = self.factory.get_provider(provider_type) if provider_type else None
        if provider is None:
            return ProviderTestResult(
                provider=label,
                success=False,
                error=f"Provider '{label}' not found",
                response_time_ms=(time.perf_counter() - start) * 1000,
            )

        try:
            result = await provider.analyze_article(sample or sample_request())
        except ProviderError as e:
            return ProviderTestResult(
                provider=provider_type.value,
                success=False,
                error=e.message,
                error_type=e.error_type.value,
                response_time_ms=(time.perf_counter() - start) * 1000,
            )
        except Exception as e:
            logger.error(f"Provider test for {provider_type.value} failed unexpectedly: {e}")
            return ProviderTestResult(
                provider=provider_type.value,
                success=False,
                error=str(e),
                response_time_ms=(time.perf_counter() - start) * 1000,
            )

        return ProviderTestResult(
            provider=provider_type.value,
            success=True,
            result=result,
            response_time_ms=(time.perf_counter() - start) * 1000,
        )

    # ------------------------------------------------------------------
    # Cache administration
    # ------------------------------------------------------------------

    async def clear_cache(self) -> int:
        return await self.cache.clear()

    async def clear_provider_cache(self, provider_name: ProviderName) -> int:
        provider_type = coerce_provider_type(provider_name)
        if provider_type is None:
            raise ValueError(f"Unknown provider: {provider_name!r}")
        return await self.cache.clear_provider(provider_type.value)

    async def get_cache_stats(self) -> Dict[str, Any]:
        return await self.cache.stats()
