"""Fingerprint-keyed cache of genuine bias-analysis results.

Two tiers share one store:

* ``bias_analysis:{fingerprint}``: the fresh tier consulted before any
  provider is called.
* ``bias_analysis_stale:{fingerprint}``: a longer-lived copy kept only so
  that a result can still be served when every provider is down.
"""

import logging
from collections import Counter
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..llm.models import BiasAnalysisResult
from .store import CacheStore

logger = logging.getLogger(__name__)

FRESH_PREFIX = "bias_analysis:"
STALE_PREFIX = "bias_analysis_stale:"


class BiasAnalysisCache:
    """Namespaced result cache on top of a ``CacheStore``."""

    def __init__(
        self,
        store: CacheStore,
        ttl_seconds: int = 7 * 24 * 3600,
        stale_ttl_seconds: int = 30 * 24 * 3600,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.stale_ttl_seconds = stale_ttl_seconds

    @staticmethod
    def _decode(key: str, raw: Optional[str]) -> Optional[BiasAnalysisResult]:
        if raw is None:
            return None
        try:
            return BiasAnalysisResult.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding corrupt cache entry {key}: {e}")
            return None

    async def _put(self, key: str, result: BiasAnalysisResult, ttl_seconds: int) -> None:
        if not result.is_genuine:
            raise ValueError(f"Refusing to cache degraded result tagged {result.provider}")
        await self.store.set(key, result.model_dump_json(), ttl_seconds)

    async def get(self, fingerprint: str) -> Optional[BiasAnalysisResult]:
        key = FRESH_PREFIX + fingerprint
        return self._decode(key, await self.store.get(key))

    async def set(self, fingerprint: str, result: BiasAnalysisResult) -> None:
        await self._put(FRESH_PREFIX + fingerprint, result, self.ttl_seconds)

    async def get_stale(self, fingerprint: str) -> Optional[BiasAnalysisResult]:
        key = STALE_PREFIX + fingerprint
        return self._decode(key, await self.store.get(key))

    async def set_stale(self, fingerprint: str, result: BiasAnalysisResult) -> None:
        await self._put(STALE_PREFIX + fingerprint, result, self.stale_ttl_seconds)

    async def get_last_known(self, fingerprint: str) -> Optional[BiasAnalysisResult]:
        """Most recent genuine result from either tier, stale tier first."""
        result = await self.get_stale(fingerprint)
        if result is None:
            result = await self.get(fingerprint)
        return result

    async def clear(self) -> int:
        """Delete every cached analysis in both tiers."""
        keys = await self.store.keys(FRESH_PREFIX + "*") + await self.store.keys(STALE_PREFIX + "*")
        removed = await self.store.delete(*keys) if keys else 0
        logger.info(f"Cleared {removed} cached analyses")
        return removed

    async def clear_provider(self, provider: str) -> int:
        """Delete entries produced by ``provider``."""
        keys = await self.store.keys(FRESH_PREFIX + "*") + await self.store.keys(STALE_PREFIX + "*")
        doomed = []
        for key in keys:
            result = self._decode(key, await self.store.get(key))
            if result is not None and result.provider == provider:
                doomed.append(key)
        removed = await self.store.delete(*doomed) if doomed else 0
        logger.info(f"Cleared {removed} cached analyses for provider {provider}")
        return removed

    async def stats(self) -> Dict[str, Any]:
        fresh_keys = await self.store.keys(FRESH_PREFIX + "*")
        stale_keys = await self.store.keys(STALE_PREFIX + "*")
        breakdown: Counter = Counter()
        for key in fresh_keys:
            result = self._decode(key, await self.store.get(key))
            if result is not None:
                breakdown[result.provider] += 1
        return {
            "total_keys": len(fresh_keys),
            "stale_keys": len(stale_keys),
            "provider_breakdown": dict(breakdown),
        }
