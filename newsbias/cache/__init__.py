"""Result caching for bias analysis."""

from .analysis_cache import FRESH_PREFIX, STALE_PREFIX, BiasAnalysisCache
from .store import CacheStore, MemoryCacheStore, RedisCacheStore

__all__ = [
    "BiasAnalysisCache",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "FRESH_PREFIX",
    "STALE_PREFIX",
]
