"""Key-value stores backing the analysis cache."""

import fnmatch
import logging
import os
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Minimal async string store with per-key TTL."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def keys(self, pattern: str) -> List[str]:
        ...

    async def close(self) -> None:
        ...


class RedisCacheStore:
    """Redis-backed cache store."""

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self._client: Optional[redis.Redis] = client

    @classmethod
    def from_env(cls) -> Optional["RedisCacheStore"]:
        redis_url = os.getenv("REDIS_URL")
        if not redis_url:
            return None
        return cls(redis_url)

    async def connect(self) -> None:
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                **_redis_tls_kwargs(),
            )
            await self._client.ping()
            logger.info("Connected to Redis cache at %s", self.redis_url)

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            await self.connect()
        return self._client

    async def get(self, key: str) -> Optional[str]:
        client = await self._get_client()
        return await client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        client = await self._get_client()
        await client.set(key, value, ex=ttl_seconds)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        client = await self._get_client()
        return int(await client.delete(*keys))

    async def keys(self, pattern: str) -> List[str]:
        client = await self._get_client()
        return [key async for key in client.scan_iter(match=pattern, count=500)]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class MemoryCacheStore:
    """In-process store with TTL and a bounded LRU.

    Used when no Redis URL is configured and in tests.
    """

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self._clock = clock
        self._data: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()

    def _expired(self, expires_at: float) -> bool:
        return self._clock() >= expires_at

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)
        self._data.move_to_end(key)
        while len(self._data) > self.max_entries:
            self._data.popitem(last=False)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    async def keys(self, pattern: str) -> List[str]:
        live = []
        for key, (_, expires_at) in list(self._data.items()):
            if self._expired(expires_at):
                del self._data[key]
            elif fnmatch.fnmatchcase(key, pattern):
                live.append(key)
        return live

    async def close(self) -> None:
        self._data.clear()


def _redis_tls_kwargs() -> Dict[str, Any]:
    ca_path = os.getenv("REDIS_SSL_CA")
    cert_path = os.getenv("REDIS_SSL_CERT")
    key_path = os.getenv("REDIS_SSL_KEY")

    if not any([ca_path, cert_path, key_path]):
        return {}

    return {
        "ssl_cert_reqs": "required",
        "ssl_ca_certs": ca_path,
        "ssl_certfile": cert_path,
        "ssl_keyfile": key_path,
    }
