"""
Edge cache of complete HTTP responses keyed by resource URL.
"""

import base64
import json
import time
from collections import OrderedDict
from typing import Callable, Optional, Protocol

import redis.asyncio as redis

from service_edge.app.domain.models import CacheEntry
from shared.logging import get_logger
from shared.metrics import MetricsCollector


DEFAULT_MAX_ENTRIES = 1000


class ResponseStore(Protocol):
    """Storage backend for cached responses."""

    async def get(self, key: str) -> Optional[CacheEntry]:
        ...

    async def put(self, entry: CacheEntry) -> None:
        ...

    async def close(self) -> None:
        ...


class MemoryResponseStore:
    """Process-local LRU store; entries vanish on cold start.

    Expired entries are swept on every write and the least recently used
    entries are evicted once ``max_entries`` is exceeded.
    """

    def __init__(self, clock: Callable[[], float] = time.time, max_entries: int = DEFAULT_MAX_ENTRIES):
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._clock = clock
        self.max_entries = max_entries

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    async def put(self, entry: CacheEntry) -> None:
        self._sweep()
        self._entries[entry.key] = entry
        self._entries.move_to_end(entry.key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def _sweep(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if not e.is_fresh(now)]:
            del self._entries[key]

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisResponseStore:
    """Shared store backed by Redis; expiry is delegated to key TTLs."""

    KEY_PREFIX = "edge:response:"

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("edge.cache.redis")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    async def get(self, key: str) -> Optional[CacheEntry]:
        client = await self._get_redis()
        raw = await client.get(self.KEY_PREFIX + key)
        if raw is None:
            return None
        data = json.loads(raw)
        return CacheEntry(
            key=key,
            body=base64.b64decode(data["body"]),
            headers=data["headers"],
            status_code=data["status_code"],
            stored_at=data["stored_at"],
            ttl=data["ttl"],
        )

    async def put(self, entry: CacheEntry) -> None:
        client = await self._get_redis()
        payload = json.dumps({
            "body": base64.b64encode(entry.body).decode("ascii"),
            "headers": entry.headers,
            "status_code": entry.status_code,
            "stored_at": entry.stored_at,
            "ttl": entry.ttl,
        })
        await client.setex(self.KEY_PREFIX + entry.key, entry.ttl, payload)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class EdgeCache:
    """Looks up and stores responses, reporting hit/miss outcomes."""

    def __init__(
        self,
        store: ResponseStore,
        *,
        metrics: Optional[MetricsCollector] = None,
        cache_type: str = "origin",
    ):
        self.store = store
        self.metrics = metrics
        self.cache_type = cache_type
        self.logger = get_logger("edge.cache")

    async def lookup(self, key: str) -> Optional[CacheEntry]:
        """Fetch ``key``; a store failure is logged and counted as a miss."""
        try:
            entry = await self.store.get(key)
        except Exception as exc:
            self.logger.error("Cache fetch error", key=key, error=str(exc))
            entry = None
        if self.metrics is not None:
            self.metrics.record_cache_outcome(self.cache_type, hit=entry is not None)
        return entry

    async def store_entry(self, entry: CacheEntry) -> None:
        """Write ``entry``, replacing whatever was held for its key."""
        try:
            await self.store.put(entry)
        except Exception as exc:
            self.logger.error("Cache write error", key=entry.key, error=str(exc))
            return
        self.logger.debug("Cached response", key=entry.key, ttl=entry.ttl)

    async def close(self) -> None:
        await self.store.close()


def build_response_store(redis_url: Optional[str], max_entries: int = DEFAULT_MAX_ENTRIES) -> ResponseStore:
    """Use Redis when configured, otherwise an in-process store."""
    if redis_url:
        return RedisResponseStore(redis_url)
    return MemoryResponseStore(max_entries=max_entries)
