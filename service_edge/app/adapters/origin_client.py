"""
Generic origin adapter: fetch arbitrary resources through the edge cache.
"""

import time
from typing import Mapping, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from service_edge.app.caching.background import BackgroundTasks
from service_edge.app.caching.edge_cache import EdgeCache
from service_edge.app.domain.models import CACHE_HIT, CACHE_MISS, CacheEntry
from shared.errors import UpstreamError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


FORWARDED_HEADERS = ("accept", "accept-language", "user-agent")
STORED_HEADERS = ("content-type", "content-language", "etag", "last-modified")


def validate_target(target_url: Optional[str]) -> str:
    """Reject anything that is not an absolute http(s) URL."""
    if not target_url:
        raise ValidationError('Missing "target" query parameter.')
    try:
        parts = urlsplit(target_url)
    except ValueError:
        raise ValidationError('Invalid "target" URL.') from None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError('Invalid "target" URL.')
    return target_url


class OriginCacheClient:
    """Cache-through passthrough for arbitrary origins.

    The cache key is the exact target string, query included. Misses are
    returned immediately; the cache write runs as a background task.
    """

    def __init__(
        self,
        cache: EdgeCache,
        background: BackgroundTasks,
        http_client: httpx.AsyncClient,
        *,
        ttl_seconds: int = 86400,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.cache = cache
        self.background = background
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("edge.adapters.origin")
        self._client = http_client

    async def fetch_through_cache(
        self,
        target_url: Optional[str],
        request_headers: Optional[Mapping[str, str]] = None,
    ) -> Tuple[CacheEntry, str]:
        key = validate_target(target_url)

        cached = await self.cache.lookup(key)
        if cached is not None:
            self.logger.info("Cache hit", target=key)
            return cached, CACHE_HIT

        self.logger.info("Cache miss", target=key)
        entry = await self._fetch(key, request_headers or {})
        if entry.status_code < 400:
            # The origin's own Cache-Control is ignored; every success is kept
            # for the configured TTL.
            self.background.spawn(self.cache.store_entry(entry), name="edge-cache-write")
        return entry, CACHE_MISS

    async def _fetch(self, target_url: str, request_headers: Mapping[str, str]) -> CacheEntry:
        forwarded = {
            name: value
            for name, value in request_headers.items()
            if name.lower() in FORWARDED_HEADERS
        }
        try:
            response = await self._client.get(target_url, headers=forwarded, follow_redirects=True)
        except httpx.HTTPError as exc:
            self.logger.error("Origin fetch failed", target=target_url, error=str(exc))
            raise UpstreamError("origin", "Origin fetch failed") from exc

        if self.metrics is not None:
            self.metrics.record_upstream_request("origin", response.status_code)

        headers = {
            name: response.headers[name]
            for name in STORED_HEADERS
            if name in response.headers
        }
        return CacheEntry(
            key=target_url,
            body=response.content,
            headers=headers,
            status_code=response.status_code,
            stored_at=time.time(),
            ttl=self.ttl_seconds,
        )
