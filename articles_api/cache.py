import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis

from articles_api.cache_keys import ArticleCacheKeys
from articles_api.config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Read-through cache backed by Redis.

    The client is any object exposing the ``redis.asyncio`` coroutines
    ``get``, ``set(key, value, ex=ttl)`` and ``delete(*keys)``.  Key
    enumeration (``scan_iter``) is optional: without it list invalidation
    is skipped with a warning.

    Every public method tolerates an unavailable or failing store: reads
    behave as misses and writes/deletes are logged and dropped.  The
    relational store stays authoritative; the cache never fails a request.
    """

    def __init__(
        self,
        client: Any = None,
        ttl: int | None = None,
        keys: ArticleCacheKeys | None = None,
    ) -> None:
        self._redis = client
        self.ttl = ttl if ttl is not None else settings.CACHE_TTL
        self.keys = keys or ArticleCacheKeys()
        self._hits: int = 0
        self._misses: int = 0
        self._invalidated: int = 0
        self._skipped_list_invalidations: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, url: str | None = None) -> None:
        """Open the connection pool.  Called once at application startup."""
        url = url or settings.REDIS_URL
        self._redis = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        # Surface mis-configuration early; the app keeps running without a cache.
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", url)
        except Exception as exc:
            logger.warning("Redis ping failed, cache operations will degrade to no-ops: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @property
    def supports_key_listing(self) -> bool:
        return self._redis is not None and hasattr(self._redis, "scan_iter")

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the cached value for *key*, or None on a miss / error."""
        if self._redis is None:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
            value = json.loads(data) if data is not None else None
        except Exception as exc:
            logger.warning("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None
        if value is None:
            self._misses += 1
            return None
        self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* as JSON under *key* for *ttl* seconds (default: the fixed TTL)."""
        if self._redis is None:
            return
        try:
            serialised = json.dumps(value, default=str)
            await self._redis.set(key, serialised, ex=ttl or self.ttl)
        except Exception as exc:
            logger.warning("Cache SET error for key=%r: %s", key, exc)

    async def delete(self, *keys: str) -> int:
        """Delete *keys*; return how many were passed to the store (0 on error)."""
        if self._redis is None or not keys:
            return 0
        try:
            await self._redis.delete(*keys)
        except Exception as exc:
            logger.warning("Cache DELETE error for keys=%r: %s", keys, exc)
            return 0
        self._invalidated += len(keys)
        return len(keys)

    async def list_keys(self, pattern: str) -> list[str] | None:
        """
        Return every key matching *pattern* via SCAN (never the blocking KEYS).

        Returns None when the client cannot enumerate keys or the scan
        fails, so callers can tell "nothing matched" from "cannot know".
        """
        if not self.supports_key_listing:
            return None
        try:
            return [key async for key in self._redis.scan_iter(match=pattern)]
        except Exception as exc:
            logger.warning("Cache SCAN error for pattern=%r: %s", pattern, exc)
            return None

    async def delete_pattern(self, pattern: str) -> int | None:
        """Delete all keys matching *pattern*; None when enumeration is unavailable."""
        keys = await self.list_keys(pattern)
        if keys is None:
            return None
        if keys:
            deleted = await self.delete(*keys)
            logger.debug("Cache invalidated %d key(s) matching %r", deleted, pattern)
            return deleted
        return 0

    # ------------------------------------------------------------------
    # Read-through
    # ------------------------------------------------------------------

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
    ) -> Any | None:
        """
        Return the cached value for *key*, calling *loader* on a miss.

        A loaded value is written back with the fixed TTL; a None result
        (nothing in the store) is returned as-is and never cached.
        Concurrent misses on the same key each run the loader.
        """
        cached = await self.get(key)
        if cached is not None:
            logger.debug("Cache hit for key: %s", key)
            return cached

        logger.debug("Cache miss for key: %s", key)
        value = await loader()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    # ------------------------------------------------------------------
    # Domain-level invalidation helpers
    # ------------------------------------------------------------------

    async def invalidate_article(self, article_id: Any) -> None:
        """
        Drop the caches affected by a write to *article_id*.

        Deletes the article's detail entry and every list entry (any
        create/update/delete can move items between pages).  Never raises.
        """
        await self.delete(self.keys.detail(article_id))
        await self.invalidate_article_lists()

    async def invalidate_article_lists(self) -> None:
        pattern = self.keys.list_pattern
        deleted = await self.delete_pattern(pattern)
        if deleted is None:
            self._skipped_list_invalidations += 1
            logger.warning(
                "List cache %r not invalidated: key enumeration unavailable", pattern
            )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of cache counters for the metrics endpoint."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            "invalidated_keys": self._invalidated,
            "skipped_list_invalidations": self._skipped_list_invalidations,
            "key_listing": self.supports_key_listing,
        }
