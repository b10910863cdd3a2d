"""Query result cache with Redis backend and in-memory fallback.

TTL per entry kind (from config):
  - Listing pages / search counts: 5 minutes
  - Single items: 5 minutes
  - Aggregates (totals, per-category lists and counts): 24 hours

Graceful degradation: if Redis is unavailable or a call fails, the entry goes
to (or comes from) a bounded cachetools.TLRUCache instead. Backend errors are
logged and read as a miss; they never reach the request.

Tag index: ``set(..., tags=[...])`` records the key under each tag so that
``invalidate_tags`` can drop exactly the dependent entries. On Redis the
index is a set per tag (expiring with the entries); in memory it is a pair
of dicts (tag → keys, key → tags).
"""

import fnmatch
import json
import logging
from collections.abc import Iterable
from typing import Any

from cachetools import TLRUCache

from catalog.config import settings

logger = logging.getLogger(__name__)


def _expires_at(_key: str, value: tuple[Any, int], now: float) -> float:
    return now + value[1]


class CacheService:
    """Async cache with Redis primary and in-memory fallback."""

    def __init__(self, redis_url: str | None = None, fallback_maxsize: int | None = None,
                 default_ttl: int | None = None, client: Any = None):
        self._redis_url = redis_url or settings.redis_url
        self._redis = client
        self._available = client is not None
        self._default_ttl = default_ttl or settings.cache_ttl_results
        self._maxsize = fallback_maxsize or settings.cache_fallback_maxsize
        self._fallback: TLRUCache = TLRUCache(maxsize=self._maxsize, ttu=_expires_at)
        self._tag_keys: dict[str, set[str]] = {}
        self._key_tags: dict[str, set[str]] = {}

    @property
    def available(self) -> bool:
        return self._available and self._redis is not None

    async def connect(self) -> bool:
        """Connect to Redis. Returns True on success."""
        try:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
            )
            await self._redis.ping()
            self._available = True
            return True
        except Exception as e:
            logger.warning("Redis connection failed, using in-memory fallback: %s", str(e)[:100])
            self._redis = None
            self._available = False
            return False

    async def disconnect(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self._available = False

    async def get(self, key: str) -> Any | None:
        """Read from cache. Returns None on miss or backend failure."""
        if self.available:
            try:
                data = await self._redis.get(key)
                if data is not None:
                    logger.info("Cache HIT (Redis) | key=%s", key)
                    return json.loads(data)
                logger.info("Cache MISS | key=%s", key)
                return None
            except Exception as e:
                logger.warning("Redis GET error | key=%s | %s", key, str(e)[:100])

        entry = self._fallback.get(key)
        if entry is not None:
            logger.info("Cache HIT (memory) | key=%s", key)
            return entry[0]
        logger.info("Cache MISS | key=%s", key)
        return None

    async def set(self, key: str, data: Any, ttl: int | None = None,
                  tags: Iterable[str] | None = None) -> bool:
        """Write with TTL, recording the key under each tag key in ``tags``."""
        ttl = ttl or self._default_ttl
        tags = list(tags or [])
        payload = json.dumps(data, ensure_ascii=False, default=str)

        if self.available:
            try:
                async with self._redis.pipeline(transaction=False) as pipe:
                    pipe.setex(key, ttl, payload)
                    for tag in tags:
                        pipe.sadd(tag, key)
                        pipe.expire(tag, ttl)
                    await pipe.execute()
                logger.info("Cache SET (Redis) | key=%s | ttl=%ds | tags=%d", key, ttl, len(tags))
                return True
            except Exception as e:
                logger.warning("Redis SET error | key=%s | %s", key, str(e)[:100])

        # Round-trip through JSON so memory hits equal Redis hits
        self._fallback[key] = (json.loads(payload), ttl)
        self._index(key, tags)
        return True

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns how many existed (best effort)."""
        if not keys:
            return 0
        deleted = 0
        for key in keys:
            if self._fallback.pop(key, None) is not None:
                deleted += 1
            self._unindex(key)

        if self.available:
            try:
                deleted = max(deleted, int(await self._redis.delete(*keys)))
            except Exception as e:
                logger.warning("Redis DEL error | keys=%d | %s", len(keys), str(e)[:100])
        return deleted

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob pattern (SCAN-based on Redis)."""
        local = [k for k in list(self._fallback.keys()) if fnmatch.fnmatchcase(k, pattern)]
        deleted = await self.delete(*local) if local else 0

        if self.available:
            try:
                keys = [key async for key in self._redis.scan_iter(match=pattern, count=500)]
                if keys:
                    deleted = max(deleted, int(await self._redis.delete(*keys)))
            except Exception as e:
                logger.warning("Redis invalidate error | pattern=%s | %s", pattern, str(e)[:100])

        logger.info("Cache invalidated %d keys matching '%s'", deleted, pattern)
        return deleted

    async def invalidate_tags(self, tags: Iterable[str]) -> int:
        """Delete every key recorded under any of ``tags``, and the tags themselves."""
        tags = list(tags)
        members: set[str] = set()
        for tag in tags:
            members |= self._tag_keys.pop(tag, set())

        if self.available:
            try:
                for tag in tags:
                    members |= set(await self._redis.smembers(tag))
                await self._redis.delete(*tags)
            except Exception as e:
                logger.warning("Redis tag read error | tags=%d | %s", len(tags), str(e)[:100])

        deleted = await self.delete(*members) if members else 0
        logger.info("Cache tags invalidated | tags=%d | keys=%d", len(tags), deleted)
        return deleted

    async def ping(self) -> bool:
        if not self.available:
            return False
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False

    def stats(self) -> dict[str, Any]:
        return {
            "backend": "redis" if self.available else "memory",
            "fallbackEntries": len(self._fallback),
            "fallbackMaxSize": self._maxsize,
            "indexedTags": len(self._tag_keys),
        }

    # ─────────────── in-memory tag index ───────────────

    def _index(self, key: str, tags: list[str]):
        for tag in tags:
            self._tag_keys.setdefault(tag, set()).add(key)
            self._key_tags.setdefault(key, set()).add(tag)
        if len(self._key_tags) > 4 * self._maxsize:
            self._prune_index()

    def _unindex(self, key: str):
        for tag in self._key_tags.pop(key, set()):
            keys = self._tag_keys.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._tag_keys[tag]

    def _prune_index(self):
        """Forget index entries whose cache entry has been evicted or expired."""
        for key in [k for k in self._key_tags if k not in self._fallback]:
            self._unindex(key)
