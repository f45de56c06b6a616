"""Redis caching layer for RigBuilder catalog queries.

Caches the part list the storefront returned for a catalog query.
Falls back gracefully when Redis is unavailable: the configurator keeps
working, just with a storefront round-trip per query.

Cache key strategy:
  rigbuilder:catalog:{category}:{sha256(price bounds + search + sorted filters)}

Keys are grouped by category so a price or stock update for one
category can drop exactly that category's entries.

TTL: Configurable, default 5 minutes (prices and stock change often).
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

import redis.asyncio as aioredis
from pydantic import ValidationError

from rigbuilder.models.build import CatalogQuery
from rigbuilder.models.components import Part

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ──────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────

CACHE_PREFIX = "rigbuilder:catalog:"
DEFAULT_TTL = int(os.getenv("RIGBUILDER_CACHE_TTL", "300"))  # 5 minutes
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")


# ──────────────────────────────────────────────
# Cache Keys & Payloads
# ──────────────────────────────────────────────


def category_pattern(category: Optional[str] = None) -> str:
    """Glob matching every key of one category (or of all categories)."""
    return f"{CACHE_PREFIX}{category}:*" if category else f"{CACHE_PREFIX}*"


def catalog_cache_key(query: CatalogQuery) -> str:
    """Deterministic cache key for a catalog query.

    Filter order, duplicate filters and search casing do not change the key.
    """
    canonical = {
        "min_price": query.min_price,
        "max_price": query.max_price,
        "search": query.search.strip().lower(),
        "filters": sorted(set(query.filters)),
    }
    digest = hashlib.sha256(
        json.dumps(canonical, sort_keys=True).encode()
    ).hexdigest()[:16]
    return f"{CACHE_PREFIX}{query.category}:{digest}"


def dump_parts(parts: List[Part]) -> str:
    return json.dumps([p.model_dump(mode="json") for p in parts])


def load_parts(raw: str) -> List[Part]:
    return [Part.model_validate(item) for item in json.loads(raw)]


# ──────────────────────────────────────────────
# Redis Cache Client
# ──────────────────────────────────────────────


class CatalogCache:
    """Redis-backed cache for catalog query results.

    Never raises: every Redis failure is logged and turned into a miss
    (or False / 0), so a broken cache only costs storefront round-trips.
    """

    def __init__(
        self,
        redis_url: str = REDIS_URL,
        ttl: int = DEFAULT_TTL,
    ) -> None:
        self.ttl = ttl
        self._redis_url = redis_url
        self._redis: Optional[aioredis.Redis] = None
        self._available = False

    @property
    def available(self) -> bool:
        """Whether Redis answered the last connection attempt."""
        return self._available

    async def connect(self) -> bool:
        """Open the connection pool and ping it. Returns True on success."""
        try:
            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
            )
            await self._redis.ping()
        except Exception as e:
            logger.warning("Redis at %s unreachable, catalog caching off: %s", self._redis_url, e)
            self._available = False
            return False

        self._available = True
        logger.info("Catalog cache connected: %s", self._redis_url)
        return True

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
        self._redis = None
        self._available = False

    async def _guarded(self, op: str, call: Callable[[], Awaitable[T]], fallback: T) -> T:
        """Run a Redis call, degrading to `fallback` when Redis misbehaves."""
        if not self._available:
            return fallback
        try:
            return await call()
        except Exception as e:
            logger.warning("Catalog cache %s failed: %s", op, e)
            return fallback

    async def _scan(self, pattern: str) -> List[str]:
        return [key async for key in self._redis.scan_iter(pattern)]

    # ── Raw payload operations ──

    async def get(self, key: str) -> Optional[str]:
        """Cached payload, or None on miss or error."""
        data = await self._guarded("get", lambda: self._redis.get(key), None)
        logger.debug("Cache %s: %s", "HIT" if data else "MISS", key)
        return data

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        async def call() -> bool:
            await self._redis.set(key, value, ex=ttl or self.ttl)
            return True

        return await self._guarded("set", call, False)

    async def delete(self, key: str) -> bool:
        async def call() -> bool:
            await self._redis.delete(key)
            return True

        return await self._guarded("delete", call, False)

    async def clear_all(self, category: Optional[str] = None) -> int:
        """Drop every catalog entry, or one category's. Returns the count."""

        async def call() -> int:
            keys = await self._scan(category_pattern(category))
            if keys:
                await self._redis.delete(*keys)
            return len(keys)

        count = await self._guarded("clear", call, 0)
        logger.info("Dropped %d cached catalog entries (%s)", count, category or "all categories")
        return count

    async def stats(self) -> Dict[str, Any]:
        async def call() -> Dict[str, Any]:
            keys = await self._scan(category_pattern())
            return {"available": True, "keys": len(keys), "ttl": self.ttl}

        return await self._guarded("stats", call, {"available": False, "keys": 0})

    # ── Typed part lists ──

    async def get_parts(self, query: CatalogQuery) -> Optional[List[Part]]:
        """Cached part list for a query; None on miss or unreadable entry."""
        key = catalog_cache_key(query)
        raw = await self.get(key)
        if not raw:
            return None
        try:
            return load_parts(raw)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Discarding unreadable catalog entry %s: %s", key, e)
            await self.delete(key)
            return None

    async def set_parts(self, query: CatalogQuery, parts: List[Part]) -> bool:
        return await self.set(catalog_cache_key(query), dump_parts(parts))

    async def invalidate_category(self, category: str) -> int:
        """Forget every cached query of one category."""
        return await self.clear_all(category)


# ──────────────────────────────────────────────
# In-Memory Fallback Cache (for tests / no Redis)
# ──────────────────────────────────────────────


class InMemoryCache(CatalogCache):
    """Dict-backed cache honoring the same TTL and key layout."""

    def __init__(self, ttl: int = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__(ttl=ttl)
        self._clock = clock
        self._store: Dict[str, Tuple[str, float]] = {}
        self._available = True

    async def connect(self) -> bool:
        self._available = True
        return True

    async def disconnect(self) -> None:
        self._store.clear()
        self._available = False

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (_, expires) in self._store.items() if expires <= now]:
            del self._store[key]

    def _live_keys(self, pattern: str) -> List[str]:
        """Keys matching `pattern`, after dropping every expired entry."""
        self._purge_expired()
        prefix = pattern.rstrip("*")
        return [k for k in self._store if k.startswith(prefix)]

    async def get(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires = entry
        if expires <= self._clock():
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        self._store[key] = (value, self._clock() + (ttl or self.ttl))
        return True

    async def delete(self, key: str) -> bool:
        self._store.pop(key, None)
        return True

    async def clear_all(self, category: Optional[str] = None) -> int:
        keys = self._live_keys(category_pattern(category))
        for key in keys:
            del self._store[key]
        return len(keys)

    async def stats(self) -> Dict[str, Any]:
        return {"available": True, "keys": len(self._live_keys(category_pattern())), "ttl": self.ttl}
