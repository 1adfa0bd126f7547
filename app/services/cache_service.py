# app/services/cache_service.py
"""
Cache-aside store for resource snapshots.

CacheService wraps a Redis-compatible async backend (``redis.asyncio.Redis``
in production, InMemoryCacheBackend for local runs and tests). Reads never
raise: a backend failure is logged and reported as a miss. Writes and deletes
are best-effort in the same way, since the cache is never the source of truth.
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from app.core.metrics import CACHE_REQUESTS

logger = logging.getLogger(__name__)


class InMemoryCacheBackend:
    """Process-local backend exposing the subset of the redis.asyncio API we use.

    Expiry is enforced lazily on read, like Redis passive expiry.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        expires_at = self._clock() + ex if ex else None
        self._data[key] = (value, expires_at)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    async def ttl(self, key: str) -> int:
        if self._live(key) is None:
            return -2
        _, expires_at = self._data[key]
        if expires_at is None:
            return -1
        return int(round(expires_at - self._clock()))

    async def flushdb(self) -> bool:
        self._data.clear()
        return True

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self._data.clear()


def build_cache_backend(settings):
    """Create the configured backend. Redis connections are lazy, nothing connects here."""
    if settings.CACHE_BACKEND == "memory":
        logger.info("Using in-memory cache backend")
        return InMemoryCacheBackend()
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


class CacheService:
    """Key-value cache with TTL, consulted before and updated after remote calls."""

    def __init__(self, backend, default_ttl: Optional[int] = None):
        if default_ttl is not None and default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive or None, got {default_ttl}")
        self.backend = backend
        self.default_ttl = default_ttl

    async def get(self, key: str) -> Optional[str]:
        """
        Retrieve a value by key.

        Returns:
            The cached string, or None on a miss or any backend error.
        """
        try:
            value = await self.backend.get(key)
        except Exception as e:
            CACHE_REQUESTS.labels(operation="get", result="error").inc()
            logger.error(f"Failed to get value for key {key}: {e}")
            return None

        if value is None:
            CACHE_REQUESTS.labels(operation="get", result="miss").inc()
            logger.debug(f"Cache miss for key: {key}")
            return None

        CACHE_REQUESTS.labels(operation="get", result="hit").inc()
        logger.debug(f"Cache hit for key: {key}")
        return value

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """
        Store a value, with expiry when a TTL (explicit or default) is given.

        Raises:
            ValueError: ttl_seconds is zero or negative. Omit it (with no
                default_ttl) to store without expiry.
        """
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        try:
            if ttl is not None:
                await self.backend.set(key, value, ex=ttl)
                logger.debug(f"Set key: {key} with TTL: {ttl} seconds")
            else:
                await self.backend.set(key, value)
                logger.debug(f"Set key: {key}")
            CACHE_REQUESTS.labels(operation="set", result="ok").inc()
        except Exception as e:
            CACHE_REQUESTS.labels(operation="set", result="error").inc()
            logger.error(f"Failed to set key {key}: {e}")

    async def delete(self, key: str) -> int:
        """
        Delete a key. Idempotent: a missing key (or a backend error) yields 0.
        """
        try:
            removed = await self.backend.delete(key)
        except Exception as e:
            CACHE_REQUESTS.labels(operation="delete", result="error").inc()
            logger.error(f"Failed to delete key {key}: {e}")
            return 0
        CACHE_REQUESTS.labels(operation="delete", result="ok").inc()
        logger.debug(f"Deleted key: {key} ({removed})")
        return int(removed or 0)

    async def flush(self) -> None:
        """Clear every key in the backend database."""
        await self.backend.flushdb()
        logger.warning("Flushed all keys from cache")

    async def ping(self) -> bool:
        try:
            return bool(await self.backend.ping())
        except Exception as e:
            logger.error(f"Cache ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.backend.aclose()
