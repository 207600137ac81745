import json
import time
from typing import Any, Callable

from cachetools import TLRUCache
from redis.asyncio import Redis, RedisError

from app.core.config import Settings, get_settings
from app.core.errors import CacheUnavailableError

import logging

logger = logging.getLogger(__name__)

MEMORY_SCHEME = "memory://"


def _entry_expiry(_key, entry, now):
    # entry is (ttl_seconds, payload)
    return now + entry[0]


class CacheLayer:
    """
    Key-value cache with per-entry expiry.

    Backends:
    - Redis (shared by every worker), selected by a redis:// or rediss:// DSN
    - Process-local TLRUCache, selected by "memory://" (single process only)

    Features:
    - JSON serialization and automatic key namespacing
    - Backend failures raise CacheUnavailableError instead of looking like a miss
    - Degraded start when Redis is down; the client reconnects lazily
    """

    def __init__(
        self,
        settings: Settings | None = None,
        redis: Redis | None = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings or get_settings()
        self._redis: Redis | None = redis
        self._local: TLRUCache | None = None
        self._timer = timer
        self._initialized = False

        # Stats tracking
        self.stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
        }

    @property
    def backend(self) -> str:
        return "memory" if self._is_memory() else "redis"

    def _is_memory(self) -> bool:
        return self._redis is None and self._settings.redis_dsn.startswith(
            MEMORY_SCHEME
        )

    async def init_cache(self):
        """Create the backend client and verify connectivity."""
        if self._initialized:
            return

        settings = self._settings

        if self._is_memory():
            self._local = TLRUCache(
                maxsize=settings.memory_cache_maxsize,
                ttu=_entry_expiry,
                timer=self._timer,
            )
            self._initialized = True
            logger.info("Cache layer initialized (process-local backend)")
            return

        if self._redis is None:
            self._redis = Redis.from_url(
                settings.redis_dsn,
                encoding="utf-8",
                decode_responses=True,
                max_connections=settings.redis_pool_size,
                socket_connect_timeout=settings.redis_socket_timeout,
                socket_timeout=settings.redis_socket_timeout,
                socket_keepalive=True,
                health_check_interval=30,
            )
        self._initialized = True

        try:
            await self._redis.ping()
            logger.info("Redis connection established")
        except RedisError as e:
            # Degraded operation: every call raises until Redis is back
            logger.warning(f"Redis unavailable at startup, running degraded: {e}")

    def _key(self, key: str) -> str:
        """Build namespaced cache key."""
        return f"{self._settings.cache_namespace}{key}"

    def _serialize(self, value: Any) -> str:
        """Serialize value for storage."""
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Serialization failed: {e}")
            raise

    def _deserialize(self, raw: str) -> Any:
        """Deserialize value from storage."""
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry")
            return None

    def _unavailable(self, op: str, key: str, error: Exception) -> CacheUnavailableError:
        self.stats["errors"] += 1
        logger.warning(f"Redis {op} error for {key}: {error}")
        return CacheUnavailableError(f"cache {op} failed: {error}")

    async def get(self, key: str) -> Any:
        """
        Return the cached value for key, or None when absent or expired.

        Raises:
            CacheUnavailableError: the backend could not be reached
        """
        await self.init_cache()
        ns_key = self._key(key)

        if self._local is not None:
            entry = self._local.get(ns_key)
            raw = entry[1] if entry is not None else None
        else:
            try:
                raw = await self._redis.get(ns_key)
            except RedisError as e:
                raise self._unavailable("GET", key, e) from e

        if raw is None:
            self.stats["misses"] += 1
            logger.debug(f"Cache miss for {key}")
            return None

        value = self._deserialize(raw)
        if value is None:
            self.stats["misses"] += 1
            return None

        self.stats["hits"] += 1
        logger.debug(f"Cache hit for {key}")
        return value

    async def set(self, key: str, value: Any, ttl: int):
        """
        Store value under key for ttl seconds.

        Raises:
            CacheUnavailableError: the backend could not be reached
        """
        await self.init_cache()
        ns_key = self._key(key)
        data = self._serialize(value)

        if self._local is not None:
            self._local[ns_key] = (ttl, data)
        else:
            try:
                await self._redis.set(ns_key, data, ex=ttl)
            except RedisError as e:
                raise self._unavailable("SET", key, e) from e

        self.stats["sets"] += 1
        logger.debug(f"Stored {key} for {ttl}s")

    async def delete(self, key: str):
        """
        Remove key. Deleting an absent key is a no-op.

        Raises:
            CacheUnavailableError: the backend could not be reached
        """
        await self.init_cache()
        ns_key = self._key(key)

        if self._local is not None:
            self._local.pop(ns_key, None)
        else:
            try:
                await self._redis.delete(ns_key)
            except RedisError as e:
                raise self._unavailable("DELETE", key, e) from e

        self.stats["deletes"] += 1
        logger.debug(f"Deleted {key}")

    async def ping(self) -> bool:
        await self.init_cache()
        if self._local is not None:
            return True
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error(f"Cache health check failed: {e}")
            return False

    async def close(self):
        """Graceful shutdown of cache connections."""
        if self._redis:
            try:
                await self._redis.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis: {e}")
        if self._local is not None:
            self._local.clear()
        self._initialized = False

    def get_stats(self) -> dict:
        """Get cache statistics."""
        lookups = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "backend": self.backend,
            "hit_rate": self.stats["hits"] / lookups if lookups > 0 else 0,
        }
