import logging
from functools import wraps
from typing import Callable

from pydantic import TypeAdapter, ValidationError

from app.core.errors import CacheUnavailableError

logger = logging.getLogger(__name__)


def async_cached(key: str, adapter: TypeAdapter):
    """
    Read-through caching for async service methods.

    The owning instance provides `cache` and `cache_ttl`. On a hit the
    decoded value is returned without calling the method. On a miss the
    method runs and its result is stored with the instance TTL. Exceptions
    from the method propagate and nothing is cached.

    A cache that cannot be reached counts as a miss; the populate step is
    then skipped. A failed populate is logged and ignored.

    Example:
      @async_cached("tasks:all", TypeAdapter(list[TaskResponse]))
      async def list_tasks(self): ...
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, *args, **kwargs):
            cache_ok = True
            try:
                cached = await self.cache.get(key)
            except CacheUnavailableError as e:
                logger.warning(f"Cache read failed for {key}, using store: {e}")
                cached = None
                cache_ok = False

            if cached is not None:
                try:
                    return adapter.validate_python(cached)
                except ValidationError as e:
                    logger.warning(f"Ignoring malformed cache entry {key}: {e}")

            value = await fn(self, *args, **kwargs)

            if cache_ok:
                try:
                    await self.cache.set(
                        key, adapter.dump_python(value, mode="json"), self.cache_ttl
                    )
                except CacheUnavailableError as e:
                    logger.warning(f"Cache populate failed for {key}: {e}")
            return value

        return wrapper

    return decorator


def async_cached_expire(key: str):
    """
    Evict `key` after the wrapped write completes.

    Eviction runs only when the method returns normally, so failed
    validation or a missing row leaves the cache untouched. An eviction
    that cannot reach the cache is logged and the write still succeeds;
    the stale entry expires on its own TTL.
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, *args, **kwargs):
            result = await fn(self, *args, **kwargs)
            try:
                await self.cache.delete(key)
            except CacheUnavailableError as e:
                logger.warning(f"Cache eviction failed for {key}: {e}")
            return result

        return wrapper

    return decorator
