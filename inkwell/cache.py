# inkwell/cache.py
"""In-process caches for expensive read queries (post listings, search, profiles).

Each logical cache is a bounded LRU map whose entries expire after a
per-entry TTL. Entries past their TTL read as absent even before they are
purged. Reading an entry refreshes its recency but never its TTL.

Invalidation after writes is best effort: a handful of guessed keys are
deleted and anything missed stays stale until it expires. Each uvicorn worker
holds its own instances.
"""

import inspect
import logging
import time
from collections import namedtuple
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

_Entry = namedtuple("_Entry", ["value", "ttl"])

_MISSING = object()


def _expires_at(_key, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class CacheManager:
    """Bounded TTL cache with least-recently-used eviction.

    ``ttl`` values are seconds. ``timer`` is any zero-argument callable
    returning seconds; tests pass a fake clock.
    """

    def __init__(self, max_size: int = 500, ttl: float = 300, timer: Callable[[], float] = time.monotonic):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self.ttl = ttl
        self._cache = TLRUCache(maxsize=max_size, ttu=_expires_at, timer=timer)

    def get(self, key: str, default: Any = None) -> Any:
        try:
            entry = self._cache.get(key, _MISSING)
        except Exception:
            logger.debug("Cache read failed for %s; treating as miss", key, exc_info=True)
            return default
        if entry is _MISSING:
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.ttl if ttl is None else ttl
        if ttl <= 0:
            self._cache.pop(key, None)
            return
        self._cache[key] = _Entry(value, ttl)

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def has(self, key: str) -> bool:
        return key in self._cache

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._cache), "max": self.max_size}

    async def get_or_compute(
        self,
        key: str,
        producer: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        ``producer`` may be a plain callable or return an awaitable. Concurrent
        misses on the same key may each call the producer. If the producer
        raises, nothing is stored and the exception reaches the caller.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        value = producer()
        if inspect.isawaitable(value):
            value = await value
        self.set(key, value, ttl)
        return value


# One instance per data category
user_cache = CacheManager(max_size=1000, ttl=60 * 10)
post_cache = CacheManager(max_size=500, ttl=60 * 5)
search_cache = CacheManager(max_size=200, ttl=60 * 2)

ALL_CACHES = {"users": user_cache, "posts": post_cache, "search": search_cache}


class cache_keys:
    """Key builders shared by handlers and invalidation helpers."""

    @staticmethod
    def user(user_id) -> str:
        return f"user:{user_id}"

    @staticmethod
    def user_posts(user_id, page: int) -> str:
        return f"user:{user_id}:posts:{page}"

    @staticmethod
    def post(post_id) -> str:
        return f"post:{post_id}"

    @staticmethod
    def posts(page: int, limit: int) -> str:
        return f"posts:{page}:{limit}"

    @staticmethod
    def search(query: str, search_type: str) -> str:
        return f"search:{query}:{search_type}"

    @staticmethod
    def trending_tags() -> str:
        return "trending:tags"

    @staticmethod
    def user_stats(user_id) -> str:
        return f"user:{user_id}:stats"


def invalidate_user_cache(user_id) -> None:
    user_cache.delete(cache_keys.user(user_id))
    user_cache.delete(cache_keys.user_stats(user_id))
    # only the first pages are guessed; deeper pages expire on their own
    for page in range(1, 11):
        user_cache.delete(cache_keys.user_posts(user_id, page))


def invalidate_post_cache(post_id) -> None:
    post_cache.delete(cache_keys.post(post_id))
    for page in range(1, 6):
        post_cache.delete(cache_keys.posts(page, 10))
