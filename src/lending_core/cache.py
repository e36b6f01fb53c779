"""In-memory TTL caches for API responses, with stale-if-error fallback."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from cachetools import LRUCache, TTLCache

from lending_core.config.schema import CacheConfig
from lending_core.errors import UpstreamError
from lending_core.logging import get_logger

log = get_logger(__name__)


class LRUTTLCache:
    """TTL cache that also remembers the last good value for each key.

    Fresh entries expire after *ttl_seconds*; the stale copy lives in a
    size-bounded LRU and is only served when a refresh fails upstream.
    """

    def __init__(self, ttl_seconds: float = 60.0, maxsize: int = 1000, timer: Callable[[], float] | None = None) -> None:
        kwargs = {"timer": timer} if timer is not None else {}
        self._fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, **kwargs)
        self._stale: LRUCache = LRUCache(maxsize=maxsize)

    def get(self, key: str) -> Any | None:
        """Return the fresh value or ``None`` if missing / expired."""
        return self._fresh.get(key)

    def get_stale(self, key: str) -> Any | None:
        return self._stale.get(key)

    def set(self, key: str, value: Any) -> None:
        self._fresh[key] = value
        self._stale[key] = value

    def invalidate(self, key: str) -> None:
        self._fresh.pop(key, None)
        self._stale.pop(key, None)

    def clear(self) -> None:
        self._fresh.clear()
        self._stale.clear()

    def __len__(self) -> int:
        return len(self._fresh)


async def with_stale_if_error(cache: LRUTTLCache, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
    """Serve *key* from cache, refreshing via *fetch* when expired.

    If the refresh raises :class:`UpstreamError` and a previous value
    exists, that value is returned instead. Otherwise the error propagates.
    """
    hit = cache.get(key)
    if hit is not None:
        return hit
    try:
        value = await fetch()
    except UpstreamError as exc:
        stale = cache.get_stale(key)
        if stale is None:
            raise
        log.warning("serving_stale", key=key, source=exc.source, error=str(exc))
        return stale
    cache.set(key, value)
    return value


class CacheSet:
    """Cache tiers: live upstream reads, stored snapshots, and subgraph pool ids."""

    def __init__(self, config: CacheConfig) -> None:
        self.live = LRUTTLCache(ttl_seconds=config.ttl_live_s, maxsize=config.max_size)
        self.snapshots = LRUTTLCache(ttl_seconds=config.ttl_snapshots_s, maxsize=config.max_size)
        # Pool ids never change for a deployed market.
        self.mappings = LRUTTLCache(ttl_seconds=config.ttl_mappings_s, maxsize=config.max_size)

    def clear(self) -> None:
        self.live.clear()
        self.snapshots.clear()
        self.mappings.clear()
