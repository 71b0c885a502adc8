"""Unified TTL caching for phishgate.

One cache class serves every concern:
- Verdicts (size capped, cleared wholesale when the cap is exceeded)
- Domain-age lookups
- Mail-exchange lookups
- Fetched script analysis results
- Remote trusted-list assets
- Shortened-URL resolutions

Entries expire a fixed time after insertion, independent of access. The engine
runs on a single event loop, so no locking is needed; ``get_or_fetch`` shares
one outstanding fetch between concurrent callers of the same key.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class _Miss:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


# Returned by ``TTLCache.get`` when a key is absent or expired.
MISS: Any = _Miss()


class CacheEntry:
    """Represents a cached value with its insertion time."""

    __slots__ = ("value", "inserted_at")

    def __init__(self, value: Any, inserted_at: float):
        self.value = value
        self.inserted_at = inserted_at

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        return now - self.inserted_at >= ttl_seconds


class TTLCache:
    """
    In-memory TTL cache with an optional hard size cap.

    Usage:
        cache = TTLCache(ttl_seconds=3600, max_entries=1000, namespace="verdict")
        cache.set("https://example.com", verdict)
        cached = cache.get("https://example.com")
        if cached is MISS:
            ...

        value = await cache.get_or_fetch("example.com", fetch_async_fn)
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: Optional[int] = None,
        namespace: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.namespace = namespace
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0
        self.resets = 0

    def get(self, key: str, default: Any = MISS) -> Any:
        """Return the cached value, or ``default`` when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return default
        if entry.is_expired(self.ttl_seconds, self._clock()):
            del self._entries[key]
            self.misses += 1
            return default
        self.hits += 1
        return entry.value

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISS

    def set(self, key: str, value: Any) -> None:
        if (
            self.max_entries is not None
            and key not in self._entries
            and len(self._entries) >= self.max_entries
        ):
            logger.debug(
                "Cache %s reached %d entries; clearing", self.namespace or "<anon>", len(self._entries)
            )
            self._entries.clear()
            self.resets += 1
        self._entries[key] = CacheEntry(value, self._clock())

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Evict every expired entry; return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(self.ttl_seconds, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired entries from %s cache", len(expired), self.namespace or "<anon>")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_fetch(self, key: str, fetch_fn: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value or await ``fetch_fn`` and cache its result.

        Concurrent callers for the same key await the same fetch. A failed
        fetch is not cached; the exception propagates to every waiter.
        """
        cached = self.get(key)
        if cached is not MISS:
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future = asyncio.ensure_future(fetch_fn())
        self._inflight[key] = future
        try:
            value = await asyncio.shield(future)
        finally:
            self._inflight.pop(key, None)
        self.set(key, value)
        return value

    def stats(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "ttl_seconds": self.ttl_seconds,
            "max_entries": self.max_entries,
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "resets": self.resets,
        }


class CacheRegistry:
    """The engine's family of caches, one per concern."""

    def __init__(self, config, clock: Callable[[], float] = time.monotonic):
        self.verdicts = TTLCache(
            config.verdict_cache_ttl,
            max_entries=config.verdict_cache_max_entries,
            namespace="verdict",
            clock=clock,
        )
        self.domain_ages = TTLCache(config.domain_age_cache_ttl, namespace="domain_age", clock=clock)
        self.mail_lookups = TTLCache(config.mx_cache_ttl, namespace="mx", clock=clock)
        self.scripts = TTLCache(config.script_cache_ttl, namespace="script", clock=clock)
        self.assets = TTLCache(config.asset_cache_ttl, namespace="asset", clock=clock)
        self.redirects = TTLCache(
            config.verdict_cache_ttl,
            max_entries=config.verdict_cache_max_entries,
            namespace="redirect",
            clock=clock,
        )

    def all(self) -> list[TTLCache]:
        return [self.verdicts, self.domain_ages, self.mail_lookups, self.scripts, self.assets, self.redirects]

    def sweep_all(self) -> int:
        return sum(cache.sweep() for cache in self.all())

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {cache.namespace: cache.stats() for cache in self.all()}
