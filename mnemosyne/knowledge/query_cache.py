"""
Query Cache

Time-bounded memoization of store reads and searches, with
memory-pressure eviction.

Design decisions:
- In-memory dict of entries with per-operation TTLs
- Values are stored only after the loader succeeds
- Per-key asyncio locks so concurrent misses load once
- Writes are never cached; they optionally flush the cache
- Composition over patching: CachedContentStore wraps a store
"""

import asyncio
import copy
import gc
import hashlib
import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from mnemosyne.config.settings import CacheSettings
from mnemosyne.core.interfaces import ContentStoreProtocol, MemoryProbeProtocol
from mnemosyne.core.types import Item, ItemSummary, ItemView
from mnemosyne.observability.logging import get_logger
from mnemosyne.observability.metrics import MetricsCollector, get_metrics_collector

logger = get_logger("mnemosyne.query_cache")

T = TypeVar("T")

WRITE_OPERATIONS = frozenset({"initialize", "add_item", "delete_item"})

_MISSING = object()


@dataclass
class CacheEntry:
    """A cached value and its expiry."""

    operation: str
    value: Any
    created_at: float
    expires_at: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    """Running cache counters."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    flushes: int = 0
    by_operation: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def record(self, operation: str, result: str) -> None:
        counts = self.by_operation.setdefault(operation, {"hit": 0, "miss": 0})
        counts[result] += 1
        if result == "hit":
            self.hits += 1
        else:
            self.misses += 1


class PsutilMemoryProbe:
    """Reports system memory utilization through psutil."""

    def current_heap_utilization(self) -> float:
        import psutil

        return psutil.virtual_memory().percent / 100

    def request_gc(self) -> int:
        return gc.collect()


class QueryCache:
    """
    TTL cache for read operations.

    Usage:
        cache = QueryCache(CacheSettings(), memory_probe=PsutilMemoryProbe())
        key = cache.make_key("vector_search", cache.vector_signature(vec), "5")
        rows = await cache.get_or_load("vector_search", key, lambda: store.vector_search(vec, 5))
    """

    def __init__(
        self,
        settings: CacheSettings | None = None,
        memory_probe: MemoryProbeProtocol | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings or CacheSettings()
        self._probe = memory_probe
        self._metrics = metrics or get_metrics_collector()
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

        # Bumped by every flush; loads started before a flush are not stored
        self._generation = 0

        self.stats = CacheStats()

        self._ttls = {
            "list_items": self._settings.list_items_ttl,
            "get_item_by_id": self._settings.get_item_ttl,
            "vector_search": self._settings.vector_search_ttl,
            "semantic_search": self._settings.semantic_search_ttl,
        }

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def invalidate_on_write(self) -> bool:
        return self._settings.invalidate_on_write

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def ttl_for(self, operation: str) -> float:
        """TTL in seconds for a cacheable operation."""
        try:
            return self._ttls[operation]
        except KeyError:
            raise ValueError(f"Operation {operation!r} is not cacheable")

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def vector_signature(self, vector: list[float]) -> str:
        """
        Leading components at fixed precision, a digest of the whole
        rounded vector, and the vector length.
        """
        precision = self._settings.vector_precision
        rounded = [f"{float(v):.{precision}f}" for v in vector]
        prefix = ",".join(rounded[: self._settings.vector_prefix_length])
        digest = hashlib.md5(",".join(rounded).encode()).hexdigest()
        return f"{prefix}|{digest}|{len(vector)}"

    def text_signature(self, text: str, options: Any = None) -> str:
        """Text prefix plus a digest of the option flags."""
        if hasattr(options, "signature"):
            flags = options.signature()
        else:
            flags = json.dumps(options, sort_keys=True, default=str)
        digest = hashlib.md5(flags.encode()).hexdigest()
        return f"{text[: self._settings.text_prefix_length]}|{digest}"

    @staticmethod
    def make_key(operation: str, *parts: str) -> str:
        return ":".join([operation, *parts])

    # ------------------------------------------------------------------
    # Reads and population
    # ------------------------------------------------------------------

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING

        if entry.is_expired(self._clock()):
            self._discard(key, "expired")
            return _MISSING

        entry.hits += 1
        return copy.deepcopy(entry.value)

    def get(self, key: str) -> Any | None:
        """Cached value for key, or None when absent or expired."""
        value = self._lookup(key)
        return None if value is _MISSING else value

    def _store(self, operation: str, key: str, value: Any, ttl: float) -> None:
        if key not in self._entries:
            while len(self._entries) >= self._settings.max_entries:
                self._discard(next(iter(self._entries)), "capacity")

        now = self._clock()
        self._entries[key] = CacheEntry(
            operation=operation,
            value=copy.deepcopy(value),
            created_at=now,
            expires_at=now + ttl,
        )
        self._metrics.gauge("cache_entries").set(len(self._entries))

    async def set(self, operation: str, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value directly."""
        if operation in WRITE_OPERATIONS:
            raise ValueError(f"Write operation {operation!r} cannot be cached")

        async with self._locks.setdefault(key, asyncio.Lock()):
            self._store(operation, key, value, ttl if ttl is not None else self.ttl_for(operation))

    async def get_or_load(
        self,
        operation: str,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: float | None = None,
    ) -> T:
        """
        Return the cached value for key, loading it on a miss.

        Loader exceptions propagate and leave no entry behind.
        """
        if not self.enabled or operation in WRITE_OPERATIONS:
            return await loader()

        value = self._lookup(key)
        if value is not _MISSING:
            self._record_request(operation, "hit")
            return value

        try:
            async with self._locks.setdefault(key, asyncio.Lock()):
                # Another task may have loaded it while we waited
                value = self._lookup(key)
                if value is not _MISSING:
                    self._record_request(operation, "hit")
                    return value

                self._record_request(operation, "miss")
                generation = self._generation

                value = await loader()

                if generation == self._generation:
                    self._store(operation, key, value, ttl if ttl is not None else self.ttl_for(operation))
                else:
                    logger.debug("Cache flushed during load, result not stored", operation=operation)
        finally:
            # Locks live only as long as their entry
            if key not in self._entries:
                self._drop_idle_lock(key)

        return value

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _drop_idle_lock(self, key: str) -> None:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def _discard(self, key: str, reason: str) -> None:
        """Remove one entry and its lock, if no load holds the lock."""
        del self._entries[key]
        self._drop_idle_lock(key)
        self._record_eviction(reason)

    def invalidate(self, key: str) -> bool:
        """Drop one entry."""
        if key not in self._entries:
            return False
        self._discard(key, "invalidated")
        return True

    def clear(self, reason: str = "manual") -> int:
        """Drop every entry, returning how many were removed."""
        count = len(self._entries)
        self._entries.clear()
        self._locks = {k: lock for k, lock in self._locks.items() if lock.locked()}
        self._generation += 1

        self.stats.flushes += 1
        if count:
            self.stats.evictions += count
            self._metrics.counter("cache_evictions_total").inc(count, reason=reason)
        self._metrics.gauge("cache_entries").set(0)

        logger.debug("Cache flushed", reason=reason, entries=count)
        return count

    def check_memory_pressure(self) -> bool:
        """
        Flush the cache when memory utilization is above the high-water mark.

        Returns:
            True if the cache was flushed
        """
        if self._probe is None:
            return False

        utilization = self._probe.current_heap_utilization()
        self._metrics.gauge("memory_utilization_ratio").set(utilization)

        if utilization <= self._settings.memory_high_water:
            return False

        flushed = self.clear(reason="memory_pressure")

        request_gc = getattr(self._probe, "request_gc", None)
        if callable(request_gc):
            request_gc()

        logger.warning(
            "Memory pressure, query cache flushed",
            utilization=round(utilization, 4),
            high_water=self._settings.memory_high_water,
            entries=flushed,
        )
        return True

    def _record_request(self, operation: str, result: str) -> None:
        self.stats.record(operation, result)
        self._metrics.counter("cache_requests_total").inc(operation=operation, result=result)

    def _record_eviction(self, reason: str) -> None:
        self.stats.evictions += 1
        self._metrics.counter("cache_evictions_total").inc(reason=reason)
        self._metrics.gauge("cache_entries").set(len(self._entries))

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of cache statistics."""
        return {
            "size": len(self._entries),
            "locks": len(self._locks),
            "max_entries": self._settings.max_entries,
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "evictions": self.stats.evictions,
            "flushes": self.stats.flushes,
            "hit_ratio": round(self.stats.hit_ratio, 4),
            "by_operation": copy.deepcopy(self.stats.by_operation),
        }


class CachedContentStore:
    """
    Content store decorator that memoizes reads.

    Reads go through the query cache; writes pass straight to the
    wrapped store and flush the cache when configured to.
    """

    def __init__(self, store: ContentStoreProtocol, cache: QueryCache):
        self._store = store
        self._cache = cache

    @property
    def store(self) -> ContentStoreProtocol:
        return self._store

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def dimension(self) -> int:
        return self._store.dimension

    async def initialize(self) -> None:
        await self._store.initialize()

    async def add_item(self, item: Item) -> Item:
        stored = await self._store.add_item(item)
        if self._cache.invalidate_on_write:
            self._cache.clear(reason="write")
        return stored

    async def delete_item(self, item_id: str) -> bool:
        deleted = await self._store.delete_item(item_id)
        if deleted and self._cache.invalidate_on_write:
            self._cache.clear(reason="write")
        return deleted

    async def list_items(self) -> list[ItemSummary]:
        return await self._cache.get_or_load(
            "list_items",
            self._cache.make_key("list_items"),
            self._store.list_items,
        )

    async def vector_search(
        self,
        query_vector: list[float],
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        self._cache.check_memory_pressure()

        key = self._cache.make_key("vector_search", self._cache.vector_signature(query_vector), str(limit))
        rows = await self._cache.get_or_load(
            "vector_search",
            key,
            lambda: self._store.vector_search(query_vector, limit),
        )

        self._cache.check_memory_pressure()
        return rows

    async def get_item_by_id(
        self,
        item_id: str,
        *,
        include_content: bool = False,
        include_vector: bool = False,
    ) -> ItemView:
        key = self._cache.make_key(
            "get_item_by_id",
            item_id,
            f"content={int(include_content)}",
            f"vector={int(include_vector)}",
        )
        return await self._cache.get_or_load(
            "get_item_by_id",
            key,
            lambda: self._store.get_item_by_id(
                item_id,
                include_content=include_content,
                include_vector=include_vector,
            ),
        )
