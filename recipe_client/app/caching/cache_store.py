"""
Client-side cache of query results keyed by structured cache keys.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .keys import CacheKey


Fetcher = Callable[[], Awaitable[Any]]

DEFAULT_GC_AFTER = 300.0


@dataclass
class CacheEntry:
    """State of one cached query."""

    key: CacheKey
    value: Any = None
    has_value: bool = False
    fresh: bool = False
    # Bumped on every invalidation; a fetch only marks the entry fresh if
    # no invalidation happened while it was running.
    generation: int = 0
    value_generation: int = -1
    updated_at: Optional[float] = None
    # Set when the entry last became unreferenced and idle; None while in use
    idle_since: Optional[float] = None
    in_flight: Optional["asyncio.Task[Any]"] = None
    ref_count: int = 0


class CacheStore:
    """Read-through cache with request coalescing and prefix invalidation.

    All state changes go through ``populate``, ``invalidate`` and ``hold``.
    The store is meant for a single event loop; none of its bookkeeping
    awaits between reading and writing an entry.

    An entry with no subscribers and no fetch running is evicted once it has
    been idle for ``gc_after`` seconds. Eviction runs on ``release`` and
    ``populate``.
    """

    def __init__(
        self,
        *,
        stale_after: Optional[float] = None,
        gc_after: float = DEFAULT_GC_AFTER,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.stale_after = stale_after
        self.gc_after = gc_after
        self.metrics = metrics
        self.logger = get_logger("cache.store")
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._holds: List[Tuple[Tuple[CacheKey, ...], asyncio.Event]] = []

    def read(self, key: CacheKey) -> Any:
        """Last known value for ``key`` (possibly stale), or None. Never fetches."""
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return None
        return entry.value

    def is_fresh(self, key: CacheKey) -> bool:
        """False while a write affecting ``key`` is pending, even for a cached value."""
        entry = self._entries.get(key)
        return entry is not None and self._is_fresh(entry)

    def has_pending_write(self, key: CacheKey) -> bool:
        return bool(self._affecting_holds(key))

    def entry(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def populate(self, key: CacheKey, fetcher: Fetcher) -> Any:
        """Return the cached value for ``key``, fetching it if needed.

        Concurrent callers for the same key share one fetch and observe the
        same result or the same exception. A failed fetch caches nothing.
        """
        await self._wait_for_writes(key)
        self.prune()

        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = CacheEntry(key=key)

        if self._is_fresh(entry):
            self._record_lookup("hit")
            if entry.idle_since is not None:
                entry.idle_since = time.monotonic()
            return entry.value

        if entry.in_flight is not None:
            self._record_lookup("coalesced")
            self.logger.debug("Joining in-flight fetch", key=str(key))
            return await asyncio.shield(entry.in_flight)

        self._record_lookup("miss")
        task = asyncio.ensure_future(self._fetch(entry, fetcher, entry.generation))
        task.add_done_callback(consume_exception)
        entry.in_flight = task
        entry.idle_since = None
        return await asyncio.shield(task)

    def invalidate(self, key_or_prefix: CacheKey, exact: bool = False) -> int:
        """Mark matching entries stale so the next ``populate`` refetches.

        Fetches already running for those entries are detached: their
        callers still get the result, but it is not marked fresh and later
        callers start a new fetch. Returns the number of entries touched.
        """
        touched = 0
        for key, entry in self._entries.items():
            matched = key == key_or_prefix if exact else key.matches(key_or_prefix)
            if not matched:
                continue
            entry.fresh = False
            entry.generation += 1
            entry.in_flight = None
            touched += 1

        if touched and self.metrics:
            self.metrics.increment_counter(
                "cache_invalidations_total",
                touched,
                resource_kind=key_or_prefix.kind.value,
            )

        self.logger.debug("Cache invalidated", key=str(key_or_prefix), exact=exact, entries=touched)
        return touched

    @asynccontextmanager
    async def hold(self, keys: Iterable[CacheKey]) -> AsyncIterator[None]:
        """Register a pending write against ``keys`` for the duration of the block.

        ``populate`` on any key covered by a held key waits until the block
        exits, whether it exits normally or with an exception.
        """
        record = (tuple(keys), asyncio.Event())
        self._holds.append(record)
        try:
            yield
        finally:
            self._holds.remove(record)
            record[1].set()

    def retain(self, key: CacheKey) -> None:
        """Add a subscriber reference to ``key``."""
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = CacheEntry(key=key)
        entry.ref_count += 1
        entry.idle_since = None

    def release(self, key: CacheKey) -> None:
        """Drop a subscriber reference, then evict whatever has been idle long enough."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.ref_count = max(0, entry.ref_count - 1)
        self._mark_idle(entry)
        self.prune()

    def prune(self) -> int:
        """Evict every entry idle for ``gc_after`` seconds. Returns the number evicted."""
        now = time.monotonic()
        evictable = [key for key, entry in self._entries.items() if self._evictable(entry, now)]
        for key in evictable:
            del self._entries[key]
        if evictable:
            self.logger.debug("Pruned cache entries", entries=len(evictable))
        return len(evictable)

    def clear(self) -> None:
        """Forget everything. Fetches still running will not write back."""
        count = len(self._entries)
        self._entries.clear()
        self.logger.info("Cache cleared", entries=count)

    def stats(self) -> Dict[str, Any]:
        entries = list(self._entries.values())
        return {
            "entries": len(entries),
            "fresh": sum(1 for entry in entries if self._is_fresh(entry)),
            "in_flight": sum(1 for entry in entries if entry.in_flight is not None),
            "referenced": sum(1 for entry in entries if entry.ref_count > 0),
            "pending_writes": len(self._holds),
        }

    async def _fetch(self, entry: CacheEntry, fetcher: Fetcher, generation: int) -> Any:
        task = asyncio.current_task()
        try:
            value = await fetcher()
        except Exception as exc:
            self.logger.debug("Cache fetch failed", key=str(entry.key), error=str(exc))
            raise
        finally:
            if entry.in_flight is task:
                entry.in_flight = None
            self._mark_idle(entry)

        if self._entries.get(entry.key) is not entry:
            # Entry was cleared or evicted while fetching
            return value

        if generation >= entry.value_generation:
            entry.value = value
            entry.has_value = True
            entry.value_generation = generation
            entry.updated_at = time.monotonic()
            entry.fresh = generation == entry.generation
        return value

    def _is_fresh(self, entry: CacheEntry) -> bool:
        if not entry.fresh or not entry.has_value:
            return False
        if self._affecting_holds(entry.key):
            return False
        if self.stale_after is None or entry.updated_at is None:
            return True
        return (time.monotonic() - entry.updated_at) <= self.stale_after

    def _mark_idle(self, entry: CacheEntry) -> None:
        if entry.ref_count == 0 and entry.in_flight is None and entry.idle_since is None:
            entry.idle_since = time.monotonic()

    def _evictable(self, entry: CacheEntry, now: float) -> bool:
        if entry.ref_count > 0 or entry.in_flight is not None or entry.idle_since is None:
            return False
        return now - entry.idle_since >= self.gc_after

    def _affecting_holds(self, key: CacheKey) -> List[asyncio.Event]:
        return [
            event
            for held_keys, event in self._holds
            if any(key.matches(held) for held in held_keys)
        ]

    async def _wait_for_writes(self, key: CacheKey) -> None:
        pending = self._affecting_holds(key)
        while pending:
            self.logger.debug("Waiting for pending writes", key=str(key), writes=len(pending))
            for event in pending:
                await event.wait()
            pending = self._affecting_holds(key)

    def _record_lookup(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_lookups_total", result=result)


def consume_exception(task: "asyncio.Task[Any]") -> None:
    # Callers may all have gone away; keep asyncio from warning about it.
    if not task.cancelled():
        task.exception()
