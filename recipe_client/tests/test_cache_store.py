"""
Unit tests for the cache store.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from recipe_client.app.caching import keys
from recipe_client.app.caching.cache_store import CacheStore
from recipe_client.app.queries import Query
from shared.errors import HttpError
from shared.metrics import MetricsCollector


class TestCacheStore:
    """Test cases for CacheStore."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("test")

    @pytest.fixture
    def cache(self, metrics):
        return CacheStore(metrics=metrics)

    @pytest.mark.asyncio
    async def test_populate_then_hit(self, cache, metrics):
        """Test that a fresh entry is served without calling the fetcher."""
        fetcher = AsyncMock(return_value=["r1"])

        assert await cache.populate(keys.recipes_mine(), fetcher) == ["r1"]
        assert await cache.populate(keys.recipes_mine(), fetcher) == ["r1"]

        assert fetcher.await_count == 1
        assert cache.is_fresh(keys.recipes_mine())
        assert metrics.get_sample("cache_lookups_total", result="miss") == 1
        assert metrics.get_sample("cache_lookups_total", result="hit") == 1

    @pytest.mark.asyncio
    async def test_concurrent_populates_share_one_fetch(self, cache, metrics):
        """Concurrent callers for one key observe a single fetch."""
        release = asyncio.Event()
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            await release.wait()
            return ["r1", "r2"]

        waiters = [asyncio.ensure_future(cache.populate(keys.recipes_mine(), fetcher)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters)

        assert calls == 1
        assert results == [["r1", "r2"]] * 3
        assert metrics.get_sample("cache_lookups_total", result="coalesced") == 2

    @pytest.mark.asyncio
    async def test_concurrent_populates_share_one_error(self, cache):
        release = asyncio.Event()
        error = HttpError(500, "Database error")
        fetcher = AsyncMock()

        async def failing():
            await fetcher()
            await release.wait()
            raise error

        waiters = [asyncio.ensure_future(cache.populate(keys.recipes_mine(), failing)) for _ in range(2)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert fetcher.await_count == 1
        assert results == [error, error]
        assert cache.read(keys.recipes_mine()) is None

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, cache):
        fetcher = AsyncMock(side_effect=[["v1"], ["v2"]])

        await cache.populate(keys.recipes_mine(), fetcher)
        assert cache.invalidate(keys.recipes_mine()) == 1
        assert cache.is_fresh(keys.recipes_mine()) is False
        # Stale data stays readable until the refetch lands
        assert cache.read(keys.recipes_mine()) == ["v1"]

        assert await cache.populate(keys.recipes_mine(), fetcher) == ["v2"]
        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_refetch_keeps_previous_value(self, cache):
        await cache.populate(keys.recipe("r1"), AsyncMock(return_value="v1"))
        cache.invalidate(keys.recipe("r1"))

        with pytest.raises(HttpError):
            await cache.populate(keys.recipe("r1"), AsyncMock(side_effect=HttpError(500)))

        assert cache.read(keys.recipe("r1")) == "v1"
        assert cache.is_fresh(keys.recipe("r1")) is False

    @pytest.mark.asyncio
    async def test_prefix_invalidation(self, cache, metrics):
        """Test that a prefix key marks every key under it stale."""
        for key in (keys.recipes_mine(), keys.recipes_shared(), keys.recipe("r1"), keys.recipe_shares("r1"),
                    keys.recipe("r10")):
            await cache.populate(key, AsyncMock(return_value=str(key)))

        assert cache.invalidate(keys.all_recipe_lists()) == 2
        assert cache.invalidate(keys.recipe("r1")) == 2

        assert not cache.is_fresh(keys.recipes_mine())
        assert not cache.is_fresh(keys.recipes_shared())
        assert not cache.is_fresh(keys.recipe("r1"))
        assert not cache.is_fresh(keys.recipe_shares("r1"))
        assert cache.is_fresh(keys.recipe("r10"))
        assert metrics.get_sample("cache_invalidations_total", resource_kind="recipes") == 2
        assert metrics.get_sample("cache_invalidations_total", resource_kind="recipe") == 2

    @pytest.mark.asyncio
    async def test_exact_invalidation_leaves_children(self, cache):
        await cache.populate(keys.recipe("r1"), AsyncMock(return_value="detail"))
        await cache.populate(keys.recipe_shares("r1"), AsyncMock(return_value=[]))

        assert cache.invalidate(keys.recipe("r1"), exact=True) == 1
        assert cache.is_fresh(keys.recipe_shares("r1"))

    @pytest.mark.asyncio
    async def test_invalidate_detaches_in_flight_fetch(self, cache):
        """A fetch started before an invalidation cannot overwrite a newer one."""
        started = asyncio.Event()
        release_old = asyncio.Event()

        async def old_fetch():
            started.set()
            await release_old.wait()
            return "old"

        first = asyncio.ensure_future(cache.populate(keys.recipes_mine(), old_fetch))
        await started.wait()

        cache.invalidate(keys.recipes_mine())
        assert await cache.populate(keys.recipes_mine(), AsyncMock(return_value="new")) == "new"

        release_old.set()
        assert await first == "old"

        assert cache.read(keys.recipes_mine()) == "new"
        assert cache.is_fresh(keys.recipes_mine())

    @pytest.mark.asyncio
    async def test_result_of_invalidated_fetch_is_not_fresh(self, cache):
        started = asyncio.Event()
        release = asyncio.Event()

        async def fetcher():
            started.set()
            await release.wait()
            return "during-write"

        pending = asyncio.ensure_future(cache.populate(keys.recipes_mine(), fetcher))
        await started.wait()
        cache.invalidate(keys.recipes_mine())
        release.set()
        await pending

        assert cache.read(keys.recipes_mine()) == "during-write"
        assert cache.is_fresh(keys.recipes_mine()) is False

    @pytest.mark.asyncio
    async def test_hold_blocks_populate_until_released(self, cache):
        """Reads of a key with a pending write wait for the write."""
        fetcher = AsyncMock(return_value=["after"])

        async with cache.hold([keys.recipes_mine()]):
            assert cache.has_pending_write(keys.recipes_mine())
            reader = asyncio.ensure_future(cache.populate(keys.recipes_mine(), fetcher))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            assert not reader.done()
            assert fetcher.await_count == 0

        assert await reader == ["after"]
        assert cache.has_pending_write(keys.recipes_mine()) is False

    @pytest.mark.asyncio
    async def test_hold_released_on_error(self, cache):
        with pytest.raises(RuntimeError):
            async with cache.hold([keys.recipe("r1")]):
                raise RuntimeError("write failed")

        assert cache.stats()["pending_writes"] == 0
        assert await cache.populate(keys.recipe("r1"), AsyncMock(return_value="ok")) == "ok"

    @pytest.mark.asyncio
    async def test_hold_covers_keys_under_prefix(self, cache):
        async with cache.hold([keys.recipe("r1")]):
            assert cache.has_pending_write(keys.recipe_shares("r1"))
            assert not cache.has_pending_write(keys.recipe("r2"))
            assert await cache.populate(keys.recipe("r2"), AsyncMock(return_value="r2")) == "r2"

    @pytest.mark.asyncio
    async def test_pending_write_makes_cached_value_untrusted(self, cache):
        """A cached value is not fresh while a write covering it is pending."""
        await cache.populate(keys.recipe_shares("r1"), AsyncMock(return_value=[]))

        async with cache.hold([keys.recipe("r1")]):
            assert cache.is_fresh(keys.recipe_shares("r1")) is False
            assert cache.stats()["fresh"] == 0

        assert cache.is_fresh(keys.recipe_shares("r1"))

    @pytest.mark.asyncio
    async def test_release_evicts_unreferenced_entry_without_grace(self):
        cache = CacheStore(gc_after=0)
        key = keys.recipe("r1")
        cache.retain(key)
        await cache.populate(key, AsyncMock(return_value="detail"))
        assert cache.is_fresh(key)

        cache.release(key)

        assert cache.entry(key) is None

    @pytest.mark.asyncio
    async def test_release_keeps_entry_within_grace_period(self, cache):
        key = keys.recipe("r1")
        cache.retain(key)
        await cache.populate(key, AsyncMock(return_value="detail"))

        cache.release(key)

        assert cache.entry(key).ref_count == 0
        assert cache.entry(key).idle_since is not None
        assert cache.read(key) == "detail"

    @pytest.mark.asyncio
    async def test_prune_evicts_entries_idle_past_grace(self):
        cache = CacheStore(gc_after=5)
        for key in (keys.recipes_mine(), keys.recipes_shared(), keys.recipe("r1")):
            await cache.populate(key, AsyncMock(return_value="value"))
        cache.retain(keys.recipes_shared())
        cache.entry(keys.recipes_mine()).idle_since -= 10

        assert cache.prune() == 1
        assert cache.entry(keys.recipes_mine()) is None
        assert cache.entry(keys.recipes_shared()) is not None
        assert cache.entry(keys.recipe("r1")) is not None

    @pytest.mark.asyncio
    async def test_populate_sweeps_idle_entries(self):
        """Unreferenced entries read through populate alone are still evicted."""
        cache = CacheStore(gc_after=5)
        await cache.populate(keys.recipe("r1"), AsyncMock(return_value="r1"))
        cache.entry(keys.recipe("r1")).idle_since -= 10

        await cache.populate(keys.recipe("r2"), AsyncMock(return_value="r2"))

        assert cache.entry(keys.recipe("r1")) is None
        assert cache.read(keys.recipe("r2")) == "r2"

    @pytest.mark.asyncio
    async def test_hit_restarts_idle_clock(self):
        cache = CacheStore(gc_after=5)
        fetcher = AsyncMock(return_value="r1")
        await cache.populate(keys.recipe("r1"), fetcher)
        cache.entry(keys.recipe("r1")).idle_since -= 4

        await cache.populate(keys.recipe("r1"), fetcher)
        cache.entry(keys.recipe("r1")).idle_since -= 4

        assert cache.prune() == 0
        assert fetcher.await_count == 1

    @pytest.mark.asyncio
    async def test_closed_query_handles_do_not_accumulate(self):
        cache = CacheStore(gc_after=0)

        for i in range(500):
            query = Query(cache, keys.recipe(f"r{i}"), AsyncMock(return_value=i))
            await query.fetch()
            query.close()

        assert cache.stats()["entries"] == 0

    @pytest.mark.asyncio
    async def test_entry_with_fetch_in_flight_is_kept(self):
        cache = CacheStore(gc_after=0)
        started = asyncio.Event()
        release = asyncio.Event()

        async def fetcher():
            started.set()
            await release.wait()
            return "detail"

        pending = asyncio.ensure_future(cache.populate(keys.recipe("r1"), fetcher))
        await started.wait()

        assert cache.prune() == 0
        release.set()
        assert await pending == "detail"

    @pytest.mark.asyncio
    async def test_stale_after_expires_entries(self, metrics):
        cache = CacheStore(stale_after=5, metrics=metrics)
        fetcher = AsyncMock(side_effect=["v1", "v2"])

        await cache.populate(keys.recipes_mine(), fetcher)
        assert cache.is_fresh(keys.recipes_mine())

        cache.entry(keys.recipes_mine()).updated_at -= 10

        assert cache.is_fresh(keys.recipes_mine()) is False
        assert await cache.populate(keys.recipes_mine(), fetcher) == "v2"

    @pytest.mark.asyncio
    async def test_clear_discards_late_results(self, cache):
        started = asyncio.Event()
        release = asyncio.Event()

        async def fetcher():
            started.set()
            await release.wait()
            return ["previous user"]

        pending = asyncio.ensure_future(cache.populate(keys.recipes_mine(), fetcher))
        await started.wait()
        cache.clear()
        release.set()
        await pending

        assert cache.read(keys.recipes_mine()) is None
        assert cache.stats()["entries"] == 0

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        cache.retain(keys.recipe("r1"))
        await cache.populate(keys.recipe("r1"), AsyncMock(return_value="detail"))
        await cache.populate(keys.recipes_mine(), AsyncMock(return_value=[]))
        cache.invalidate(keys.recipes_mine())

        assert cache.stats() == {
            "entries": 2,
            "fresh": 1,
            "in_flight": 0,
            "referenced": 1,
            "pending_writes": 0,
        }
