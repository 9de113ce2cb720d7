"""
Unit Tests for the Cache Client

Covers the three read strategies: negative caching (pass-through), single
rebuild under a mutex, and stale-while-revalidate with logical expiration.
Rebuild jobs are collected by ManualRebuildExecutor and run on demand.
"""

import asyncio

import pytest

from shopcache.core.config.constants import CACHE_SHOP_KEY, CacheOutcome
from shopcache.core.exceptions import LockUnavailableError, StoreTransientError
from shopcache.infrastructure.cache.cache_client import CacheClient
from shopcache.infrastructure.cache.rebuild_pool import RebuildPool
from shopcache.infrastructure.cache.serialization import decode_envelope
from shopcache.models import Shop
from tests.test_fixtures import CountingLoader, DomainFactory


@pytest.mark.unit
class TestPassThrough:

    @pytest.mark.asyncio
    async def test_miss_loads_and_caches(self, cache_client, store):
        loader = CountingLoader({1: DomainFactory.shop(1)})

        shop = await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 1, Shop, loader)
        again = await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 1, Shop, loader)

        assert shop.name == "Tea House"
        assert again == shop
        assert loader.calls == 1
        assert store.ttl("cache:shop:1") == 1800

    @pytest.mark.asyncio
    async def test_negative_caching(self, cache_client, store, clock):
        """Absent id: one load, then served from the empty marker until it expires."""
        loader = CountingLoader()

        for _ in range(5):
            assert await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 999, Shop, loader) is None

        assert loader.calls == 1
        assert await store.get("cache:shop:999") == ""
        assert store.ttl("cache:shop:999") == 120

        clock.advance(120)
        await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 999, Shop, loader)
        assert loader.calls == 2

    @pytest.mark.asyncio
    async def test_sync_loader_accepted(self, cache_client):
        shop = await cache_client.query_with_pass_through(
            CACHE_SHOP_KEY, 3, Shop, lambda ident: DomainFactory.shop(ident)
        )
        assert shop.id == 3

    @pytest.mark.asyncio
    async def test_custom_ttls(self, cache_client, store):
        await cache_client.query_with_pass_through(
            CACHE_SHOP_KEY, 1, Shop, CountingLoader({1: DomainFactory.shop(1)}), ttl=60
        )
        await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 2, Shop, CountingLoader(), null_ttl=5)

        assert store.ttl("cache:shop:1") == 60
        assert store.ttl("cache:shop:2") == 5

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, cache_client, store):
        await store.set("cache:shop:1", "{not json")
        loader = CountingLoader({1: DomainFactory.shop(1)})

        shop = await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 1, Shop, loader)

        assert shop.id == 1
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_store_failure_propagates_without_loading(self, cache_client, store):
        loader = CountingLoader({1: DomainFactory.shop(1)})
        store.fail_next(StoreTransientError("down"))

        with pytest.raises(StoreTransientError):
            await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 1, Shop, loader)

        assert loader.calls == 0
        assert not store.exists("cache:shop:1")

    @pytest.mark.asyncio
    async def test_loader_error_propagates_and_caches_nothing(self, cache_client, store):
        loader = CountingLoader(error=RuntimeError("db down"))

        with pytest.raises(RuntimeError):
            await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 1, Shop, loader)

        assert not store.exists("cache:shop:1")

    @pytest.mark.asyncio
    async def test_outcomes_recorded(self, cache_client, metrics):
        loader = CountingLoader()
        await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 5, Shop, loader)
        await cache_client.query_with_pass_through(CACHE_SHOP_KEY, 5, Shop, loader)

        outcomes = [c.args[1] for c in metrics.record_cache_lookup.call_args_list]
        assert outcomes == [CacheOutcome.MISS.value, CacheOutcome.NEGATIVE_HIT.value]


@pytest.mark.unit
class TestMutex:

    @pytest.mark.asyncio
    async def test_concurrent_readers_load_once(self, cache_client, store):
        """50 readers of a cold key: one load, everyone gets the value, lock released."""
        loader = CountingLoader({1: DomainFactory.shop(1)}, delay=0.02)

        results = await asyncio.gather(
            *(cache_client.query_with_mutex(CACHE_SHOP_KEY, 1, Shop, loader) for _ in range(50))
        )

        assert loader.calls == 1
        assert all(shop is not None and shop.id == 1 for shop in results)
        assert not store.exists("lock:shop:1")

    @pytest.mark.asyncio
    async def test_absent_entity_cached_as_negative(self, cache_client, store):
        loader = CountingLoader(delay=0.01)

        results = await asyncio.gather(
            *(cache_client.query_with_mutex(CACHE_SHOP_KEY, 404, Shop, loader) for _ in range(10))
        )

        assert results == [None] * 10
        assert loader.calls == 1
        assert await store.get("cache:shop:404") == ""

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self, store, lock, rebuild_executor, clock, settings, metrics):
        client = CacheClient(
            store, lock, rebuild_executor, clock=clock,
            settings=settings.model_copy(update={"CACHE_MUTEX_MAX_RETRIES": 2}),
            metrics=metrics,
        )
        await store.set("lock:shop:1", "someone-else", ttl=10)
        loader = CountingLoader({1: DomainFactory.shop(1)})

        with pytest.raises(LockUnavailableError):
            await client.query_with_mutex(CACHE_SHOP_KEY, 1, Shop, loader)

        assert loader.calls == 0
        assert store.calls["set_if_absent"] == 3

    @pytest.mark.asyncio
    async def test_loader_error_releases_lock(self, cache_client, store):
        loader = CountingLoader(error=RuntimeError("db down"))

        with pytest.raises(RuntimeError):
            await cache_client.query_with_mutex(CACHE_SHOP_KEY, 1, Shop, loader)

        assert not store.exists("lock:shop:1")
        assert not store.exists("cache:shop:1")

    @pytest.mark.asyncio
    async def test_hit_skips_lock(self, cache_client, store):
        await cache_client.set("cache:shop:1", DomainFactory.shop(1), ttl=60)

        shop = await cache_client.query_with_mutex(CACHE_SHOP_KEY, 1, Shop, CountingLoader())

        assert shop.id == 1
        assert store.calls["set_if_absent"] == 0


@pytest.mark.unit
class TestLogicalExpire:

    @pytest.mark.asyncio
    async def test_absent_key_is_not_hot(self, cache_client, rebuild_executor):
        loader = CountingLoader({1: DomainFactory.shop(1)})

        assert await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, loader) is None
        assert loader.calls == 0
        assert rebuild_executor.pending == 0

    @pytest.mark.asyncio
    async def test_fresh_entry_served(self, cache_client, store, rebuild_executor):
        await cache_client.set_with_logical_expire("cache:shop:1", DomainFactory.shop(1), 20)

        shop = await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, CountingLoader())

        assert shop.id == 1
        assert store.ttl("cache:shop:1") is None
        assert rebuild_executor.pending == 0

    @pytest.mark.asyncio
    async def test_stale_entry_served_while_one_refresh_runs(
        self, cache_client, store, clock, rebuild_executor
    ):
        await cache_client.set_with_logical_expire("cache:shop:1", DomainFactory.shop(1), 20)
        clock.advance(30)
        loader = CountingLoader({1: DomainFactory.shop(1, name="Tea House v2")})

        stale = await asyncio.gather(
            *(cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, loader) for _ in range(20))
        )

        assert {shop.name for shop in stale} == {"Tea House"}
        assert rebuild_executor.pending == 1
        assert rebuild_executor.names == ["cache:shop:1"]
        assert store.exists("lock:shop:1")

        await rebuild_executor.run_all()

        fresh = await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, loader)
        assert fresh.name == "Tea House v2"
        assert loader.calls == 1
        assert not store.exists("lock:shop:1")

    @pytest.mark.asyncio
    async def test_explicit_zero_ttl_is_not_replaced_by_default(
        self, cache_client, store, clock, rebuild_executor
    ):
        await cache_client.set_with_logical_expire("cache:shop:1", DomainFactory.shop(1), 20)
        clock.advance(30)
        loader = CountingLoader({1: DomainFactory.shop(1)})

        await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, loader, ttl=0)
        await rebuild_executor.run_all()

        envelope = decode_envelope(await store.get("cache:shop:1"), Shop)
        assert envelope.expire_time == clock.now()

    @pytest.mark.asyncio
    async def test_loader_returning_none_keeps_stale_entry(
        self, cache_client, store, clock, rebuild_executor
    ):
        await cache_client.set_with_logical_expire("cache:shop:1", DomainFactory.shop(1), 20)
        clock.advance(30)
        loader = CountingLoader()

        await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, loader)
        await rebuild_executor.run_all()

        assert loader.calls == 1
        assert not store.exists("lock:shop:1")

        # Still expired, so the next reader schedules another refresh.
        shop = await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, loader)
        assert shop.name == "Tea House"
        assert rebuild_executor.pending == 1

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_stale_and_releases_lock(
        self, cache_client, store, clock, rebuild_executor, metrics
    ):
        await cache_client.set_with_logical_expire("cache:shop:1", DomainFactory.shop(1), 20)
        clock.advance(30)
        loader = CountingLoader(error=RuntimeError("db down"))

        await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, loader)
        with pytest.raises(RuntimeError):
            await rebuild_executor.run_all()

        assert not store.exists("lock:shop:1")
        metrics.record_rebuild_failure.assert_called_once_with("logical_expire")
        shop = await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, loader)
        assert shop.name == "Tea House"

    @pytest.mark.asyncio
    async def test_corrupt_envelope_is_a_miss(self, cache_client, store, metrics):
        await store.set("cache:shop:1", '{"data": null}')

        assert await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, CountingLoader()) is None
        metrics.record_cache_lookup.assert_any_call("logical_expire", CacheOutcome.CORRUPT.value)

    @pytest.mark.asyncio
    async def test_submit_failure_releases_lock(self, cache_client, store, clock, rebuild_executor):
        await cache_client.set_with_logical_expire("cache:shop:1", DomainFactory.shop(1), 20)
        clock.advance(30)

        async def broken_submit(job, name="rebuild"):
            raise RuntimeError("executor gone")

        rebuild_executor.submit = broken_submit

        with pytest.raises(RuntimeError):
            await cache_client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, CountingLoader())

        assert not store.exists("lock:shop:1")


@pytest.mark.unit
class TestInvalidate:

    @pytest.mark.asyncio
    async def test_invalidate_drops_entry(self, cache_client, store):
        await cache_client.set("cache:shop:1", DomainFactory.shop(1), ttl=60)

        assert await cache_client.invalidate("cache:shop:1") is True
        assert not store.exists("cache:shop:1")
        assert await cache_client.invalidate("cache:shop:1") is False


@pytest.mark.unit
class TestLogicalExpireOnRebuildPool:

    @pytest.mark.asyncio
    async def test_reads_return_while_slow_refresh_runs(self, store, lock, clock, settings, metrics):
        pool = RebuildPool(size=2, metrics=metrics)
        client = CacheClient(store, lock, pool, clock=clock, settings=settings, metrics=metrics)
        await client.set_with_logical_expire("cache:shop:1", DomainFactory.shop(1), 20)
        clock.advance(30)

        refresh_started = asyncio.Event()
        finish_refresh = asyncio.Event()

        async def slow_loader(shop_id):
            refresh_started.set()
            await finish_refresh.wait()
            return DomainFactory.shop(shop_id, name="Tea House v2")

        try:
            first = await client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, slow_loader)
            await asyncio.wait_for(refresh_started.wait(), timeout=1)

            during = await asyncio.wait_for(
                asyncio.gather(
                    *(client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, slow_loader) for _ in range(10))
                ),
                timeout=1,
            )

            assert first.name == "Tea House"
            assert {shop.name for shop in during} == {"Tea House"}
            assert pool.stats()["completed"] == 0

            finish_refresh.set()
            await pool.join()

            fresh = await client.query_with_logical_expire(CACHE_SHOP_KEY, 1, Shop, slow_loader)
            assert fresh.name == "Tea House v2"
            assert pool.stats()["completed"] == 1
        finally:
            finish_refresh.set()
            await pool.shutdown()
