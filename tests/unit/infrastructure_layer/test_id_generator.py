"""
Unit Tests for the Monotonic ID Generator
"""

import asyncio
from datetime import datetime, timezone

import pytest

from shopcache.core.clock import ManualClock
from shopcache.core.config.constants import ID_SEQUENCE_MASK
from shopcache.core.exceptions import ConfigurationError, StoreTransientError
from shopcache.infrastructure.coordination.id_generator import (
    RedisIdGenerator,
    sequence_of,
    timestamp_of,
)
from shopcache.infrastructure.kv.memory_store import InMemoryKeyValueStore

# 2024-01-01T12:00:00Z minus 2022-01-01T00:00:00Z
SECONDS_SINCE_EPOCH = 63115200


@pytest.mark.unit
class TestIdLayout:

    @pytest.mark.asyncio
    async def test_first_id_of_the_day(self, id_generator, clock):
        generated = await id_generator.next_id("order")

        assert generated == (SECONDS_SINCE_EPOCH << 32) | 1
        assert timestamp_of(generated) == int(clock.timestamp())
        assert sequence_of(generated) == 1
        assert generated < 2 ** 63

    @pytest.mark.asyncio
    async def test_counter_key_is_per_tag_and_day(self, id_generator, store):
        await id_generator.next_id("order")
        await id_generator.next_id("order")
        await id_generator.next_id("blog")

        assert await store.get("icr:order:2024:01:01") == "2"
        assert await store.get("icr:blog:2024:01:01") == "1"

    @pytest.mark.asyncio
    async def test_ids_increase_within_a_second(self, id_generator):
        ids = [await id_generator.next_id("order") for _ in range(5)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    @pytest.mark.asyncio
    async def test_day_rollover_restarts_counter_but_ids_keep_growing(self, id_generator, clock):
        before = await id_generator.next_id("order")
        clock.advance(hours=12)
        after = await id_generator.next_id("order")

        assert sequence_of(after) == 1
        assert after > before

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, id_generator, metrics):
        await id_generator.next_id("order")
        metrics.record_id_generated.assert_called_once_with("order")


@pytest.mark.unit
class TestIdUniquenessUnderConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_tasks_never_collide(self, clock, metrics):
        """8 tasks x 500 IDs: all distinct, each task's IDs strictly increasing."""
        store = InMemoryKeyValueStore(clock=clock, latency=0.0001)
        generator = RedisIdGenerator(store, clock=clock, metrics=metrics)

        async def worker():
            return [await generator.next_id("order") for _ in range(500)]

        batches = await asyncio.gather(*(worker() for _ in range(8)))

        every_id = [i for batch in batches for i in batch]
        assert len(set(every_id)) == 4000
        for batch in batches:
            assert all(a < b for a, b in zip(batch, batch[1:]))

    @pytest.mark.asyncio
    async def test_generators_sharing_a_counter_never_collide(self, clock, metrics):
        store = InMemoryKeyValueStore(clock=clock, latency=0.0001)
        generators = [RedisIdGenerator(store, clock=clock, metrics=metrics) for _ in range(2)]

        async def worker(generator):
            return [await generator.next_id("order") for _ in range(300)]

        batches = await asyncio.gather(*(worker(g) for g in generators for _ in range(2)))

        every_id = [i for batch in batches for i in batch]
        assert len(set(every_id)) == 1200
        assert await store.get("icr:order:2024:01:01") == "1200"


@pytest.mark.unit
class TestIdFailures:

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, id_generator, store):
        store.fail_next(StoreTransientError("down"))

        with pytest.raises(StoreTransientError):
            await id_generator.next_id("order")

    @pytest.mark.asyncio
    async def test_clock_before_epoch_rejected(self, store, metrics):
        clock = ManualClock(datetime(2021, 6, 1, tzinfo=timezone.utc))
        generator = RedisIdGenerator(store, clock=clock, metrics=metrics)

        with pytest.raises(ConfigurationError):
            await generator.next_id("order")

    @pytest.mark.asyncio
    async def test_sequence_overflow_rejected(self, id_generator, store):
        await store.set("icr:order:2024:01:01", str(ID_SEQUENCE_MASK))

        with pytest.raises(ConfigurationError):
            await id_generator.next_id("order")
