"""
Cache Client

Typed cache-aside reads over the key-value store, with three coherence
strategies selectable per call site:

    query_with_pass_through   negative caching against penetration
    query_with_mutex          one rebuild per key against stampede
    query_with_logical_expire stale-while-revalidate on enveloped hot keys

Read flow (all strategies):
    GET key ─┬─ payload  → decode → value
             ├─ ""       → None (negative marker)
             └─ absent   → strategy-specific miss handling

Architectural Decision: loader as a plain callable
- The caller passes ``loader(id)`` returning the value or None; sync and
  async loaders are both accepted
- The client never knows about the database, so every read path is
  testable with a counter-wrapped lambda

Error handling:
- A corrupt payload is logged at WARNING and treated as a miss
- StoreTransientError propagates and nothing is written to the cache
- Loader errors propagate on synchronous paths; on the background refresh
  path they are logged and the stale value keeps being served
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import timedelta
from enum import Enum
from typing import Any, TypeVar

from shopcache.core.clock import Clock, get_clock
from shopcache.core.config.constants import CACHE_NULL_VALUE, LOCK_SHOP_NAME, CacheOutcome, CacheStrategy
from shopcache.core.config.settings import Settings, get_settings
from shopcache.core.exceptions import LockUnavailableError, StoreCorruptError
from shopcache.core.interfaces.kv_store import KeyValueStore
from shopcache.core.logging.logger import get_logger, log_stage
from shopcache.infrastructure.cache.rebuild_pool import RebuildExecutor
from shopcache.infrastructure.cache.serialization import (
    Envelope,
    decode_envelope,
    dumps,
    encode_envelope,
    loads,
)
from shopcache.infrastructure.coordination.distributed_lock import DistributedLock
from shopcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

T = TypeVar("T")
Loader = Callable[[Any], Any]


class _Lookup(Enum):
    HIT = "hit"
    NEGATIVE = "negative"
    MISS = "miss"


class CacheClient:
    def __init__(
        self,
        store: KeyValueStore,
        lock: DistributedLock,
        rebuild_executor: RebuildExecutor,
        clock: Clock | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._lock = lock
        self._rebuild_executor = rebuild_executor
        self._clock = clock or get_clock()
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics_collector()

        cache = self._settings.cache
        self._default_ttl = cache.shop_ttl_seconds
        self._null_ttl = cache.null_ttl_seconds
        self._retry_delay = cache.mutex_retry_delay_seconds
        self._max_retries = cache.CACHE_MUTEX_MAX_RETRIES
        self._lock_lease = self._settings.lock.LOCK_SHOP_TTL

    # =========================================================================
    # Writes
    # =========================================================================

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Cache ``value`` as JSON with a store TTL (seconds)."""
        await self._store.set(key, dumps(value), ttl)

    async def set_with_logical_expire(self, key: str, value: Any, ttl: float) -> None:
        """Cache ``value`` in an expiration envelope, with no store TTL."""
        expire_time = self._clock.now() + timedelta(seconds=ttl)
        await self._store.set(key, encode_envelope(value, expire_time))

    async def invalidate(self, key: str) -> bool:
        """Drop a cache entry after its source of truth changed."""
        deleted = await self._store.delete(key)
        log_stage(logger, "CACHE.INV", "Cache entry invalidated", level="debug", key=key, existed=deleted)
        return deleted

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    async def _load(loader: Loader, ident: Any) -> Any:
        result = loader(ident)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _lookup(self, key: str, result_type: type[T]) -> tuple[_Lookup, T | None]:
        payload = await self._store.get(key)
        if payload is None:
            return _Lookup.MISS, None
        if payload == CACHE_NULL_VALUE:
            return _Lookup.NEGATIVE, None
        try:
            return _Lookup.HIT, loads(payload, result_type)
        except StoreCorruptError as e:
            log_stage(
                logger, "CACHE.CORRUPT", "Corrupt cache entry treated as miss",
                level="warning", key=key, error=e.message,
            )
            return _Lookup.MISS, None

    async def _write_through(self, key: str, value: Any, ttl: float, null_ttl: float) -> None:
        if value is None:
            await self._store.set(key, CACHE_NULL_VALUE, null_ttl)
        else:
            await self.set(key, value, ttl)

    def _record(self, strategy: CacheStrategy, outcome: CacheOutcome) -> None:
        self._metrics.record_cache_lookup(strategy.value, outcome.value)

    def _record_state(self, strategy: CacheStrategy, state: _Lookup) -> None:
        outcome = CacheOutcome.HIT if state is _Lookup.HIT else CacheOutcome.NEGATIVE_HIT
        self._record(strategy, outcome)

    # =========================================================================
    # Pass-through (negative caching)
    # =========================================================================

    async def query_with_pass_through(
        self,
        key_prefix: str,
        ident: Any,
        result_type: type[T],
        loader: Loader,
        ttl: float | None = None,
        null_ttl: float | None = None,
    ) -> T | None:
        """
        Read through the cache, caching misses as an empty marker.

        STAGE-CACHE.1

        Returns:
            The value, or None when the source has no such entity
        """
        key = f"{key_prefix}{ident}"
        state, value = await self._lookup(key, result_type)
        if state is not _Lookup.MISS:
            self._record_state(CacheStrategy.PASS_THROUGH, state)
            return value

        self._record(CacheStrategy.PASS_THROUGH, CacheOutcome.MISS)
        value = await self._load(loader, ident)
        await self._write_through(
            key, value,
            self._default_ttl if ttl is None else ttl,
            self._null_ttl if null_ttl is None else null_ttl,
        )
        self._metrics.record_rebuild(CacheStrategy.PASS_THROUGH.value)
        log_stage(logger, "CACHE.1", "Cache populated from loader", level="debug", key=key, found=value is not None)
        return value

    # =========================================================================
    # Mutex (exclusive rebuild)
    # =========================================================================

    async def query_with_mutex(
        self,
        key_prefix: str,
        ident: Any,
        result_type: type[T],
        loader: Loader,
        ttl: float | None = None,
        null_ttl: float | None = None,
        lock_prefix: str = LOCK_SHOP_NAME,
        lease_seconds: float | None = None,
    ) -> T | None:
        """
        Read through the cache with at most one concurrent rebuild per key.

        STAGE-CACHE.2

        Readers that lose the rebuild lock back off and re-read; by then the
        winner has usually populated the entry.

        Raises:
            LockUnavailableError: the lock stayed contended for every retry
        """
        key = f"{key_prefix}{ident}"
        lock_name = f"{lock_prefix}{ident}"
        lease = self._lock_lease if lease_seconds is None else lease_seconds
        ttl = self._default_ttl if ttl is None else ttl
        null_ttl = self._null_ttl if null_ttl is None else null_ttl

        for attempt in range(self._max_retries + 1):
            state, value = await self._lookup(key, result_type)
            if state is not _Lookup.MISS:
                self._record_state(CacheStrategy.MUTEX, state)
                return value

            if await self._lock.try_acquire(lock_name, lease):
                try:
                    state, value = await self._lookup(key, result_type)
                    if state is not _Lookup.MISS:
                        self._record_state(CacheStrategy.MUTEX, state)
                        return value

                    self._record(CacheStrategy.MUTEX, CacheOutcome.MISS)
                    value = await self._load(loader, ident)
                    await self._write_through(key, value, ttl, null_ttl)
                    self._metrics.record_rebuild(CacheStrategy.MUTEX.value)
                    log_stage(
                        logger, "CACHE.2", "Cache rebuilt under mutex",
                        level="debug", key=key, found=value is not None, attempt=attempt,
                    )
                    return value
                finally:
                    await self._lock.release(lock_name)

            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay)

        log_stage(
            logger, "CACHE.2", "Rebuild lock still contended, giving up",
            level="warning", key=key, retries=self._max_retries,
        )
        raise LockUnavailableError(
            f"Could not rebuild '{key}': lock '{lock_name}' stayed contended",
            details={"key": key, "lock": lock_name, "retries": self._max_retries},
        )

    # =========================================================================
    # Logical expiration (stale-while-revalidate)
    # =========================================================================

    async def _read_envelope(self, key: str, result_type: type[T]) -> Envelope[T] | None:
        payload = await self._store.get(key)
        if not payload:
            return None
        try:
            return decode_envelope(payload, result_type)
        except StoreCorruptError as e:
            log_stage(
                logger, "CACHE.CORRUPT", "Corrupt cache envelope treated as miss",
                level="warning", key=key, error=e.message,
            )
            self._record(CacheStrategy.LOGICAL_EXPIRE, CacheOutcome.CORRUPT)
            return None

    def _refresh_job(
        self,
        key: str,
        ident: Any,
        loader: Loader,
        ttl: float,
        lock_name: str,
        token: str | None,
    ) -> Callable[[], Awaitable[None]]:
        async def refresh() -> None:
            try:
                value = await self._load(loader, ident)
                if value is None:
                    log_stage(
                        logger, "CACHE.3", "Loader returned nothing, keeping stale entry",
                        level="warning", key=key,
                    )
                    return
                await self.set_with_logical_expire(key, value, ttl)
                self._metrics.record_rebuild(CacheStrategy.LOGICAL_EXPIRE.value)
                log_stage(logger, "CACHE.3", "Logical entry refreshed", level="debug", key=key)
            except Exception:
                self._metrics.record_rebuild_failure(CacheStrategy.LOGICAL_EXPIRE.value)
                raise
            finally:
                await self._lock.release(lock_name, token=token)

        return refresh

    async def query_with_logical_expire(
        self,
        key_prefix: str,
        ident: Any,
        result_type: type[T],
        loader: Loader,
        ttl: float | None = None,
        lock_prefix: str = LOCK_SHOP_NAME,
        lease_seconds: float | None = None,
    ) -> T | None:
        """
        Serve enveloped entries without ever waiting for the loader.

        STAGE-CACHE.3

        Entries must be pre-warmed with ``set_with_logical_expire``; an absent
        key means "not a hot key" and yields None. An expired entry is
        returned as-is while one reader schedules its refresh on the rebuild
        executor.
        """
        key = f"{key_prefix}{ident}"
        envelope = await self._read_envelope(key, result_type)
        if envelope is None:
            self._record(CacheStrategy.LOGICAL_EXPIRE, CacheOutcome.MISS)
            return None

        if not envelope.is_expired(self._clock.now()):
            self._record(CacheStrategy.LOGICAL_EXPIRE, CacheOutcome.HIT)
            return envelope.data

        lock_name = f"{lock_prefix}{ident}"
        lease = self._lock_lease if lease_seconds is None else lease_seconds
        if not await self._lock.try_acquire(lock_name, lease):
            self._record(CacheStrategy.LOGICAL_EXPIRE, CacheOutcome.STALE)
            return envelope.data

        token: str | None = None
        handed_off = False
        try:
            current = await self._read_envelope(key, result_type)
            if current is not None and not current.is_expired(self._clock.now()):
                self._record(CacheStrategy.LOGICAL_EXPIRE, CacheOutcome.HIT)
                return current.data

            token = self._lock.detach(lock_name)
            job = self._refresh_job(
                key, ident, loader, self._default_ttl if ttl is None else ttl, lock_name, token
            )
            await self._rebuild_executor.submit(job, name=key)
            handed_off = True
        finally:
            if not handed_off:
                await self._lock.release(lock_name, token=token)

        self._record(CacheStrategy.LOGICAL_EXPIRE, CacheOutcome.STALE)
        log_stage(logger, "CACHE.3", "Stale entry served, refresh scheduled", level="debug", key=key)
        return envelope.data
