"""
In-Memory Key-Value Store

Dict-backed implementation of the KeyValueStore protocol for tests and
single-process runs. Expiration is driven by an injected Clock, so tests
can move time forward without sleeping.

Atomicity matches Redis: each operation runs under one asyncio.Lock, and
the optional simulated latency is awaited before the lock is taken so that
concurrent callers genuinely interleave between operations.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Any

from shopcache.core.clock import Clock, SystemClock
from shopcache.core.exceptions import CacheKeyError
from shopcache.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _Entry:
    value: Any
    expires_at: float | None = None


class InMemoryKeyValueStore:
    """
    Usage:
        clock = ManualClock()
        store = InMemoryKeyValueStore(clock=clock)
        await store.set("k", "v", ttl=60)
        clock.advance(61)
        assert await store.get("k") is None

    Failure injection:
        store.fail_next(StoreTransientError("down"), times=2)
    """

    def __init__(self, clock: Clock | None = None, latency: float = 0.0):
        self._clock = clock or SystemClock()
        self._latency = latency
        self._data: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()
        self._failures: list[Exception] = []
        self.calls: Counter[str] = Counter()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if self._latency:
            await asyncio.sleep(self._latency)
        if self._failures:
            raise self._failures.pop(0)

    def _expiry(self, ttl: float | None) -> float | None:
        return None if ttl is None else self._clock.timestamp() + ttl

    def _live(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock.timestamp() >= entry.expires_at:
            del self._data[key]
            return None
        return entry

    def _typed(self, key: str, kind: type) -> _Entry | None:
        entry = self._live(key)
        if entry is not None and not isinstance(entry.value, kind):
            raise CacheKeyError(
                "WRONGTYPE Operation against a key holding the wrong kind of value",
                details={"key": key, "expected": kind.__name__},
            )
        return entry

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def fail_next(self, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` operations raise ``error``."""
        self._failures.extend([error] * times)

    def ttl(self, key: str) -> float | None:
        """Remaining TTL in seconds, None for persistent or absent keys."""
        entry = self._live(key)
        if entry is None or entry.expires_at is None:
            return None
        return entry.expires_at - self._clock.timestamp()

    def exists(self, key: str) -> bool:
        return self._live(key) is not None

    def keys(self) -> list[str]:
        return [key for key in list(self._data) if self._live(key) is not None]

    def clear(self) -> None:
        self._data.clear()
        self.calls.clear()

    # -------------------------------------------------------------------------
    # KeyValueStore operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        await self._enter("get")
        async with self._lock:
            entry = self._typed(key, str)
            return entry.value if entry else None

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        await self._enter("set")
        async with self._lock:
            self._data[key] = _Entry(value, self._expiry(ttl))

    async def set_if_absent(self, key: str, value: str, ttl: float) -> bool:
        await self._enter("set_if_absent")
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = _Entry(value, self._expiry(ttl))
            return True

    async def delete(self, key: str) -> bool:
        await self._enter("delete")
        async with self._lock:
            if self._live(key) is None:
                return False
            del self._data[key]
            return True

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        await self._enter("compare_and_delete")
        async with self._lock:
            entry = self._live(key)
            if entry is None or entry.value != expected:
                return False
            del self._data[key]
            return True

    async def increment(self, key: str) -> int:
        await self._enter("increment")
        async with self._lock:
            entry = self._typed(key, str)
            if entry is None:
                entry = self._data[key] = _Entry("0")
            try:
                value = int(entry.value) + 1
            except ValueError:
                raise CacheKeyError(
                    "ERR value is not an integer or out of range", details={"key": key}
                )
            entry.value = str(value)
            return value

    async def expire(self, key: str, ttl: float) -> bool:
        await self._enter("expire")
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            entry.expires_at = self._expiry(ttl)
            return True

    async def hset_mapping(self, key: str, mapping: dict[str, str]) -> None:
        await self._enter("hset_mapping")
        async with self._lock:
            entry = self._typed(key, dict)
            if entry is None:
                entry = self._data[key] = _Entry({})
            entry.value.update({field: str(value) for field, value in mapping.items()})

    async def hgetall(self, key: str) -> dict[str, str]:
        await self._enter("hgetall")
        async with self._lock:
            entry = self._typed(key, dict)
            return dict(entry.value) if entry else {}

    async def lpush(self, key: str, *values: str) -> int:
        await self._enter("lpush")
        async with self._lock:
            entry = self._typed(key, list)
            if entry is None:
                entry = self._data[key] = _Entry([])
            for value in values:
                entry.value.insert(0, value)
            return len(entry.value)

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        await self._enter("lrange")
        async with self._lock:
            entry = self._typed(key, list)
            if entry is None:
                return []
            items = entry.value
            stop = len(items) if end == -1 else end + 1
            return list(items[start:stop])

    async def ping(self) -> bool:
        return True
