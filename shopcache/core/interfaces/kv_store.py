"""
Key-Value Store Protocol

This module defines the narrow contract the caching core needs from its
external key-value store. The cache client, the distributed lock, the ID
generator and the services only ever talk to this protocol.

Architectural Decision: Protocol-based abstraction
- Redis in production, an in-memory fake in tests and local runs
- Type-safe interface with runtime checking
- Every atomicity requirement (SET NX, compare-and-delete, INCR) is part of
  the contract, so implementations cannot quietly degrade it

Implementations:
- RedisKeyValueStore: redis.asyncio with connection pooling
- InMemoryKeyValueStore: dict-backed fake with TTLs driven by a Clock
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Protocol defining the key-value operations used by the caching core.

    TTLs are expressed in seconds. ``None`` means no expiration.

    Raises (all operations):
        StoreTransientError: timeout or connection loss after one retry
        CacheKeyError: any other store failure
    """

    async def get(self, key: str) -> str | None:
        """
        Get a string value.

        Returns:
            The stored value, ``""`` for a negative cache marker, or None
            when the key is absent.
        """
        ...

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        """Set a string value, replacing any previous value and TTL."""
        ...

    async def set_if_absent(self, key: str, value: str, ttl: float) -> bool:
        """
        Atomically set ``key`` only if it does not exist (SET NX EX).

        Returns:
            True if this call created the key
        """
        ...

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        ...

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """
        Atomically delete ``key`` only if its value equals ``expected``.

        Returns:
            True if the key was deleted
        """
        ...

    async def increment(self, key: str) -> int:
        """Atomically increment an integer counter (created at 0). Returns the new value."""
        ...

    async def expire(self, key: str, ttl: float) -> bool:
        """Reset the TTL of an existing key. Returns False if the key is absent."""
        ...

    async def hset_mapping(self, key: str, mapping: dict[str, str]) -> None:
        """Write several hash fields at once."""
        ...

    async def hgetall(self, key: str) -> dict[str, str]:
        """Read a whole hash. Absent keys yield an empty dict."""
        ...

    async def lpush(self, key: str, *values: str) -> int:
        """Push values to the head of a list, one after another. Returns the new length."""
        ...

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        """Read a list slice (inclusive ``end``; -1 for the tail)."""
        ...

    async def ping(self) -> bool:
        """Check if the store is reachable."""
        ...
