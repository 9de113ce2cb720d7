"""
Cache-Related Exceptions

All exceptions raised by the key-value adapter and the cache client.
"""

from shopcache.core.exceptions.base import ShopCacheError


class CacheError(ShopCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the key-value store (Redis).

    Common causes:
    - Redis server is down
    - Incorrect host/port configuration
    - Authentication failure
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a key operation fails for a non-transient reason.

    Common causes:
    - WRONGTYPE (key holds a different data structure)
    - Script errors
    - Memory limit exceeded
    """
    pass


class StoreTransientError(CacheError):
    """
    Raised when a store call times out or loses its connection, after the
    adapter's single retry.

    Nothing is written to the cache when a read path sees this error.
    """
    pass


class StoreCorruptError(CacheError):
    """
    Raised when a cached payload cannot be decoded into the requested type.

    The cache client catches it and treats the entry as a miss.
    """
    pass
