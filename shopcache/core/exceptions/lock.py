"""
Distributed Lock Exceptions
"""

from shopcache.core.exceptions.base import ShopCacheError


class LockError(ShopCacheError):
    """Base exception for distributed lock errors."""
    pass


class LockUnavailableError(LockError):
    """
    Raised when a caller needs the lock as an exception rather than a bool:
    the ``hold()`` context manager, or a mutex rebuild that exhausted its
    retries.
    """
    pass
