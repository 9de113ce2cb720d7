"""
Exception Module

Structured exception hierarchy for the caching core.
All exceptions are organized by theme for better maintainability.

Module Structure:
-----------------
- **base.py**: ShopCacheError base class + ConfigurationError
- **cache.py**: Key-value store and cache client exceptions
- **lock.py**: Distributed lock exceptions
- **admission.py**: Flash-sale rejection exceptions
- **validation.py**: Input, authentication and lookup exceptions

Usage:
------
```python
from shopcache.core.exceptions import OutOfStockError, StoreTransientError

# Or import by category
from shopcache.core.exceptions.admission import BusinessRejectError
```
"""

# Base exception
from shopcache.core.exceptions.base import ConfigurationError, ShopCacheError

# Admission exceptions
from shopcache.core.exceptions.admission import (
    AlreadyPurchasedError,
    BusinessRejectError,
    DuplicateOrderError,
    OutOfStockError,
    SaleEndedError,
    SaleNotStartedError,
    VoucherNotFoundError,
)

# Cache exceptions
from shopcache.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    StoreCorruptError,
    StoreTransientError,
)

# Lock exceptions
from shopcache.core.exceptions.lock import LockError, LockUnavailableError

# Validation exceptions
from shopcache.core.exceptions.validation import (
    AuthenticationRequiredError,
    InvalidInputError,
    NotFoundError,
    ShopNotFoundError,
    ValidationError,
    VerificationCodeError,
)

__all__ = [
    # Base
    "ShopCacheError",
    "ConfigurationError",
    # Admission
    "BusinessRejectError",
    "VoucherNotFoundError",
    "SaleNotStartedError",
    "SaleEndedError",
    "OutOfStockError",
    "AlreadyPurchasedError",
    "DuplicateOrderError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "StoreTransientError",
    "StoreCorruptError",
    # Lock
    "LockError",
    "LockUnavailableError",
    # Validation
    "ValidationError",
    "InvalidInputError",
    "VerificationCodeError",
    "AuthenticationRequiredError",
    "NotFoundError",
    "ShopNotFoundError",
]
