"""
Core Interfaces

Protocols for the external collaborators of the caching core: the
key-value store and the relational persistence layer.
"""

from shopcache.core.interfaces.kv_store import KeyValueStore
from shopcache.core.interfaces.persistence import (
    OrderTransaction,
    ShopRepository,
    ShopTypeRepository,
    UserRepository,
    VoucherRepository,
)

__all__ = [
    "KeyValueStore",
    "OrderTransaction",
    "ShopRepository",
    "ShopTypeRepository",
    "UserRepository",
    "VoucherRepository",
]
