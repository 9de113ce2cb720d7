"""
Key-Value Store Adapters

- **redis_store.py**: RedisKeyValueStore (production)
- **memory_store.py**: InMemoryKeyValueStore (tests, local runs)
"""

from shopcache.infrastructure.kv.memory_store import InMemoryKeyValueStore
from shopcache.infrastructure.kv.redis_store import (
    RedisKeyValueStore,
    close_kv_store,
    get_kv_store,
    init_kv_store,
)

__all__ = [
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "close_kv_store",
    "get_kv_store",
    "init_kv_store",
]
