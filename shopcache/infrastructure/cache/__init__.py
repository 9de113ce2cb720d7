"""
Cache Infrastructure

- **cache_client.py**: CacheClient (pass-through, mutex, logical expiration)
- **serialization.py**: orjson/pydantic payload codec and expiration envelope
- **rebuild_pool.py**: background rebuild workers
"""

from shopcache.infrastructure.cache.cache_client import CacheClient
from shopcache.infrastructure.cache.rebuild_pool import RebuildExecutor, RebuildPool

__all__ = ["CacheClient", "RebuildExecutor", "RebuildPool"]
