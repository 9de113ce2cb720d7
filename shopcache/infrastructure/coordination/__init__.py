"""
Coordination primitives backed by the key-value store.
"""

from shopcache.infrastructure.coordination.distributed_lock import DistributedLock
from shopcache.infrastructure.coordination.id_generator import (
    RedisIdGenerator,
    sequence_of,
    timestamp_of,
)

__all__ = ["DistributedLock", "RedisIdGenerator", "sequence_of", "timestamp_of"]
