"""
shopcache: caching and concurrency core for a shop-review backend.

Cache client (negative caching, mutex rebuild, logical expiration),
Redis-backed distributed lock, monotonic ID generator and the flash-sale
order admission pipeline.
"""

__version__ = "1.0.0"
