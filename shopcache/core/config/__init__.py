"""
Configuration Module

Centralized, type-safe configuration for the caching core.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Redis key schema, ID layout constants and enums

Usage:
------
```python
from shopcache.core.config import get_settings
from shopcache.core.config.constants import CACHE_SHOP_KEY, CacheStrategy

settings = get_settings()
ttl = settings.cache.shop_ttl_seconds
```
"""

from shopcache.core.config.settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]
