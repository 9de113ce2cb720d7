"""
Application Services Package
=============================

Business logic built on the caching core:

- **ShopService**: cached shop reads, write-then-invalidate, warm-up
- **ShopTypeService**: cached category list
- **LoginService**: code login, sliding sessions, request scope
- **VoucherOrderService**: flash-sale admission

ARCHITECTURE PATTERN:
---------------------
Caller → Service → CacheClient / DistributedLock / IdGenerator → KV store
                 → Repository → database
"""

from shopcache.application.services.login_service import LoginService
from shopcache.application.services.shop_service import ShopService
from shopcache.application.services.shop_type_service import ShopTypeService
from shopcache.application.services.voucher_order_service import VoucherOrderService

__all__ = [
    "LoginService",
    "ShopService",
    "ShopTypeService",
    "VoucherOrderService",
]
