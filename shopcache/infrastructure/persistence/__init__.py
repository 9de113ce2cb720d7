from shopcache.infrastructure.persistence.memory_repository import (
    InMemoryOrderTransaction,
    InMemoryShopRepository,
    InMemoryShopTypeRepository,
    InMemoryUserRepository,
    InMemoryVoucherRepository,
)

__all__ = [
    "InMemoryOrderTransaction",
    "InMemoryShopRepository",
    "InMemoryShopTypeRepository",
    "InMemoryUserRepository",
    "InMemoryVoucherRepository",
]
