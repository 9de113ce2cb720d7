"""
Persistence Protocols

The relational store is an external collaborator. The services need only
these narrow contracts from it; ORM mapping and SQL are out of scope.

The flash-sale pipeline relies on three guarantees from an
``OrderTransaction``:
- ``decrement_stock`` is an atomic ``stock = stock - 1 WHERE stock > 0``
- ``count_orders`` sees orders committed by other transactions
- nothing written inside the transaction is visible after a rollback
"""

from contextlib import AbstractAsyncContextManager
from typing import Protocol, runtime_checkable

from shopcache.models.shop import Shop, ShopType
from shopcache.models.user import User
from shopcache.models.voucher import SeckillVoucher, VoucherOrder


@runtime_checkable
class ShopRepository(Protocol):
    async def get_by_id(self, shop_id: int) -> Shop | None:
        ...

    async def update(self, shop: Shop) -> bool:
        """Persist changes. Returns False if the shop does not exist."""
        ...


@runtime_checkable
class ShopTypeRepository(Protocol):
    async def list_ordered_by_sort(self) -> list[ShopType]:
        ...


@runtime_checkable
class UserRepository(Protocol):
    async def get_by_phone(self, phone: str) -> User | None:
        ...

    async def create(self, user: User) -> User:
        """Insert a user and return it with its assigned id."""
        ...


@runtime_checkable
class OrderTransaction(Protocol):
    """Operations available inside one admission transaction."""

    async def count_orders(self, user_id: int, voucher_id: int) -> int:
        ...

    async def decrement_stock(self, voucher_id: int) -> int:
        """Conditional decrement. Returns the number of rows updated (0 or 1)."""
        ...

    async def insert_order(self, order: VoucherOrder) -> None:
        ...


@runtime_checkable
class VoucherRepository(Protocol):
    async def get_seckill_voucher(self, voucher_id: int) -> SeckillVoucher | None:
        ...

    def transaction(self) -> AbstractAsyncContextManager[OrderTransaction]:
        """
        Open a transaction. Commits when the block exits normally and rolls
        back when it raises.
        """
        ...
