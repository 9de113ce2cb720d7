"""
In-Memory Repositories

Dict-backed implementations of the persistence protocols for tests and
local runs. They honour the same guarantees a relational store gives the
services:

- ``decrement_stock`` is atomic and never takes stock below zero
- order inserts are staged and become visible only on commit
- a rolled-back transaction restores the stock it took

An optional ``latency`` (seconds) is awaited inside each call so that
concurrent tasks interleave the way they would against a real database.
"""

import asyncio
import itertools
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from shopcache.core.logging.logger import get_logger
from shopcache.models.shop import Shop, ShopType
from shopcache.models.user import User
from shopcache.models.voucher import SeckillVoucher, VoucherOrder

logger = get_logger(__name__)


class _Latency:
    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.calls = 0

    async def pause(self) -> None:
        self.calls += 1
        if self.latency:
            await asyncio.sleep(self.latency)


class InMemoryShopRepository(_Latency):
    def __init__(self, shops: list[Shop] | None = None, latency: float = 0.0):
        super().__init__(latency)
        self._shops: dict[int, Shop] = {}
        for shop in shops or []:
            self._shops[shop.id] = shop

    def add(self, shop: Shop) -> None:
        self._shops[shop.id] = shop

    async def get_by_id(self, shop_id: int) -> Shop | None:
        await self.pause()
        shop = self._shops.get(shop_id)
        return shop.model_copy() if shop else None

    async def update(self, shop: Shop) -> bool:
        await self.pause()
        if shop.id not in self._shops:
            return False
        self._shops[shop.id] = shop.model_copy()
        return True


class InMemoryShopTypeRepository(_Latency):
    def __init__(self, types: list[ShopType] | None = None, latency: float = 0.0):
        super().__init__(latency)
        self._types = list(types or [])

    async def list_ordered_by_sort(self) -> list[ShopType]:
        await self.pause()
        return sorted(self._types, key=lambda shop_type: (shop_type.sort, shop_type.id))


class InMemoryUserRepository(_Latency):
    def __init__(self, users: list[User] | None = None, latency: float = 0.0):
        super().__init__(latency)
        self._by_phone: dict[str, User] = {}
        self._ids = itertools.count(1)
        for user in users or []:
            self._by_phone[user.phone] = user

    async def get_by_phone(self, phone: str) -> User | None:
        await self.pause()
        return self._by_phone.get(phone)

    async def create(self, user: User) -> User:
        await self.pause()
        taken = {existing.id for existing in self._by_phone.values()}
        user_id = user.id
        while user_id is None or user_id in taken:
            user_id = next(self._ids)
        created = user.model_copy(update={"id": user_id})
        self._by_phone[created.phone] = created
        return created


class InMemoryOrderTransaction:
    """One unit of work over an ``InMemoryVoucherRepository``."""

    def __init__(self, repository: "InMemoryVoucherRepository"):
        self._repository = repository
        self._staged_orders: list[VoucherOrder] = []
        self._taken_stock: list[int] = []

    async def count_orders(self, user_id: int, voucher_id: int) -> int:
        await self._repository.pause()
        committed = sum(
            1 for order in self._repository.orders.values()
            if order.user_id == user_id and order.voucher_id == voucher_id
        )
        staged = sum(
            1 for order in self._staged_orders
            if order.user_id == user_id and order.voucher_id == voucher_id
        )
        return committed + staged

    async def decrement_stock(self, voucher_id: int) -> int:
        await self._repository.pause()
        voucher = self._repository.vouchers.get(voucher_id)
        if voucher is None or voucher.stock <= 0:
            return 0
        voucher.stock -= 1
        self._taken_stock.append(voucher_id)
        return 1

    async def insert_order(self, order: VoucherOrder) -> None:
        await self._repository.pause()
        if order.id in self._repository.orders or any(o.id == order.id for o in self._staged_orders):
            raise ValueError(f"Duplicate order id {order.id}")
        self._staged_orders.append(order)

    def commit(self) -> None:
        for order in self._staged_orders:
            self._repository.orders[order.id] = order
        self._staged_orders.clear()
        self._taken_stock.clear()

    def rollback(self) -> None:
        for voucher_id in self._taken_stock:
            self._repository.vouchers[voucher_id].stock += 1
        self._staged_orders.clear()
        self._taken_stock.clear()


class InMemoryVoucherRepository(_Latency):
    def __init__(self, vouchers: list[SeckillVoucher] | None = None, latency: float = 0.0):
        super().__init__(latency)
        self.vouchers: dict[int, SeckillVoucher] = {}
        self.orders: dict[int, VoucherOrder] = {}
        self.commits = 0
        self.rollbacks = 0
        for voucher in vouchers or []:
            self.add_voucher(voucher)

    def add_voucher(self, voucher: SeckillVoucher) -> None:
        self.vouchers[voucher.voucher_id] = voucher.model_copy()

    def stock_of(self, voucher_id: int) -> int:
        return self.vouchers[voucher_id].stock

    def orders_for(self, user_id: int, voucher_id: int) -> list[VoucherOrder]:
        return [
            order for order in self.orders.values()
            if order.user_id == user_id and order.voucher_id == voucher_id
        ]

    async def get_seckill_voucher(self, voucher_id: int) -> SeckillVoucher | None:
        await self.pause()
        voucher = self.vouchers.get(voucher_id)
        return voucher.model_copy() if voucher else None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryOrderTransaction]:
        tx = InMemoryOrderTransaction(self)
        try:
            yield tx
        except BaseException:
            tx.rollback()
            self.rollbacks += 1
            logger.debug("Order transaction rolled back", stage="DB.TX")
            raise
        else:
            tx.commit()
            self.commits += 1
