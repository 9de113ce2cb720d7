"""
Unit Tests for the Flash-Sale Admission Pipeline

Concurrency tests give the voucher repository a small latency so that
concurrent admissions genuinely interleave between the stock check, the
lock and the transaction.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from shopcache.application.services.voucher_order_service import VoucherOrderService
from shopcache.core.context import user_context
from shopcache.core.exceptions import (
    AlreadyPurchasedError,
    AuthenticationRequiredError,
    BusinessRejectError,
    DuplicateOrderError,
    OutOfStockError,
    SaleEndedError,
    SaleNotStartedError,
    StoreTransientError,
    VoucherNotFoundError,
)
from shopcache.infrastructure.coordination.id_generator import RedisIdGenerator, sequence_of
from shopcache.infrastructure.persistence.memory_repository import InMemoryVoucherRepository
from tests.test_fixtures import DomainFactory


@pytest.fixture
def busy_vouchers(clock):
    """Voucher repository with database-like latency."""
    return InMemoryVoucherRepository([DomainFactory.voucher(clock.now(), stock=10)], latency=0.001)


@pytest.fixture
def busy_service(busy_vouchers, lock, id_generator, clock, settings, metrics):
    return VoucherOrderService(
        busy_vouchers, lock, id_generator, clock=clock, settings=settings, metrics=metrics
    )


@pytest.mark.unit
class TestAdmission:

    @pytest.mark.asyncio
    async def test_successful_order(self, voucher_order_service, voucher_repository, store, metrics):
        order_id = await voucher_order_service.seckill_voucher(10, user_id=5)

        orders = voucher_repository.orders_for(5, 10)
        assert [order.id for order in orders] == [order_id]
        assert voucher_repository.stock_of(10) == 9
        assert sequence_of(order_id) == 1
        assert not store.exists("lock:order:5")
        metrics.record_admission.assert_called_once_with("success")

    @pytest.mark.asyncio
    async def test_user_taken_from_context(self, voucher_order_service, voucher_repository):
        with user_context(DomainFactory.user_dto(7)):
            await voucher_order_service.seckill_voucher(10)

        assert len(voucher_repository.orders_for(7, 10)) == 1

    @pytest.mark.asyncio
    async def test_anonymous_caller_rejected(self, voucher_order_service):
        with pytest.raises(AuthenticationRequiredError):
            await voucher_order_service.seckill_voucher(10)

    @pytest.mark.asyncio
    async def test_order_ids_increase(self, voucher_order_service):
        first = await voucher_order_service.seckill_voucher(10, user_id=1)
        second = await voucher_order_service.seckill_voucher(10, user_id=2)
        assert second > first


@pytest.mark.unit
class TestRejections:

    @pytest.mark.asyncio
    async def test_unknown_voucher(self, voucher_order_service, metrics):
        with pytest.raises(VoucherNotFoundError):
            await voucher_order_service.seckill_voucher(404, user_id=1)
        metrics.record_admission.assert_called_once_with("voucher_not_found")

    @pytest.mark.asyncio
    async def test_sale_not_started(self, voucher_order_service, voucher_repository, clock):
        voucher_repository.add_voucher(
            DomainFactory.voucher(clock.now(), voucher_id=11, starts_in=timedelta(hours=1))
        )

        with pytest.raises(SaleNotStartedError):
            await voucher_order_service.seckill_voucher(11, user_id=1)

    @pytest.mark.asyncio
    async def test_sale_ended(self, voucher_order_service, voucher_repository, clock):
        voucher_repository.add_voucher(
            DomainFactory.voucher(clock.now(), voucher_id=12, ends_in=timedelta(seconds=-1))
        )

        with pytest.raises(SaleEndedError):
            await voucher_order_service.seckill_voucher(12, user_id=1)

    @pytest.mark.asyncio
    async def test_sold_out(self, voucher_order_service, voucher_repository, clock):
        voucher_repository.add_voucher(DomainFactory.voucher(clock.now(), voucher_id=13, stock=0))

        with pytest.raises(OutOfStockError):
            await voucher_order_service.seckill_voucher(13, user_id=1)

    @pytest.mark.asyncio
    async def test_second_purchase_rejected(self, voucher_order_service, voucher_repository, store):
        await voucher_order_service.seckill_voucher(10, user_id=5)

        with pytest.raises(AlreadyPurchasedError):
            await voucher_order_service.seckill_voucher(10, user_id=5)

        assert voucher_repository.stock_of(10) == 9
        assert not store.exists("lock:order:5")

    @pytest.mark.asyncio
    async def test_in_flight_order_rejected(self, voucher_order_service, store):
        await store.set("lock:order:5", "another-request", ttl=1200)

        with pytest.raises(DuplicateOrderError):
            await voucher_order_service.seckill_voucher(10, user_id=5)

        assert await store.get("lock:order:5") == "another-request"

    @pytest.mark.asyncio
    async def test_rejections_carry_reason(self, voucher_order_service):
        with pytest.raises(BusinessRejectError) as exc_info:
            await voucher_order_service.seckill_voucher(404, user_id=1)

        assert exc_info.value.to_dict()["reason"] == "voucher_not_found"


@pytest.mark.unit
class TestConcurrentAdmission:

    @pytest.mark.asyncio
    async def test_no_oversell(self, busy_service, busy_vouchers):
        """100 distinct buyers, 10 units: exactly 10 orders, stock ends at 0."""
        results = await asyncio.gather(
            *(busy_service.seckill_voucher(10, user_id=uid) for uid in range(1, 101)),
            return_exceptions=True,
        )

        order_ids = [r for r in results if isinstance(r, int)]
        rejections = [r for r in results if not isinstance(r, int)]

        assert len(order_ids) == 10
        assert len(set(order_ids)) == 10
        assert all(isinstance(r, OutOfStockError) for r in rejections)
        assert busy_vouchers.stock_of(10) == 0
        assert len(busy_vouchers.orders) == 10

    @pytest.mark.asyncio
    async def test_one_order_per_user(self, busy_service, busy_vouchers, store):
        """One buyer, 20 simultaneous requests: exactly one order."""
        results = await asyncio.gather(
            *(busy_service.seckill_voucher(10, user_id=42) for _ in range(20)),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, int)]
        rejections = [r for r in results if not isinstance(r, int)]

        assert len(successes) == 1
        assert all(isinstance(r, (DuplicateOrderError, AlreadyPurchasedError)) for r in rejections)
        assert len(busy_vouchers.orders_for(42, 10)) == 1
        assert busy_vouchers.stock_of(10) == 9
        assert not store.exists("lock:order:42")

    @pytest.mark.asyncio
    async def test_distinct_users_do_not_contend(self, busy_service):
        results = await asyncio.gather(
            *(busy_service.seckill_voucher(10, user_id=uid) for uid in range(1, 6))
        )
        assert len(set(results)) == 5


@pytest.mark.unit
class TestFailureHandling:

    @pytest.mark.asyncio
    async def test_id_failure_rolls_back(self, voucher_repository, lock, store, clock, settings, metrics):
        id_generator = MagicMock(spec=RedisIdGenerator)
        id_generator.next_id = AsyncMock(side_effect=StoreTransientError("down"))
        service = VoucherOrderService(
            voucher_repository, lock, id_generator, clock=clock, settings=settings, metrics=metrics
        )

        with pytest.raises(StoreTransientError):
            await service.seckill_voucher(10, user_id=5)

        assert voucher_repository.stock_of(10) == 10
        assert voucher_repository.orders == {}
        assert voucher_repository.rollbacks == 1
        assert not store.exists("lock:order:5")
        metrics.record_admission.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_store_failure_propagates(self, voucher_order_service, voucher_repository, store):
        store.fail_next(StoreTransientError("down"))

        with pytest.raises(StoreTransientError):
            await voucher_order_service.seckill_voucher(10, user_id=5)

        assert voucher_repository.stock_of(10) == 10
