"""
Voucher Order Service - Flash-Sale Admission
============================================

WHAT IS THIS SERVICE?
---------------------
VoucherOrderService admits (or rejects) one seckill order for the current
user. Many buyers hit the same voucher at the same instant, so two
properties must hold under any interleaving:

1. Stock never goes negative (no oversell)
2. A user gets at most one order per voucher

HOW EACH PROPERTY IS ENFORCED
-----------------------------
- Oversell: the stock decrement is a conditional ``stock - 1 WHERE stock > 0``
  inside the database, so the pre-check on the loaded voucher is only a
  fast path and never the guard.
- One per user: the count-then-insert pair is not atomic on its own, so it
  runs while holding the per-user distributed lock ``lock:order:<userId>``.
  Two requests of the same user cannot both pass the count; requests of
  different users never contend.

ORDERING
--------
    lock ── begin tx ── count ── decrement ── next_id ── insert ── commit ── unlock

The transaction commits BEFORE the lock is released. Releasing first would
let a second request of the same user count zero orders against an
uncommitted insert.

ARCHITECTURE:
-------------
Caller → VoucherOrderService → DistributedLock (KV store)
                             → VoucherRepository.transaction()
                             → RedisIdGenerator
"""

from shopcache.core.clock import Clock, get_clock
from shopcache.core.config.constants import LOCK_ORDER_NAME, AdmissionOutcome
from shopcache.core.config.settings import Settings, get_settings
from shopcache.core.context import get_current_user_id
from shopcache.core.exceptions import (
    AlreadyPurchasedError,
    AuthenticationRequiredError,
    BusinessRejectError,
    DuplicateOrderError,
    OutOfStockError,
    SaleEndedError,
    SaleNotStartedError,
    VoucherNotFoundError,
)
from shopcache.core.interfaces.persistence import VoucherRepository
from shopcache.core.logging.logger import get_logger, log_stage
from shopcache.infrastructure.coordination.distributed_lock import DistributedLock
from shopcache.infrastructure.coordination.id_generator import RedisIdGenerator
from shopcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from shopcache.models.voucher import VoucherOrder

logger = get_logger(__name__)

ORDER_ID_TAG = "order"


class VoucherOrderService:
    """
    Flash-sale admission pipeline.

    USAGE:
    ------
    service = VoucherOrderService(voucher_repository, lock, id_generator)
    with user_context(user):
        order_id = await service.seckill_voucher(voucher_id)
    """

    def __init__(
        self,
        voucher_repository: VoucherRepository,
        lock: DistributedLock,
        id_generator: RedisIdGenerator,
        clock: Clock | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._vouchers = voucher_repository
        self._lock = lock
        self._ids = id_generator
        self._clock = clock or get_clock()
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics_collector()

    # ========================================================================
    # MAIN ENTRY POINT
    # ========================================================================

    async def seckill_voucher(self, voucher_id: int, user_id: int | None = None) -> int:
        """
        Admit one order for ``voucher_id``.

        Args:
            voucher_id: Flash-sale voucher
            user_id: Buyer; defaults to the user bound to the current context

        Returns:
            The generated order id

        Raises:
            BusinessRejectError: one of VoucherNotFoundError, SaleNotStartedError,
                SaleEndedError, OutOfStockError, DuplicateOrderError,
                AlreadyPurchasedError
            AuthenticationRequiredError: no user given or bound
        """
        if user_id is None:
            user_id = get_current_user_id()
        if user_id is None:
            raise AuthenticationRequiredError("Flash-sale orders require a logged-in user")

        try:
            await self._check_voucher(voucher_id)
            order_id = await self._admit(voucher_id, user_id)
        except BusinessRejectError as e:
            self._metrics.record_admission(e.reason.value)
            log_stage(
                logger, "SECKILL.X", "Order rejected",
                voucher_id=voucher_id, user_id=user_id, reason=e.reason.value,
            )
            raise

        self._metrics.record_admission(AdmissionOutcome.SUCCESS.value)
        log_stage(
            logger, "SECKILL.5", "Order admitted",
            voucher_id=voucher_id, user_id=user_id, order_id=order_id,
        )
        return order_id

    # ========================================================================
    # STEP 1: Sale window and stock pre-check
    # ========================================================================

    async def _check_voucher(self, voucher_id: int) -> None:
        voucher = await self._vouchers.get_seckill_voucher(voucher_id)
        if voucher is None:
            raise VoucherNotFoundError(details={"voucher_id": voucher_id})

        now = self._clock.now()
        if now < voucher.begin_time:
            raise SaleNotStartedError(
                details={"voucher_id": voucher_id, "begin_time": voucher.begin_time.isoformat()}
            )
        if now > voucher.end_time:
            raise SaleEndedError(
                details={"voucher_id": voucher_id, "end_time": voucher.end_time.isoformat()}
            )
        if voucher.stock <= 0:
            raise OutOfStockError(details={"voucher_id": voucher_id})

    # ========================================================================
    # STEP 2: Per-user lock around the transaction
    # ========================================================================

    async def _admit(self, voucher_id: int, user_id: int) -> int:
        lock_name = f"{LOCK_ORDER_NAME}{user_id}"
        if not await self._lock.try_acquire(lock_name, self._settings.lock.LOCK_ORDER_TTL):
            raise DuplicateOrderError(details={"voucher_id": voucher_id, "user_id": user_id})

        try:
            return await self.create_voucher_order(voucher_id, user_id)
        finally:
            await self._lock.release(lock_name)

    # ========================================================================
    # STEP 3: Transactional admission
    # ========================================================================

    async def create_voucher_order(self, voucher_id: int, user_id: int) -> int:
        """
        Count, decrement, generate the id and insert, in one transaction.

        Must be called while holding ``lock:order:<user_id>``; the transaction
        has committed by the time this returns.
        """
        async with self._vouchers.transaction() as tx:
            if await tx.count_orders(user_id, voucher_id) > 0:
                raise AlreadyPurchasedError(details={"voucher_id": voucher_id, "user_id": user_id})

            if await tx.decrement_stock(voucher_id) == 0:
                raise OutOfStockError(details={"voucher_id": voucher_id})

            order_id = await self._ids.next_id(ORDER_ID_TAG)
            await tx.insert_order(
                VoucherOrder(
                    id=order_id,
                    user_id=user_id,
                    voucher_id=voucher_id,
                    create_time=self._clock.now(),
                )
            )
        return order_id
