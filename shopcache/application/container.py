"""
Application wiring.

Builds the shared core objects (one store, one lock, one ID generator, one
rebuild pool, one cache client per process) and the services on top of
them, and manages their lifecycle.

Usage:
    async with lifespan(shop_repository=..., voucher_repository=...) as container:
        shop = await container.shop_service.query_by_id(1)

    # or, with an already-built store (tests):
    container = ServiceContainer.create(store=InMemoryKeyValueStore(clock=clock), clock=clock)
    ...
    await container.close()
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from shopcache.application.services.login_service import LoginService
from shopcache.application.services.shop_service import ShopService
from shopcache.application.services.shop_type_service import ShopTypeService
from shopcache.application.services.voucher_order_service import VoucherOrderService
from shopcache.core.clock import Clock, get_clock
from shopcache.core.config.settings import Settings, get_settings
from shopcache.core.interfaces.kv_store import KeyValueStore
from shopcache.core.interfaces.persistence import (
    ShopRepository,
    ShopTypeRepository,
    UserRepository,
    VoucherRepository,
)
from shopcache.core.logging.logger import get_logger, setup_logging
from shopcache.infrastructure.cache.cache_client import CacheClient
from shopcache.infrastructure.cache.rebuild_pool import RebuildExecutor, RebuildPool
from shopcache.infrastructure.coordination.distributed_lock import DistributedLock
from shopcache.infrastructure.coordination.id_generator import RedisIdGenerator
from shopcache.infrastructure.kv.redis_store import close_kv_store, init_kv_store
from shopcache.infrastructure.monitoring.metrics_collector import get_metrics_collector
from shopcache.infrastructure.persistence.memory_repository import (
    InMemoryShopRepository,
    InMemoryShopTypeRepository,
    InMemoryUserRepository,
    InMemoryVoucherRepository,
)

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    store: KeyValueStore
    lock: DistributedLock
    id_generator: RedisIdGenerator
    rebuild_executor: RebuildExecutor
    cache_client: CacheClient
    shop_service: ShopService
    shop_type_service: ShopTypeService
    login_service: LoginService
    voucher_order_service: VoucherOrderService

    @classmethod
    def create(
        cls,
        store: KeyValueStore,
        shop_repository: ShopRepository | None = None,
        shop_type_repository: ShopTypeRepository | None = None,
        user_repository: UserRepository | None = None,
        voucher_repository: VoucherRepository | None = None,
        rebuild_executor: RebuildExecutor | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> "ServiceContainer":
        settings = settings or get_settings()
        clock = clock or get_clock()
        metrics = get_metrics_collector()

        lock = DistributedLock(store, metrics=metrics)
        id_generator = RedisIdGenerator(store, clock=clock, metrics=metrics)
        rebuild_executor = rebuild_executor or RebuildPool(
            size=settings.rebuild.REBUILD_POOL_SIZE, metrics=metrics
        )
        cache_client = CacheClient(
            store, lock, rebuild_executor, clock=clock, settings=settings, metrics=metrics
        )

        return cls(
            store=store,
            lock=lock,
            id_generator=id_generator,
            rebuild_executor=rebuild_executor,
            cache_client=cache_client,
            shop_service=ShopService(
                cache_client, shop_repository or InMemoryShopRepository(), settings=settings
            ),
            shop_type_service=ShopTypeService(
                store, lock, shop_type_repository or InMemoryShopTypeRepository(), settings=settings
            ),
            login_service=LoginService(
                store, user_repository or InMemoryUserRepository(), settings=settings
            ),
            voucher_order_service=VoucherOrderService(
                voucher_repository or InMemoryVoucherRepository(),
                lock,
                id_generator,
                clock=clock,
                settings=settings,
                metrics=metrics,
            ),
        )

    async def close(self) -> None:
        """Drain pending cache refreshes."""
        if isinstance(self.rebuild_executor, RebuildPool):
            await self.rebuild_executor.shutdown()


@asynccontextmanager
async def lifespan(**repositories) -> AsyncIterator[ServiceContainer]:
    """
    Process lifecycle: logging, Redis connection, services, orderly shutdown.

    Keyword arguments are forwarded to ``ServiceContainer.create`` (repositories,
    clock, settings).
    """
    settings = repositories.get("settings") or get_settings()
    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)
    logger.info("Starting shopcache core", environment=settings.ENVIRONMENT)

    store = await init_kv_store()
    container = ServiceContainer.create(store, **repositories)
    logger.info("Application startup complete")
    try:
        yield container
    finally:
        logger.info("Shutting down")
        await container.close()
        await close_kv_store()
        logger.info("Application shutdown complete")
