"""
Shop Type Service

The category list is small, read on every home-page load and almost never
written, so it is cached whole as a Redis list at ``cache:shop-type``, one
JSON document per element, in display order.
"""

from shopcache.core.config.constants import CACHE_SHOPTYPE_KEY, LOCK_SHOPTYPE_NAME
from shopcache.core.config.settings import Settings, get_settings
from shopcache.core.exceptions import StoreCorruptError
from shopcache.core.interfaces.kv_store import KeyValueStore
from shopcache.core.interfaces.persistence import ShopTypeRepository
from shopcache.core.logging.logger import get_logger, log_stage
from shopcache.infrastructure.cache.serialization import dumps, loads
from shopcache.infrastructure.coordination.distributed_lock import DistributedLock
from shopcache.models.shop import ShopType

logger = get_logger(__name__)


class ShopTypeService:
    def __init__(
        self,
        store: KeyValueStore,
        lock: DistributedLock,
        shop_type_repository: ShopTypeRepository,
        settings: Settings | None = None,
    ):
        self._store = store
        self._lock = lock
        self._types = shop_type_repository
        self._settings = settings or get_settings()

    async def query_type_list(self) -> list[ShopType]:
        """Shop types ordered by ``sort``; cached for CACHE_SHOPTYPE_TTL."""
        cached = await self._store.lrange(CACHE_SHOPTYPE_KEY, 0, -1)
        if cached:
            try:
                return [loads(item, ShopType) for item in cached]
            except StoreCorruptError as e:
                log_stage(
                    logger, "SHOPTYPE.1", "Corrupt shop-type list treated as miss",
                    level="warning", error=e.message,
                )

        types = await self._types.list_ordered_by_sort()
        if not types:
            return types

        # Single writer: LPUSH appends, so concurrent rebuilds would duplicate entries.
        if not await self._lock.try_acquire(LOCK_SHOPTYPE_NAME, self._settings.lock.LOCK_SHOP_TTL):
            return types
        try:
            await self._store.delete(CACHE_SHOPTYPE_KEY)
            # LPUSH prepends each value, so push in reverse to keep display order.
            await self._store.lpush(CACHE_SHOPTYPE_KEY, *(dumps(t) for t in reversed(types)))
            await self._store.expire(CACHE_SHOPTYPE_KEY, self._settings.cache.shoptype_ttl_seconds)
        finally:
            await self._lock.release(LOCK_SHOPTYPE_NAME)

        log_stage(logger, "SHOPTYPE.2", "Shop-type list cached", count=len(types))
        return types
