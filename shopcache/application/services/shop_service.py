"""
Shop Service

Shop detail reads go through the cache client; writes go to the database
first and then touch the cache. Entries read with logical expiration are
rewritten, since they never expire on their own and a deleted envelope reads
as a missing shop; other entries are invalidated.

Hot shops are served with logical expiration, which requires warming:
``save_shop_to_cache`` / ``warm_up`` write the enveloped entries ahead of
traffic. The read strategy can be switched per service or per call for
shops that are not pre-warmed.
"""

import asyncio

from shopcache.core.config.constants import CACHE_SHOP_KEY, LOCK_SHOP_NAME, CacheStrategy
from shopcache.core.config.settings import Settings, get_settings
from shopcache.core.exceptions import InvalidInputError, ShopNotFoundError
from shopcache.core.interfaces.persistence import ShopRepository
from shopcache.core.logging.logger import get_logger, log_stage
from shopcache.infrastructure.cache.cache_client import CacheClient
from shopcache.models.shop import Shop

logger = get_logger(__name__)


class ShopService:
    def __init__(
        self,
        cache_client: CacheClient,
        shop_repository: ShopRepository,
        strategy: CacheStrategy = CacheStrategy.LOGICAL_EXPIRE,
        settings: Settings | None = None,
    ):
        self._cache = cache_client
        self._shops = shop_repository
        self._strategy = strategy
        self._settings = settings or get_settings()

    async def query_by_id(self, shop_id: int, strategy: CacheStrategy | None = None) -> Shop:
        """
        Fetch a shop through the cache.

        Raises:
            ShopNotFoundError: no such shop (or, under logical expiration, not warmed)
        """
        strategy = strategy or self._strategy
        ttl = self._settings.cache.shop_ttl_seconds

        if strategy is CacheStrategy.PASS_THROUGH:
            shop = await self._cache.query_with_pass_through(
                CACHE_SHOP_KEY, shop_id, Shop, self._shops.get_by_id, ttl=ttl
            )
        elif strategy is CacheStrategy.MUTEX:
            shop = await self._cache.query_with_mutex(
                CACHE_SHOP_KEY, shop_id, Shop, self._shops.get_by_id,
                ttl=ttl, lock_prefix=LOCK_SHOP_NAME,
            )
        else:
            shop = await self._cache.query_with_logical_expire(
                CACHE_SHOP_KEY, shop_id, Shop, self._shops.get_by_id,
                ttl=ttl, lock_prefix=LOCK_SHOP_NAME,
            )

        if shop is None:
            raise ShopNotFoundError("Shop does not exist", details={"shop_id": shop_id})
        return shop

    async def update(self, shop: Shop) -> None:
        """
        Persist ``shop`` then refresh or drop its cache entry.

        Raises:
            InvalidInputError: shop has no id
            ShopNotFoundError: no such shop
        """
        if shop.id is None:
            raise InvalidInputError("Shop id must not be empty")

        if not await self._shops.update(shop):
            raise ShopNotFoundError("Shop does not exist", details={"shop_id": shop.id})

        if self._strategy is CacheStrategy.LOGICAL_EXPIRE:
            await self.save_shop_to_cache(shop.id)
            log_stage(logger, "SHOP.2", "Shop updated, cache rewritten", shop_id=shop.id)
        else:
            await self._cache.invalidate(f"{CACHE_SHOP_KEY}{shop.id}")
            log_stage(logger, "SHOP.2", "Shop updated, cache invalidated", shop_id=shop.id)

    async def save_shop_to_cache(self, shop_id: int, expire_seconds: float | None = None) -> Shop:
        """
        Write an enveloped entry for ``shop_id`` (logical-expiration warm-up).

        Raises:
            ShopNotFoundError: no such shop
        """
        shop = await self._shops.get_by_id(shop_id)
        if shop is None:
            raise ShopNotFoundError("Shop does not exist", details={"shop_id": shop_id})

        ttl = expire_seconds if expire_seconds is not None else self._settings.cache.shop_ttl_seconds
        await self._cache.set_with_logical_expire(f"{CACHE_SHOP_KEY}{shop_id}", shop, ttl)
        return shop

    async def warm_up(self, shop_ids: list[int], expire_seconds: float | None = None) -> list[int]:
        """
        Warm several hot shops concurrently.

        Returns:
            The ids that were written; unknown ids are skipped with a warning
        """
        results = await asyncio.gather(
            *(self.save_shop_to_cache(shop_id, expire_seconds) for shop_id in shop_ids),
            return_exceptions=True,
        )

        warmed = []
        for shop_id, result in zip(shop_ids, results):
            if isinstance(result, ShopNotFoundError):
                log_stage(logger, "SHOP.3", "Skipping unknown shop during warm-up", level="warning", shop_id=shop_id)
            elif isinstance(result, BaseException):
                raise result
            else:
                warmed.append(shop_id)

        log_stage(logger, "SHOP.3", "Shop cache warmed", count=len(warmed))
        return warmed
