"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.

The default wiring is fully in-process: an in-memory key-value store whose
TTLs follow a manual clock, in-memory repositories, and a rebuild executor
that only runs jobs when a test asks it to.
"""

import os
import sys
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from shopcache.application.services.login_service import LoginService  # noqa: E402
from shopcache.application.services.shop_service import ShopService  # noqa: E402
from shopcache.application.services.shop_type_service import ShopTypeService  # noqa: E402
from shopcache.application.services.voucher_order_service import VoucherOrderService  # noqa: E402
from shopcache.core.clock import ManualClock  # noqa: E402
from shopcache.core.config.settings import Settings  # noqa: E402
from shopcache.infrastructure.cache.cache_client import CacheClient  # noqa: E402
from shopcache.infrastructure.coordination.distributed_lock import DistributedLock  # noqa: E402
from shopcache.infrastructure.coordination.id_generator import RedisIdGenerator  # noqa: E402
from shopcache.infrastructure.kv.memory_store import InMemoryKeyValueStore  # noqa: E402
from shopcache.infrastructure.monitoring.metrics_collector import MetricsCollector  # noqa: E402
from shopcache.infrastructure.persistence.memory_repository import (  # noqa: E402
    InMemoryShopRepository,
    InMemoryShopTypeRepository,
    InMemoryUserRepository,
    InMemoryVoucherRepository,
)
from tests.test_fixtures import DomainFactory, ManualRebuildExecutor  # noqa: E402

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """
    Settings with production defaults, except a short mutex backoff so
    contention tests finish quickly.
    """
    return Settings(_env_file=None, CACHE_MUTEX_RETRY_DELAY_MS=5, ENVIRONMENT="test")


@pytest.fixture
def clock():
    """Manual clock pinned to 2024-01-01T12:00:00Z."""
    return ManualClock(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def metrics():
    """Metrics collector double; assertions inspect its calls."""
    return MagicMock(spec=MetricsCollector)


# ============================================================================
# Core Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def store(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def lock(store, metrics):
    return DistributedLock(store, metrics=metrics)


@pytest.fixture
def id_generator(store, clock, metrics):
    return RedisIdGenerator(store, clock=clock, metrics=metrics)


@pytest.fixture
def rebuild_executor():
    return ManualRebuildExecutor()


@pytest.fixture
def cache_client(store, lock, rebuild_executor, clock, settings, metrics):
    return CacheClient(
        store, lock, rebuild_executor, clock=clock, settings=settings, metrics=metrics
    )


@pytest.fixture
def mock_redis():
    """
    redis.asyncio.Redis double for adapter tests.

    ``register_script`` is synchronous in redis-py and returns an awaitable
    script object.
    """
    client = AsyncMock()
    client.register_script = MagicMock(return_value=AsyncMock(return_value=1))
    return client


# ============================================================================
# Repository Fixtures
# ============================================================================


@pytest.fixture
def shop_repository():
    return InMemoryShopRepository([DomainFactory.shop(1), DomainFactory.shop(2, name="Noodle Bar")])


@pytest.fixture
def shop_type_repository():
    return InMemoryShopTypeRepository(DomainFactory.shop_types())


@pytest.fixture
def user_repository():
    return InMemoryUserRepository([DomainFactory.user(1)])


@pytest.fixture
def voucher_repository(clock):
    return InMemoryVoucherRepository([DomainFactory.voucher(clock.now())])


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def shop_service(cache_client, shop_repository, settings):
    return ShopService(cache_client, shop_repository, settings=settings)


@pytest.fixture
def shop_type_service(store, lock, shop_type_repository, settings):
    return ShopTypeService(store, lock, shop_type_repository, settings=settings)


@pytest.fixture
def login_service(store, user_repository, settings):
    return LoginService(store, user_repository, settings=settings)


@pytest.fixture
def voucher_order_service(voucher_repository, lock, id_generator, clock, settings, metrics):
    return VoucherOrderService(
        voucher_repository, lock, id_generator, clock=clock, settings=settings, metrics=metrics
    )


# ============================================================================
# Environment-Based Integration Toggles
# ============================================================================


@pytest.fixture(scope="session")
def use_real_redis():
    """Check if real Redis should be used for integration tests."""
    return os.getenv("USE_REAL_REDIS", "0").lower() in ("1", "true", "yes")
