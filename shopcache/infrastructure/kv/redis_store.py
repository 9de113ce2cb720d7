"""
Redis Key-Value Store with Connection Pooling

Architecture:
    RedisKeyValueStore (Public API, implements KeyValueStore)
        ├── ConnectionManager (Connection lifecycle)
        ├── OperationExecutor (Command execution, retry and error mapping)
        └── HealthMonitor (Health checks and pool metrics)

Error Handling Strategy:
    - Timeouts and connection losses are retried once (tenacity, 2 attempts
      total) and then surfaced as StoreTransientError
    - Every other RedisError surfaces as CacheKeyError
    - The socket timeout is small (REDIS_SOCKET_TIMEOUT, 200ms by default):
      a slow cache must not stall a request longer than a DB read would
"""

import functools
import time
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from shopcache.core.config.settings import get_settings
from shopcache.core.exceptions import CacheConnectionError, CacheKeyError, StoreTransientError
from shopcache.core.logging.logger import get_logger

logger = get_logger(__name__)

TRANSIENT_ERRORS = (ConnectionError, TimeoutError)
MAX_ATTEMPTS = 2

# Delete the key only if it still holds the caller's token.
COMPARE_AND_DELETE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def _ttl_kwargs(ttl: float | None) -> dict[str, int]:
    if ttl is None:
        return {}
    if float(ttl).is_integer():
        return {"ex": int(ttl)}
    return {"px": int(ttl * 1000)}


def _log_retry(retry_state) -> None:
    logger.warning(
        "Transient Redis error, retrying",
        stage="REDIS.RETRY",
        operation=retry_state.fn.__name__ if retry_state.fn else None,
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


def redis_operation(func):
    """
    Wrap an executor coroutine with the retry policy and error mapping.

    The inner tenacity wrapper retries transient failures once and re-raises
    the last one; the outer layer converts redis exceptions into the
    core's exception hierarchy.
    """
    retrying = retry(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=_log_retry,
        reraise=True,
    )(func)

    @functools.wraps(func)
    async def wrapper(self, key: str, *args, **kwargs):
        try:
            return await retrying(self, key, *args, **kwargs)
        except TRANSIENT_ERRORS as e:
            logger.error(
                "Redis operation failed after retry",
                stage="REDIS.TRANSIENT",
                operation=func.__name__,
                key=key,
                error=str(e),
            )
            raise StoreTransientError.from_exception(
                e,
                message=f"Redis {func.__name__} failed: {e}",
                key=key,
                attempts=MAX_ATTEMPTS,
            )
        except RedisError as e:
            logger.error(
                "Redis operation failed",
                stage="REDIS.ERROR",
                operation=func.__name__,
                key=key,
                error=str(e),
            )
            raise CacheKeyError.from_exception(e, message=f"Redis {func.__name__} failed: {e}", key=key)

    return wrapper


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Pool Configuration:
    - Max connections: REDIS_MAX_CONNECTIONS
    - Socket timeout: REDIS_SOCKET_TIMEOUT (retries are handled by the executor)
    - Health check interval: REDIS_HEALTH_CHECK_INTERVAL
    """

    def __init__(self, settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Raises:
            CacheConnectionError: If connection fails
        """
        if self._is_connected and self._client:
            return self._client

        redis_settings = self._settings.redis
        try:
            self._pool = ConnectionPool(
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
                db=redis_settings.REDIS_DB,
                password=redis_settings.REDIS_PASSWORD,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
                health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            self._is_connected = True

            logger.info(
                "Redis connected successfully",
                stage="REDIS.2",
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
            )
            return self._client

        except TRANSIENT_ERRORS as e:
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={
                    "host": redis_settings.REDIS_HOST,
                    "port": redis_settings.REDIS_PORT,
                },
            )

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        if self._client:
            await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        self._client = None
        self._pool = None
        self._is_connected = False

        logger.info("Redis disconnected", stage="REDIS.3")

    def attach(self, client: redis.Redis) -> None:
        """Adopt a client built elsewhere (shared pool, test double)."""
        self._client = client
        self._is_connected = True

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent retry and error handling.

    Every public coroutine takes the key as its first argument so the
    ``redis_operation`` wrapper can log it.
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client
        self._compare_and_delete = redis_client.register_script(COMPARE_AND_DELETE_SCRIPT)

    @redis_operation
    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    @redis_operation
    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        await self._redis.set(key, value, **_ttl_kwargs(ttl))

    @redis_operation
    async def set_if_absent(self, key: str, value: str, ttl: float) -> bool:
        result = await self._redis.set(key, value, nx=True, **_ttl_kwargs(ttl))
        return bool(result)

    @redis_operation
    async def delete(self, key: str) -> bool:
        return await self._redis.delete(key) > 0

    @redis_operation
    async def compare_and_delete(self, key: str, expected: str) -> bool:
        result = await self._compare_and_delete(keys=[key], args=[expected])
        return int(result) == 1

    @redis_operation
    async def increment(self, key: str) -> int:
        return int(await self._redis.incr(key))

    @redis_operation
    async def expire(self, key: str, ttl: float) -> bool:
        if float(ttl).is_integer():
            return bool(await self._redis.expire(key, int(ttl)))
        return bool(await self._redis.pexpire(key, int(ttl * 1000)))

    @redis_operation
    async def hset_mapping(self, key: str, mapping: dict[str, str]) -> None:
        await self._redis.hset(key, mapping=mapping)

    @redis_operation
    async def hgetall(self, key: str) -> dict[str, str]:
        return await self._redis.hgetall(key)

    @redis_operation
    async def lpush(self, key: str, *values: str) -> int:
        return int(await self._redis.lpush(key, *values))

    @redis_operation
    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        return await self._redis.lrange(key, start, end)


# =============================================================================
# LAYER 3: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """Ping latency and pool utilisation."""

    POOL_WARNING_THRESHOLD = 80.0

    def __init__(self, connection_manager: ConnectionManager):
        self._conn_mgr = connection_manager

    async def health_check(self) -> dict[str, Any]:
        health: dict[str, Any] = {
            "status": "healthy",
            "pool_warning": False,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)
            return health

        pool = self._conn_mgr.get_pool()
        if pool and hasattr(pool, "_available_connections"):
            available = len(pool._available_connections)
            in_use = len(getattr(pool, "_in_use_connections", ()))
            utilization = 100.0 * in_use / pool.max_connections
            health["pool_size"] = pool.max_connections
            health["pool_available"] = available
            health["pool_utilization_pct"] = round(utilization, 1)

            if utilization > self.POOL_WARNING_THRESHOLD:
                health["pool_warning"] = True
                logger.warning(
                    "Redis pool utilization high",
                    stage="REDIS.HEALTH",
                    pool_utilization=utilization,
                    max_connections=pool.max_connections,
                )

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisKeyValueStore:
    """
    Async Redis-backed KeyValueStore.

    Usage:
        store = RedisKeyValueStore()
        await store.connect()
        await store.set("cache:shop:1", payload, ttl=1800)
        await store.disconnect()

    A pre-built ``redis.asyncio.Redis`` (or a test double) can be injected
    with ``client=``; the store is then usable without ``connect()``.
    """

    def __init__(self, settings=None, client: redis.Redis | None = None):
        self._settings = settings or get_settings()
        self._conn_mgr = ConnectionManager(self._settings)
        self._health_monitor = HealthMonitor(self._conn_mgr)
        self._executor: OperationExecutor | None = None
        if client is not None:
            self._conn_mgr.attach(client)
            self._executor = OperationExecutor(client)

        logger.info(
            "Redis store initialized",
            stage="REDIS.1",
            host=self._settings.redis.REDIS_HOST,
            port=self._settings.redis.REDIS_PORT,
            injected_client=client is not None,
        )

    async def connect(self) -> None:
        """
        STAGE-REDIS.2: Connection establishment

        Raises:
            CacheConnectionError: If connection fails
        """
        client = await self._conn_mgr.connect()
        self._executor = OperationExecutor(client)

    async def disconnect(self) -> None:
        await self._conn_mgr.disconnect()
        self._executor = None

    @property
    def executor(self) -> OperationExecutor:
        if self._executor is None:
            raise CacheConnectionError("Redis store is not connected")
        return self._executor

    async def ping(self) -> bool:
        client = self._conn_mgr.get_client()
        if client is None:
            return False
        try:
            return bool(await client.ping())
        except RedisError:
            return False

    # -------------------------------------------------------------------------
    # KeyValueStore operations (delegated to the executor)
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self.executor.get(key)

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        await self.executor.set(key, value, ttl)

    async def set_if_absent(self, key: str, value: str, ttl: float) -> bool:
        return await self.executor.set_if_absent(key, value, ttl)

    async def delete(self, key: str) -> bool:
        return await self.executor.delete(key)

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        return await self.executor.compare_and_delete(key, expected)

    async def increment(self, key: str) -> int:
        return await self.executor.increment(key)

    async def expire(self, key: str, ttl: float) -> bool:
        return await self.executor.expire(key, ttl)

    async def hset_mapping(self, key: str, mapping: dict[str, str]) -> None:
        await self.executor.hset_mapping(key, mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        return await self.executor.hgetall(key)

    async def lpush(self, key: str, *values: str) -> int:
        return await self.executor.lpush(key, *values)

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        return await self.executor.lrange(key, start, end)

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_kv_store: RedisKeyValueStore | None = None


def get_kv_store() -> RedisKeyValueStore:
    """Get the global Redis store instance (singleton)."""
    global _kv_store

    if _kv_store is None:
        _kv_store = RedisKeyValueStore()

    return _kv_store


async def init_kv_store() -> RedisKeyValueStore:
    """Initialize and connect the global Redis store."""
    store = get_kv_store()
    await store.connect()
    return store


async def close_kv_store() -> None:
    """Close the global Redis store."""
    global _kv_store

    if _kv_store:
        await _kv_store.disconnect()
        _kv_store = None
