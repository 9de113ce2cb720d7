"""
Monotonic ID Generator

64-bit identifiers built from a timestamp and a per-day counter:

    bit 63      : sign, always 0
    bits 62..32 : seconds since 2022-01-01T00:00:00Z
    bits 31..0  : value of INCR on icr:<tag>:<yyyy:MM:dd>

Within one tag IDs are unique and strictly increasing in issue order as
long as the clock does not step backwards; the counter restarts every UTC
day, which is harmless because the timestamp half keeps growing.

Store failures propagate to the caller: there is no local fallback that
could issue duplicates.
"""

from shopcache.core.clock import Clock, get_clock
from shopcache.core.config.constants import (
    ID_COUNTER_DATE_FORMAT,
    ID_COUNTER_KEY,
    ID_EPOCH_SECONDS,
    ID_SEQUENCE_BITS,
    ID_SEQUENCE_MASK,
    ID_TIMESTAMP_MAX,
)
from shopcache.core.exceptions import ConfigurationError
from shopcache.core.interfaces.kv_store import KeyValueStore
from shopcache.core.logging.logger import get_logger
from shopcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


def timestamp_of(generated_id: int) -> int:
    """Epoch seconds encoded in an ID."""
    return (generated_id >> ID_SEQUENCE_BITS) + ID_EPOCH_SECONDS


def sequence_of(generated_id: int) -> int:
    """Per-day sequence number encoded in an ID."""
    return generated_id & ID_SEQUENCE_MASK


class RedisIdGenerator:
    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._clock = clock or get_clock()
        self._metrics = metrics or get_metrics_collector()

    @staticmethod
    def counter_key(tag: str, day: str) -> str:
        return f"{ID_COUNTER_KEY}{tag}:{day}"

    async def next_id(self, tag: str) -> int:
        """
        Issue the next ID for ``tag``.

        Raises:
            StoreTransientError / CacheKeyError: counter increment failed
            ConfigurationError: clock before the epoch, or counter overflow
        """
        now = self._clock.now()
        seconds = int(now.timestamp()) - ID_EPOCH_SECONDS
        if seconds < 0 or seconds > ID_TIMESTAMP_MAX:
            raise ConfigurationError(
                "Clock outside the ID timestamp range", details={"now": now.isoformat()}
            )

        key = self.counter_key(tag, now.strftime(ID_COUNTER_DATE_FORMAT))
        count = await self._store.increment(key)
        if count > ID_SEQUENCE_MASK:
            raise ConfigurationError(
                "Daily ID sequence exhausted", details={"tag": tag, "key": key}
            )

        self._metrics.record_id_generated(tag)
        logger.debug("ID issued", stage="ID.1", tag=tag, sequence=count)
        return (seconds << ID_SEQUENCE_BITS) | count
