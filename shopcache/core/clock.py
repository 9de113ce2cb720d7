"""
Clock abstraction.

Every time-dependent decision in the core (logical expiration, the ID
timestamp and date bucket, sale windows, TTL bookkeeping in the in-memory
store) reads time through a Clock so tests can pin and advance it.

All instants are timezone-aware UTC datetimes.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant (aware, UTC)."""
        ...

    def timestamp(self) -> float:
        """Current instant as epoch seconds."""
        ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return self.now().timestamp()


class ManualClock:
    """
    Clock that only moves when told to.

    Usage:
        clock = ManualClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        clock.advance(seconds=31)
    """

    def __init__(self, start: datetime | None = None):
        self._now = self._coerce(start or datetime(2024, 1, 1, tzinfo=timezone.utc))

    @staticmethod
    def _coerce(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def timestamp(self) -> float:
        return self._now.timestamp()

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = self._coerce(value)


_default_clock: Clock = SystemClock()


def get_clock() -> Clock:
    return _default_clock
