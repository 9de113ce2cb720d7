"""
Distributed Lock

A best-effort mutex held in the key-value store. The record at
``lock:<name>`` holds the owner token; the lease (TTL) bounds how long a
crashed holder can block others.

Owner safety:
    A token is ``<process-id>:<counter>``, unique per acquisition. Release
    is an atomic compare-and-delete, so a holder whose lease already expired
    can never delete the record of the next owner.

Token bookkeeping:
    The token of each acquisition is remembered in a context variable, so
    ``release(name)`` called from the same task (or code awaited by it)
    uses the caller's own token. Work handed to another task takes the
    token along explicitly with ``detach(name)`` and releases with
    ``release(name, token=...)``.

Usage:
    if await lock.try_acquire("order:42", lease_seconds=1200):
        try:
            ...
        finally:
            await lock.release("order:42")

    async with lock.hold("shop:7", lease_seconds=10):
        ...
"""

import itertools
import uuid
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from types import MappingProxyType

from shopcache.core.config.constants import LOCK_KEY_PREFIX
from shopcache.core.exceptions import CacheError, LockUnavailableError
from shopcache.core.interfaces.kv_store import KeyValueStore
from shopcache.core.logging.logger import get_logger, log_stage
from shopcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

PROCESS_ID = uuid.uuid4().hex
_token_counter = itertools.count(1)

_EMPTY: Mapping[str, str] = MappingProxyType({})


def next_token() -> str:
    return f"{PROCESS_ID}:{next(_token_counter)}"


class DistributedLock:
    """KV-backed mutex with owner identity and lease."""

    def __init__(self, store: KeyValueStore, metrics: MetricsCollector | None = None):
        self._store = store
        self._metrics = metrics or get_metrics_collector()
        self._held: ContextVar[Mapping[str, str]] = ContextVar(
            f"held_locks_{id(self)}", default=_EMPTY
        )

    @staticmethod
    def key_for(name: str) -> str:
        return LOCK_KEY_PREFIX + name

    def _remember(self, name: str, token: str) -> None:
        self._held.set(MappingProxyType({**self._held.get(), name: token}))

    def _forget(self, name: str) -> str | None:
        held = self._held.get()
        if name not in held:
            return None
        remaining = {k: v for k, v in held.items() if k != name}
        self._held.set(MappingProxyType(remaining))
        return held[name]

    def token_for(self, name: str) -> str | None:
        """Token the current context holds for ``name``, if any."""
        return self._held.get().get(name)

    async def try_acquire(self, name: str, lease_seconds: float) -> bool:
        """
        Attempt to take the lock once.

        Returns:
            True if acquired; False if someone else holds it (not an error)
        """
        token = next_token()
        acquired = await self._store.set_if_absent(self.key_for(name), token, lease_seconds)
        self._metrics.record_lock_attempt(name, acquired)

        if acquired:
            self._remember(name, token)
            log_stage(logger, "LOCK.1", "Lock acquired", level="debug", lock=name, lease=lease_seconds)
        else:
            log_stage(logger, "LOCK.1", "Lock contended", level="debug", lock=name)
        return acquired

    def detach(self, name: str) -> str | None:
        """
        Remove the lock from the current context and return its token, for
        handing ownership to another task.
        """
        return self._forget(name)

    async def release(self, name: str, token: str | None = None) -> bool:
        """
        Release the lock if (and only if) the caller still owns it.

        Never raises: an owner mismatch is logged at ERROR and a store
        failure is logged, both leaving the record to its lease.

        Returns:
            True if the record was deleted
        """
        own = self._forget(name)
        token = token or own
        if token is None:
            log_stage(
                logger, "LOCK.2", "Release without a held token", level="error", lock=name
            )
            self._metrics.record_lock_owner_mismatch(name)
            return False

        try:
            released = await self._store.compare_and_delete(self.key_for(name), token)
        except CacheError as e:
            log_stage(
                logger,
                "LOCK.2",
                "Lock release failed, record left to expire",
                level="warning",
                lock=name,
                error=str(e),
            )
            return False

        if not released:
            log_stage(
                logger,
                "LOCK.2",
                "Lock owner mismatch on release (lease expired or taken over)",
                level="error",
                lock=name,
                token=token,
            )
            self._metrics.record_lock_owner_mismatch(name)
            return False

        log_stage(logger, "LOCK.2", "Lock released", level="debug", lock=name)
        return True

    @asynccontextmanager
    async def hold(self, name: str, lease_seconds: float) -> AsyncIterator[str]:
        """
        Hold the lock for the duration of the block.

        Raises:
            LockUnavailableError: if the lock is held by someone else
        """
        if not await self.try_acquire(name, lease_seconds):
            raise LockUnavailableError(
                f"Lock '{name}' is held by another owner", details={"lock": name}
            )
        token = self.token_for(name)
        try:
            yield token
        finally:
            await self.release(name, token=token)
