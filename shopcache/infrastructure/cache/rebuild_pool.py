"""
Cache Rebuild Worker Pool

Background executor for logical-expiration refreshes. A fixed number of
worker tasks drain an unbounded asyncio.Queue; readers only enqueue and
return, so a slow loader never blocks a read.

Lifecycle:
    pool = RebuildPool(size=10)
    await pool.submit(job, name="cache:shop:1")   # starts workers lazily
    await pool.join()                             # wait for queued work
    await pool.shutdown()                         # drain, then stop workers

Once shutdown has begun, ``submit`` runs the job on the submitter
(caller-runs) so a refresh that already holds its rebuild lock is never
dropped.
"""

import asyncio
import contextvars
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from shopcache.core.config.settings import get_settings
from shopcache.core.logging.logger import get_logger, log_stage
from shopcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

RebuildFn = Callable[[], Awaitable[None]]


@runtime_checkable
class RebuildExecutor(Protocol):
    """Anything that accepts rebuild jobs; the cache client depends only on this."""

    async def submit(self, job: RebuildFn, name: str = "rebuild") -> None:
        ...


@dataclass
class RebuildJob:
    name: str
    fn: RebuildFn
    context: contextvars.Context | None = None


class RebuildPool:
    def __init__(self, size: int | None = None, metrics: MetricsCollector | None = None):
        self._size = size or get_settings().rebuild.REBUILD_POOL_SIZE
        self._metrics = metrics or get_metrics_collector()
        self._queue: asyncio.Queue[RebuildJob] | None = None
        self._workers: list[asyncio.Task] = []
        self._shutting_down = False
        self._completed = 0
        self._failed = 0
        self._caller_runs = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def is_running(self) -> bool:
        return bool(self._workers) and not self._shutting_down

    def _ensure_started(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
            # Workers start in an empty context; each job carries its submitter's.
            self._workers = [
                contextvars.Context().run(
                    asyncio.create_task, self._worker(i), name=f"cache-rebuild-{i}"
                )
                for i in range(self._size)
            ]
            log_stage(logger, "REBUILD.0", "Rebuild pool started", workers=self._size)
        return self._queue

    async def start(self) -> None:
        self._ensure_started()

    async def submit(self, job: RebuildFn, name: str = "rebuild") -> None:
        if self._shutting_down:
            self._caller_runs += 1
            self._metrics.record_caller_runs()
            log_stage(
                logger, "REBUILD.1", "Pool shutting down, running rebuild on caller",
                level="warning", job=name,
            )
            await self._run(RebuildJob(name, job))
            return

        queue = self._ensure_started()
        queue.put_nowait(RebuildJob(name, job, contextvars.copy_context()))
        self._metrics.set_rebuild_queue_depth(queue.qsize())

    async def _worker(self, index: int) -> None:
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                await self._run(job)
            finally:
                queue.task_done()
                self._metrics.set_rebuild_queue_depth(queue.qsize())

    async def _run(self, job: RebuildJob) -> None:
        try:
            if job.context is None:
                await job.fn()
            else:
                await job.context.run(asyncio.create_task, job.fn(), name=job.name)
        except Exception:
            self._failed += 1
            self._metrics.record_rebuild_job("failed")
            logger.exception("Cache rebuild failed", stage="REBUILD.2", job=job.name)
        else:
            self._completed += 1
            self._metrics.record_rebuild_job("completed")

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def shutdown(self) -> None:
        """Stop accepting queued work, drain the queue and stop the workers."""
        self._shutting_down = True
        await self.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        log_stage(logger, "REBUILD.3", "Rebuild pool stopped", **self.stats())

    def stats(self) -> dict[str, Any]:
        return {
            "size": self._size,
            "queue_depth": self._queue.qsize() if self._queue is not None else 0,
            "completed": self._completed,
            "failed": self._failed,
            "caller_runs": self._caller_runs,
            "shutting_down": self._shutting_down,
        }
