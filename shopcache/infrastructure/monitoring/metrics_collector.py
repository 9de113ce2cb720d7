#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Counters and gauges for the caching core:
- Cache lookups by strategy and outcome (hit, negative hit, miss, stale, corrupt)
- Rebuilds and rebuild failures
- Rebuild queue depth and caller-runs
- Lock acquisitions, contention and owner mismatches
- Flash-sale admissions by outcome

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards
- Module-level metric objects (one registration per process)
- A small facade so call sites never touch label plumbing
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Info,
    generate_latest,
)

from shopcache.core.config.settings import get_settings
from shopcache.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# Cache metrics
CACHE_LOOKUPS = Counter(
    'shopcache_cache_lookups_total',
    'Cache lookups by read strategy and outcome',
    ['strategy', 'outcome']
)

CACHE_REBUILDS = Counter(
    'shopcache_cache_rebuilds_total',
    'Cache entries rebuilt from the loader',
    ['strategy']
)

CACHE_REBUILD_FAILURES = Counter(
    'shopcache_cache_rebuild_failures_total',
    'Cache rebuilds that raised',
    ['strategy']
)

# Rebuild pool metrics
REBUILD_QUEUE_DEPTH = Gauge(
    'shopcache_rebuild_queue_depth',
    'Rebuild jobs waiting for a worker'
)

REBUILD_CALLER_RUNS = Counter(
    'shopcache_rebuild_caller_runs_total',
    'Rebuild jobs executed by the submitter because the pool was shutting down'
)

REBUILD_JOBS = Counter(
    'shopcache_rebuild_jobs_total',
    'Rebuild jobs finished by the pool',
    ['status']  # completed, failed
)

# Lock metrics
LOCK_ACQUISITIONS = Counter(
    'shopcache_lock_acquisitions_total',
    'Distributed lock acquisition attempts',
    ['lock', 'result']  # acquired, contended
)

LOCK_OWNER_MISMATCHES = Counter(
    'shopcache_lock_owner_mismatches_total',
    'Releases attempted by a caller that no longer owns the lock',
    ['lock']
)

# Admission metrics
ADMISSIONS = Counter(
    'shopcache_seckill_admissions_total',
    'Flash-sale admission attempts by outcome',
    ['outcome']
)

# Identifier metrics
IDS_GENERATED = Counter(
    'shopcache_ids_generated_total',
    'Identifiers issued by the ID generator',
    ['tag']
)

# App info
APP_INFO = Info(
    'shopcache_app',
    'Application information'
)


def _lock_family(name: str) -> str:
    """Collapse per-entity lock names (``shop:42``) to a bounded label (``shop``)."""
    return name.split(":", 1)[0] or name


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_cache_lookup("mutex", "hit")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        self.settings = get_settings()

        APP_INFO.info({
            'environment': self.settings.ENVIRONMENT,
            'app_name': self.settings.APP_NAME,
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_lookup(self, strategy: str, outcome: str) -> None:
        CACHE_LOOKUPS.labels(strategy=strategy, outcome=outcome).inc()

    def record_rebuild(self, strategy: str) -> None:
        CACHE_REBUILDS.labels(strategy=strategy).inc()

    def record_rebuild_failure(self, strategy: str) -> None:
        CACHE_REBUILD_FAILURES.labels(strategy=strategy).inc()

    # =========================================================================
    # Rebuild Pool Metrics
    # =========================================================================

    def set_rebuild_queue_depth(self, depth: int) -> None:
        REBUILD_QUEUE_DEPTH.set(depth)

    def record_caller_runs(self) -> None:
        REBUILD_CALLER_RUNS.inc()

    def record_rebuild_job(self, status: str) -> None:
        REBUILD_JOBS.labels(status=status).inc()

    # =========================================================================
    # Lock Metrics
    # =========================================================================

    def record_lock_attempt(self, name: str, acquired: bool) -> None:
        LOCK_ACQUISITIONS.labels(
            lock=_lock_family(name), result="acquired" if acquired else "contended"
        ).inc()

    def record_lock_owner_mismatch(self, name: str) -> None:
        LOCK_OWNER_MISMATCHES.labels(lock=_lock_family(name)).inc()

    # =========================================================================
    # Admission / ID Metrics
    # =========================================================================

    def record_admission(self, outcome: str) -> None:
        ADMISSIONS.labels(outcome=outcome).inc()

    def record_id_generated(self, tag: str) -> None:
        IDS_GENERATED.labels(tag=tag).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """Prometheus text format metrics."""
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
