"""
CRUD App: Health Checker
========================

What:  Dependency checks and process metrics behind the /health endpoints.
How:   The database check runs ``SELECT 1`` against the engine and times it.
       The memory check compares current resident set size (/proc/self/statm)
       with fixed thresholds; without /proc it falls back to peak RSS.
Who:   routes/health.py; built once per app in create_app().

Health Check Philosophy:
    - liveness:  the process answers; no dependency is touched
    - readiness: the database answers; otherwise traffic should go elsewhere
    - full:      readiness plus resource pressure (memory → degraded)
"""

import asyncio
import gc
import logging
import resource
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from crud.config import Settings
from crud.database import ping_database
from crud.schemas.health import CheckResult, HealthStatus

logger = logging.getLogger(__name__)

# RSS of this process above which the service reports "degraded"
RSS_WARNING_THRESHOLD_MB = 512
# RSS of this process plus the peak RSS of reaped children
TOTAL_RSS_WARNING_THRESHOLD_MB = 1024

STATM_PATH = "/proc/self/statm"

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"


def _maxrss_mb(who: int) -> float:
    """ru_maxrss is kilobytes on Linux and bytes on macOS."""
    value = resource.getrusage(who).ru_maxrss
    if sys.platform == "darwin":
        return value / (1024 * 1024)
    return value / 1024



def current_rss_mb() -> float:
    """
    Resident set size of this process right now, in MB.

    Reads the second field of /proc/self/statm (resident pages). Where that
    file does not exist (macOS) it falls back to ru_maxrss, which is the peak
    and never goes down: once over the threshold, the process stays degraded
    until it restarts.
    """
    try:
        with open(STATM_PATH) as f:
            resident_pages = int(f.read().split()[1])
    except (OSError, ValueError, IndexError):
        return _maxrss_mb(resource.RUSAGE_SELF)
    return resident_pages * resource.getpagesize() / (1024 * 1024)


class HealthChecker:
    """Runs health checks for one engine and reports a fixed app version."""

    def __init__(self, engine: AsyncEngine, version: str, config: Optional[Settings] = None):
        self.engine = engine
        self.version = version
        self.config = config
        self.started_at = time.monotonic()

    # ── Individual Checks ─────────────────────────────────────────────────

    async def check_database(self) -> CheckResult:
        start = time.perf_counter()
        try:
            await ping_database(self.engine)
        except Exception as e:
            latency = (time.perf_counter() - start) * 1000
            logger.warning("Health check: database unreachable: %s", str(e))
            return CheckResult(
                status=UNHEALTHY,
                message=f"Database ping failed: {type(e).__name__}",
                latency_ms=round(latency, 2),
            )

        latency = (time.perf_counter() - start) * 1000
        return CheckResult(
            status=HEALTHY,
            message="Database connection is healthy",
            latency_ms=round(latency, 2),
        )

    def check_memory(self) -> CheckResult:
        rss_mb = current_rss_mb()
        total_mb = rss_mb + _maxrss_mb(resource.RUSAGE_CHILDREN)

        if rss_mb > RSS_WARNING_THRESHOLD_MB or total_mb > TOTAL_RSS_WARNING_THRESHOLD_MB:
            return CheckResult(status=DEGRADED, message="Memory usage is elevated")
        return CheckResult(status=HEALTHY, message="Memory usage is within normal limits")

    # ── Aggregates ────────────────────────────────────────────────────────

    async def readiness(self) -> HealthStatus:
        db_check = await self.check_database()
        return HealthStatus(
            status="ready" if db_check.status == HEALTHY else "not_ready",
            timestamp=datetime.now(timezone.utc),
            version=self.version,
            checks={"database": db_check},
        )

    async def health(self) -> HealthStatus:
        """
        Database down → unhealthy. Memory elevated → degraded.
        An unhealthy database always wins over degraded memory.
        """
        db_check = await self.check_database()
        mem_check = self.check_memory()

        overall = HEALTHY
        if db_check.status != HEALTHY:
            overall = UNHEALTHY
        elif mem_check.status != HEALTHY:
            overall = DEGRADED

        return HealthStatus(
            status=overall,
            timestamp=datetime.now(timezone.utc),
            version=self.version,
            checks={"database": db_check, "memory": mem_check},
        )

    def metrics(self) -> Dict[str, Any]:
        """Point-in-time process metrics. Never touches the database."""
        try:
            task_count = len(asyncio.all_tasks())
        except RuntimeError:
            # No running loop (called from a sync context)
            task_count = 0

        pool = self.engine.pool
        metrics: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(time.monotonic() - self.started_at, 2),
            "memory": {
                "rss_mb": round(current_rss_mb(), 2),
                "max_rss_mb": round(_maxrss_mb(resource.RUSAGE_SELF), 2),
                "gc_counts": list(gc.get_count()),
                "gc_collections": sum(s["collections"] for s in gc.get_stats()),
                "gc_tracked_objects": len(gc.get_objects()),
            },
            "database": {
                "pool_class": type(pool).__name__,
                "pool_status": pool.status(),
            },
            "runtime": {
                "python_version": sys.version.split()[0],
                "threads": threading.active_count(),
                "asyncio_tasks": task_count,
            },
        }
        if self.config is not None:
            metrics["rate_limit"] = {
                "per_minute": self.config.rate_limit_per_minute,
                "burst": self.config.rate_limit_burst,
            }
        return metrics
