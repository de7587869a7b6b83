"""Cache store monitoring, health scoring and alerting.

The monitor reads Redis INFO, turns it into a CacheHealthSnapshot and scores
it. Nothing derived is persisted: every check recomputes from a fresh
snapshot, and only the previous snapshot is kept to turn the eviction counter
into a rate.

Health score starts at 100 and loses:
- 20 for memory usage above the threshold (5 when above 70% of it)
- 25 for a hit rate under 50% (10 when under the hit rate threshold)
- 5 for fragmentation ratio above 1.5
- 15 for an eviction rate above the threshold
- 5 for more connected clients than the threshold
- 10 when connections were rejected

Issues make the store unhealthy; warnings are informational.

Periodic checks are triggered externally (scheduler, cron, /cache/alerts).
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from rentcache.cache.keys import CacheKeys
from rentcache.config import settings
from rentcache.observability.metrics import get_metrics

if TYPE_CHECKING:
    from rentcache.cache.redis import CacheStore

logger = logging.getLogger(__name__)

FRAGMENTATION_LIMIT = 1.5
VERY_LOW_HIT_RATE = 50.0
MEMORY_WARNING_FACTOR = 0.7


@dataclass
class CacheHealthSnapshot:
    """Point-in-time store metrics."""

    connected: bool = False
    uptime: int = 0

    memory_used: int = 0
    memory_used_human: str = "0B"
    memory_peak: int = 0
    memory_max: int = 0
    memory_fragmentation_ratio: float = 0.0

    total_commands: int = 0
    instantaneous_ops_per_sec: int = 0
    hit_rate: float = 0.0
    miss_rate: float = 0.0
    keyspace_hits: int = 0
    keyspace_misses: int = 0

    total_keys: int = 0
    expired_keys: int = 0
    evicted_keys: int = 0

    connected_clients: int = 0
    blocked_clients: int = 0
    rejected_connections: int = 0

    last_save_time: int = 0
    changes_since_last_save: int = 0

    total_errors: int = 0
    error_rate: float = 0.0
    # Time taken to collect this snapshot
    response_time_ms: float = 0.0

    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class AlertThresholds:
    """Runtime-adjustable alert thresholds."""

    memory_usage_percent: float = 80.0  # alert above
    hit_rate_percent: float = 70.0  # alert below
    error_rate_percent: float = 5.0  # alert above
    response_time_ms: float = 100.0  # alert above
    connection_count: int = 100  # alert above
    eviction_rate: float = 10.0  # evicted keys per minute, alert above

    @classmethod
    def from_settings(cls) -> "AlertThresholds":
        return cls(
            memory_usage_percent=settings.monitor_memory_usage_percent,
            hit_rate_percent=settings.monitor_hit_rate_percent,
            error_rate_percent=settings.monitor_error_rate_percent,
            response_time_ms=settings.monitor_response_time_ms,
            connection_count=settings.monitor_connection_count,
            eviction_rate=settings.monitor_eviction_rate,
        )

    def to_dict(self) -> dict[str, float]:
        return dataclasses.asdict(self)


@dataclass
class HealthCheckResult:
    healthy: bool
    score: int
    issues: list[str]
    warnings: list[str]
    recommendations: list[str]
    metrics: CacheHealthSnapshot

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class Alert:
    type: Literal["error", "warning"]
    message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class PerformanceResult:
    """Average per-operation latencies (ms) and aggregate throughput."""

    set_latency: float
    get_latency: float
    del_latency: float
    throughput_ops_per_sec: float
    iterations: int = 0

    @property
    def succeeded(self) -> bool:
        return self.set_latency >= 0

    def grades(self) -> dict[str, str]:
        return {
            "set_performance": grade_latency(self.set_latency),
            "get_performance": grade_latency(self.get_latency),
            "del_performance": grade_latency(self.del_latency),
            "throughput_grade": grade_throughput(self.throughput_ops_per_sec),
        }

    def recommendations(self) -> list[str]:
        if not self.succeeded:
            return ["Cache store unavailable, performance test not run"]

        recommendations = []
        if self.set_latency > 10:
            recommendations.append(
                "SET operations are slow - check network latency and Redis memory"
            )
        if self.get_latency > 5:
            recommendations.append("GET operations are slow - verify Redis memory and CPU usage")
        if self.del_latency > 10:
            recommendations.append("DEL operations are slow - check for memory fragmentation")
        if self.throughput_ops_per_sec < 1000:
            recommendations.append(
                "Low throughput detected - consider Redis clustering or optimization"
            )
        if not recommendations:
            recommendations.append("Performance looks good! No immediate optimizations needed.")
        return recommendations


def grade_latency(latency_ms: float) -> str:
    if latency_ms < 0:
        return "Unavailable"
    if latency_ms < 1:
        return "Excellent"
    if latency_ms < 5:
        return "Good"
    if latency_ms < 10:
        return "Fair"
    if latency_ms < 50:
        return "Poor"
    return "Critical"


def grade_throughput(ops_per_sec: float) -> str:
    if ops_per_sec > 10000:
        return "Excellent"
    if ops_per_sec > 5000:
        return "Good"
    if ops_per_sec > 1000:
        return "Fair"
    if ops_per_sec > 100:
        return "Poor"
    return "Critical"


def format_uptime(seconds: int) -> str:
    """Format seconds as e.g. ``1d 2h 3m 4s``, dropping leading zero units."""
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h {minutes}m {secs}s"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _int(info: dict[str, Any], key: str) -> int:
    try:
        return int(info.get(key, 0))
    except (TypeError, ValueError):
        return 0


def _float(info: dict[str, Any], key: str) -> float:
    try:
        return float(info.get(key, 0.0))
    except (TypeError, ValueError):
        return 0.0


class CacheMonitor:
    """Health checks, alerts and benchmarks for a CacheStore."""

    def __init__(
        self,
        store: CacheStore,
        thresholds: AlertThresholds | None = None,
        memory_limit_bytes: int | None = None,
        history_size: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.thresholds = thresholds or AlertThresholds.from_settings()
        self.memory_limit_bytes = memory_limit_bytes or settings.monitor_memory_limit_bytes
        self._clock = clock
        self._last_snapshot: CacheHealthSnapshot | None = None
        self._alert_history: deque[Alert] = deque(
            maxlen=history_size or settings.monitor_alert_history_size
        )

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    async def get_metrics(self) -> CacheHealthSnapshot:
        """Read a fresh snapshot; a disconnected store yields a zeroed one."""
        if not self.store.is_available():
            return CacheHealthSnapshot(connected=False, timestamp=self._clock())

        start = time.perf_counter()
        memory, stats, clients, persistence, server, total_keys = await asyncio.gather(
            self.store.info("memory"),
            self.store.info("stats"),
            self.store.info("clients"),
            self.store.info("persistence"),
            self.store.info("server"),
            self.store.dbsize(),
        )
        response_time_ms = (time.perf_counter() - start) * 1000

        if not self.store.is_available() or not (memory or stats):
            return CacheHealthSnapshot(connected=False, timestamp=self._clock())

        hits = _int(stats, "keyspace_hits")
        misses = _int(stats, "keyspace_misses")
        lookups = hits + misses

        snapshot = CacheHealthSnapshot(
            connected=True,
            uptime=_int(server, "uptime_in_seconds"),
            memory_used=_int(memory, "used_memory"),
            memory_used_human=str(memory.get("used_memory_human", "0B")),
            memory_peak=_int(memory, "used_memory_peak"),
            memory_max=_int(memory, "maxmemory"),
            memory_fragmentation_ratio=_float(memory, "mem_fragmentation_ratio"),
            total_commands=_int(stats, "total_commands_processed"),
            instantaneous_ops_per_sec=_int(stats, "instantaneous_ops_per_sec"),
            hit_rate=hits / lookups * 100 if lookups else 0.0,
            miss_rate=misses / lookups * 100 if lookups else 0.0,
            keyspace_hits=hits,
            keyspace_misses=misses,
            total_keys=total_keys,
            expired_keys=_int(stats, "expired_keys"),
            evicted_keys=_int(stats, "evicted_keys"),
            connected_clients=_int(clients, "connected_clients"),
            blocked_clients=_int(clients, "blocked_clients"),
            rejected_connections=_int(stats, "rejected_connections"),
            last_save_time=_int(persistence, "rdb_last_save_time"),
            changes_since_last_save=_int(persistence, "rdb_changes_since_last_save"),
            total_errors=self.store.stats.errors,
            error_rate=self.store.stats.error_rate,
            response_time_ms=response_time_ms,
            timestamp=self._clock(),
        )
        self._last_snapshot = snapshot
        return snapshot

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    def _memory_usage_percent(self, snapshot: CacheHealthSnapshot) -> float:
        limit = snapshot.memory_max or self.memory_limit_bytes
        return snapshot.memory_used / limit * 100 if limit else 0.0

    async def health_check(self) -> HealthCheckResult:
        """Score the store from a fresh snapshot."""
        previous = self._last_snapshot
        metrics = await self.get_metrics()

        if not metrics.connected:
            get_metrics().cache_health_score.set(0)
            return HealthCheckResult(
                healthy=False,
                score=0,
                issues=["Redis connection failed"],
                warnings=[],
                recommendations=[
                    "Check Redis server status",
                    "Verify connection configuration",
                ],
                metrics=metrics,
            )

        t = self.thresholds
        issues: list[str] = []
        warnings: list[str] = []
        recommendations: list[str] = []
        score = 100

        memory_percent = self._memory_usage_percent(metrics)
        if memory_percent > t.memory_usage_percent:
            issues.append(f"High memory usage: {memory_percent:.1f}%")
            score -= 20
            recommendations.append(
                "Consider increasing memory limit or implementing better eviction policies"
            )
        elif memory_percent > t.memory_usage_percent * MEMORY_WARNING_FACTOR:
            warnings.append(f"Memory usage approaching limit: {memory_percent:.1f}%")
            score -= 5

        if metrics.hit_rate < t.hit_rate_percent:
            if metrics.hit_rate < VERY_LOW_HIT_RATE:
                issues.append(f"Very low cache hit rate: {metrics.hit_rate:.1f}%")
                score -= 25
            else:
                warnings.append(f"Low cache hit rate: {metrics.hit_rate:.1f}%")
                score -= 10
            recommendations.append("Review caching strategy and TTL values")

        if metrics.memory_fragmentation_ratio > FRAGMENTATION_LIMIT:
            warnings.append(
                f"High memory fragmentation: {metrics.memory_fragmentation_ratio:.2f}"
            )
            score -= 5
            recommendations.append("Consider Redis restart during maintenance window")

        if previous is not None and previous.connected:
            minutes = (metrics.timestamp - previous.timestamp) / 60
            if minutes > 0:
                eviction_rate = (metrics.evicted_keys - previous.evicted_keys) / minutes
                if eviction_rate > t.eviction_rate:
                    issues.append(f"High eviction rate: {eviction_rate:.1f} keys/min")
                    score -= 15
                    recommendations.append("Increase memory limit or review TTL settings")

        if metrics.connected_clients > t.connection_count:
            warnings.append(f"High connection count: {metrics.connected_clients}")
            score -= 5
            recommendations.append("Monitor connection pooling and cleanup")

        if metrics.rejected_connections > 0:
            issues.append(f"Rejected connections detected: {metrics.rejected_connections}")
            score -= 10

        # Informational only, no score impact
        if metrics.error_rate > t.error_rate_percent:
            warnings.append(f"High cache operation error rate: {metrics.error_rate:.1f}%")
        if metrics.response_time_ms > t.response_time_ms:
            warnings.append(f"Slow cache response: {metrics.response_time_ms:.1f}ms")

        score = max(0, score)
        get_metrics().cache_health_score.set(score)
        return HealthCheckResult(
            healthy=not issues,
            score=score,
            issues=issues,
            warnings=warnings,
            recommendations=recommendations,
            metrics=metrics,
        )

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    async def check_alerts(self) -> list[Alert]:
        """Run a health check and record its issues and warnings as alerts."""
        result = await self.health_check()
        now = self._clock()
        alerts = [Alert("error", issue, now) for issue in result.issues]
        alerts.extend(Alert("warning", warning, now) for warning in result.warnings)

        for alert in alerts:
            log = logger.error if alert.type == "error" else logger.warning
            log(f"Cache alert: {alert.message}")
        self._alert_history.extend(alerts)
        return alerts

    def get_alert_history(self) -> list[Alert]:
        return list(self._alert_history)

    def update_thresholds(self, **overrides: float) -> AlertThresholds:
        """Override some thresholds; unknown names or negative values raise ValueError."""
        known = {f.name for f in dataclasses.fields(AlertThresholds)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown alert thresholds: {', '.join(sorted(unknown))}")
        for name, value in overrides.items():
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                raise ValueError(f"Threshold {name} must be a non-negative number")

        self.thresholds = dataclasses.replace(self.thresholds, **overrides)
        logger.info(f"Alert thresholds updated: {overrides}")
        return self.thresholds

    def get_thresholds(self) -> AlertThresholds:
        return self.thresholds

    # -------------------------------------------------------------------------
    # Benchmark
    # -------------------------------------------------------------------------

    async def performance_test(self, iterations: int | None = None) -> PerformanceResult:
        """Time sequential SET, GET and DEL cycles on throwaway keys.

        Returns negative latencies and zero throughput when the store is
        unavailable or fails during the run.
        """
        unavailable = PerformanceResult(-1, -1, -1, 0)
        if not self.store.is_available():
            return unavailable

        n = iterations or settings.monitor_perf_iterations
        run_id = uuid.uuid4().hex[:12]
        keys = [CacheKeys.perf_test(run_id, i) for i in range(n)]
        value = {"test": "performance_test", "timestamp": self._clock()}
        # Fail-open calls never raise, so failures show as missing reads and deletes
        failures = 0

        start = time.perf_counter()
        for key in keys:
            await self.store.set(key, value, 60)
        set_done = time.perf_counter()
        for key in keys:
            if await self.store.get(key) != value:
                failures += 1
        get_done = time.perf_counter()
        for key in keys:
            if await self.store.delete(key) != 1:
                failures += 1
        end = time.perf_counter()

        if failures:
            logger.warning(f"Performance test failed: {failures} of {n * 2} checks failed")
            await self.store.delete(*keys)
            return unavailable

        total = end - start
        return PerformanceResult(
            set_latency=(set_done - start) * 1000 / n,
            get_latency=(get_done - set_done) * 1000 / n,
            del_latency=(end - get_done) * 1000 / n,
            throughput_ops_per_sec=n * 3 / total if total > 0 else 0.0,
            iterations=n,
        )
