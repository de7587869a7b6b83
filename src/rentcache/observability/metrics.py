"""Prometheus metrics for rentcache.

Provides metrics collection and exposure:
- Search cache metrics (hits, misses, writes, invalidations)
- Store metrics (operation errors)
- Rate limiter decisions
- Store health score from the cache monitor

Usage:
    from rentcache.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.cache_hits_total.labels(cache_type="search").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from rentcache.config import settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def set(self, value: float) -> None:
        pass

    def observe(self, value: float) -> None:
        pass


_NOOP = NoOpMetric()


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # Search cache metrics
    cache_hits_total: Any = _NOOP
    cache_misses_total: Any = _NOOP
    cache_writes_total: Any = _NOOP
    cache_invalidations_total: Any = _NOOP

    # Store metrics
    store_errors_total: Any = _NOOP

    # Rate limiter
    rate_limit_decisions_total: Any = _NOOP

    # Monitor
    cache_health_score: Any = _NOOP

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        from prometheus_client import REGISTRY, Counter, Gauge

        self._registry = REGISTRY

        self.cache_hits_total = Counter(
            "rentcache_cache_hits_total",
            "Cache hits",
            ["cache_type"],
        )
        self.cache_misses_total = Counter(
            "rentcache_cache_misses_total",
            "Cache misses",
            ["cache_type"],
        )
        self.cache_writes_total = Counter(
            "rentcache_cache_writes_total",
            "Cache writes",
            ["cache_type"],
        )
        self.cache_invalidations_total = Counter(
            "rentcache_cache_invalidations_total",
            "Cache keys removed by invalidation",
            ["reason"],
        )
        self.store_errors_total = Counter(
            "rentcache_store_errors_total",
            "Failed cache store operations (served fail-open)",
            ["operation"],
        )
        self.rate_limit_decisions_total = Counter(
            "rentcache_rate_limit_decisions_total",
            "Rate limiter decisions",
            ["scope", "allowed"],
        )
        self.cache_health_score = Gauge(
            "rentcache_cache_health_score",
            "Health score of the cache store (0-100)",
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"

        from prometheus_client import generate_latest

        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry
