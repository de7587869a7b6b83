"""Observability module for rentcache.

Provides metrics, structured logging and cache store monitoring:
- Prometheus metrics
- JSON structured logging with request IDs
- Cache health snapshots, scoring, alerts and benchmarks
"""

from rentcache.observability.logging import configure_logging, request_id_var
from rentcache.observability.metrics import get_metrics, metrics_registry
from rentcache.observability.monitor import (
    Alert,
    AlertThresholds,
    CacheHealthSnapshot,
    CacheMonitor,
    HealthCheckResult,
    PerformanceResult,
)

__all__ = [
    # Logging
    "configure_logging",
    "request_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
    # Monitoring
    "Alert",
    "AlertThresholds",
    "CacheHealthSnapshot",
    "CacheMonitor",
    "HealthCheckResult",
    "PerformanceResult",
]
