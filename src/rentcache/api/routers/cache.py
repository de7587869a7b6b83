"""Cache operations API router.

- GET  /cache/metrics            - Store snapshot with derived figures
- GET  /cache/health             - Health score, issues and recommendations
- GET  /cache/alerts             - Run an alert check, with history and thresholds
- PUT  /cache/alerts/thresholds  - Adjust alert thresholds at runtime
- POST /cache/performance        - SET/GET/DEL benchmark with grades
- POST /cache/invalidate         - Apply a cache invalidation message
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rentcache.api.deps import get_invalidator, get_monitor
from rentcache.cache.invalidation import CacheInvalidator, InvalidationMessage, InvalidationType
from rentcache.observability.monitor import CacheMonitor, format_uptime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache", tags=["Cache"])

NO_CACHE = {"Cache-Control": "no-cache, no-store, must-revalidate"}
RECENT_ALERTS = 10
DAY_SECONDS = 24 * 60 * 60


class ThresholdUpdateRequest(BaseModel):
    """New values for some alert thresholds."""

    thresholds: dict[str, float] = Field(
        ..., description="Threshold name to new value, e.g. {'hit_rate_percent': 60}"
    )


class InvalidationRequest(BaseModel):
    """Cache invalidation request."""

    model_config = {"populate_by_name": True}

    type: InvalidationType
    product_id: str | None = Field(default=None, alias="productId")


@router.get("/metrics")
async def get_cache_metrics(monitor: CacheMonitor = Depends(get_monitor)) -> JSONResponse:
    """Current store metrics.

    Returns 503 when the store cannot be reached.
    """
    metrics = await monitor.get_metrics()
    if not metrics.connected:
        return JSONResponse(
            status_code=503,
            content={"error": "Unable to retrieve cache metrics", "connected": False},
            headers=NO_CACHE,
        )

    body = {
        "metrics": metrics.to_dict(),
        "performance": {
            "hitRate": f"{metrics.hit_rate:.2f}%",
            "missRate": f"{metrics.miss_rate:.2f}%",
            "opsPerSecond": metrics.instantaneous_ops_per_sec,
            "memoryEfficiency": {
                "used": metrics.memory_used_human,
                "fragmentation": f"{metrics.memory_fragmentation_ratio:.2f}",
            },
        },
        "connections": {
            "current": metrics.connected_clients,
            "blocked": metrics.blocked_clients,
            "rejected": metrics.rejected_connections,
        },
        "keys": {
            "total": metrics.total_keys,
            "expired": metrics.expired_keys,
            "evicted": metrics.evicted_keys,
        },
        "uptime": {
            "seconds": metrics.uptime,
            "formatted": format_uptime(metrics.uptime),
        },
    }
    return JSONResponse(
        content=body,
        headers={
            **NO_CACHE,
            "X-Cache-Connected": "true",
            "X-Cache-Hit-Rate": f"{metrics.hit_rate:.2f}",
        },
    )


@router.get("/health")
async def get_cache_health(monitor: CacheMonitor = Depends(get_monitor)) -> JSONResponse:
    """Scored health check of the store, 503 when unhealthy."""
    result = await monitor.health_check()
    return JSONResponse(
        status_code=200 if result.healthy else 503,
        content=result.to_dict(),
        headers={**NO_CACHE, "X-Cache-Health-Score": str(result.score)},
    )


@router.get("/alerts")
async def get_cache_alerts(monitor: CacheMonitor = Depends(get_monitor)) -> JSONResponse:
    """Check for alerts now and summarize the alert history."""
    current = await monitor.check_alerts()
    history = monitor.get_alert_history()
    now = time.time()

    errors = sum(1 for alert in current if alert.type == "error")
    if not current:
        status = "ok"
    elif errors:
        status = "critical"
    else:
        status = "warning"

    body = {
        "current": {
            "count": len(current),
            "errors": errors,
            "warnings": len(current) - errors,
            "alerts": [dataclasses.asdict(alert) for alert in current],
        },
        "history": {
            "total": len(history),
            "recent": [dataclasses.asdict(alert) for alert in history[-RECENT_ALERTS:]],
            "last24h": [
                dataclasses.asdict(alert)
                for alert in history
                if alert.timestamp > now - DAY_SECONDS
            ],
        },
        "thresholds": monitor.get_thresholds().to_dict(),
        "status": status,
        "timestamp": now,
    }
    return JSONResponse(
        content=body,
        headers={
            **NO_CACHE,
            "X-Alert-Count": str(len(current)),
            "X-Alert-Status": "ok" if not current else "alert",
        },
    )


@router.put("/alerts/thresholds")
async def update_alert_thresholds(
    request: ThresholdUpdateRequest,
    monitor: CacheMonitor = Depends(get_monitor),
) -> dict[str, Any]:
    """Update alert thresholds.

    Unknown threshold names or negative values are rejected with 400.
    """
    try:
        thresholds = monitor.update_thresholds(**request.thresholds)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return {
        "success": True,
        "message": "Alert thresholds updated",
        "newThresholds": thresholds.to_dict(),
    }


@router.post("/performance")
async def run_performance_test(
    iterations: int | None = Query(default=None, ge=1, le=10_000),
    monitor: CacheMonitor = Depends(get_monitor),
) -> JSONResponse:
    """Benchmark sequential SET, GET and DEL round trips against the store."""
    start = time.perf_counter()
    result = await monitor.performance_test(iterations)
    total_ms = round((time.perf_counter() - start) * 1000)

    if not result.succeeded:
        return JSONResponse(
            status_code=503,
            content={
                "error": "Performance test failed",
                "recommendations": result.recommendations(),
            },
            headers=NO_CACHE,
        )

    grades = result.grades()
    body = {
        "testResults": {
            "setLatencyMs": round(result.set_latency, 2),
            "getLatencyMs": round(result.get_latency, 2),
            "delLatencyMs": round(result.del_latency, 2),
            "throughputOpsPerSec": round(result.throughput_ops_per_sec),
            "totalTestTimeMs": total_ms,
        },
        "performance": {
            "setPerformance": grades["set_performance"],
            "getPerformance": grades["get_performance"],
            "delPerformance": grades["del_performance"],
            "throughputGrade": grades["throughput_grade"],
        },
        "benchmarks": {
            "excellent": {"latency": "< 1ms", "throughput": "> 10k ops/sec"},
            "good": {"latency": "< 5ms", "throughput": "> 5k ops/sec"},
            "fair": {"latency": "< 10ms", "throughput": "> 1k ops/sec"},
            "poor": {"latency": "< 50ms", "throughput": "> 100 ops/sec"},
        },
        "recommendations": result.recommendations(),
        "testConfig": {
            "iterations": result.iterations,
            "testPattern": "SET -> GET -> DEL",
        },
        "timestamp": time.time(),
    }
    return JSONResponse(
        content=body,
        headers={
            **NO_CACHE,
            "X-Test-Duration": str(total_ms),
            "X-Throughput": str(round(result.throughput_ops_per_sec)),
        },
    )


@router.post("/invalidate")
async def invalidate_cache(
    request: InvalidationRequest,
    invalidator: CacheInvalidator = Depends(get_invalidator),
) -> dict[str, Any]:
    """Apply an invalidation message; product-scoped types need a productId."""
    try:
        message = InvalidationMessage(type=request.type, product_id=request.product_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    deleted = await invalidator.handle(message)
    logger.info(f"Cache invalidation {message.type.value} removed {deleted} keys")
    return {
        "type": message.type.value,
        "productId": message.product_id,
        "deleted": deleted,
    }
