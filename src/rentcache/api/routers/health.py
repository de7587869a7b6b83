"""Health check endpoint for rentcache.

- /health - process liveness plus a ping of the cache store

The application keeps serving when Redis is down (every cache operation fails
open), so an unreachable store reports ``degraded`` rather than taking the
process out of rotation. A store that is disabled by configuration is not
checked at all.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rentcache.api.deps import get_store
from rentcache.cache.redis import CacheStore

router = APIRouter(tags=["health"])

PING_TIMEOUT = 5.0  # seconds


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def check_store(store: CacheStore) -> ComponentHealth:
    """Ping the cache store."""
    if not store.enabled:
        return ComponentHealth(
            name="redis",
            status=HealthStatus.HEALTHY,
            latency_ms=0.0,
            message="Caching disabled",
        )

    start = time.monotonic()
    try:
        healthy = await asyncio.wait_for(store.ping(), timeout=PING_TIMEOUT)
    except asyncio.TimeoutError:
        return ComponentHealth(
            name="redis",
            status=HealthStatus.DEGRADED,
            latency_ms=(time.monotonic() - start) * 1000,
            message="Redis check timed out",
        )

    return ComponentHealth(
        name="redis",
        status=HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED,
        latency_ms=(time.monotonic() - start) * 1000,
        message=None if healthy else "Redis unreachable, serving without cache",
    )


@router.get("/health")
async def health(store: CacheStore = Depends(get_store)) -> JSONResponse:
    """Health report for load balancers and orchestrators.

    Returns 200 when the store answers (or caching is disabled), 503 otherwise.
    """
    component = await check_store(store)
    status_code = 200 if component.status == HealthStatus.HEALTHY else 503
    return JSONResponse(
        content={
            "status": component.status.value,
            "checks": {component.name: component.to_dict()},
        },
        status_code=status_code,
    )
