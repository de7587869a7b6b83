"""Rate limiting middleware for rentcache.

Applies the global per-IP limit (burst and sustained windows together) with
the store-backed fixed-window RateLimiter. The limiter is read from
``app.state`` at request time so the middleware can be installed before the
lifespan has connected the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from rentcache.cache.rate_limiter import (
    BURST_PROTECTION,
    MultiWindowConfig,
    RateLimitConfig,
    RateLimiter,
    sanitize_ip,
)
from rentcache.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitMiddlewareConfig:
    """Middleware configuration."""

    windows: MultiWindowConfig = BURST_PROTECTION
    # Path prefixes to bypass (health checks, metrics)
    bypass_prefixes: list[str] = field(default_factory=lambda: ["/health", "/metrics"])
    # IPs to bypass (internal services)
    bypass_ips: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimitMiddlewareConfig":
        return cls(
            windows=MultiWindowConfig(
                short=RateLimitConfig(
                    window_ms=settings.rate_limit_burst_window_ms,
                    max_requests=settings.rate_limit_burst_requests,
                ),
                long=RateLimitConfig(
                    window_ms=settings.rate_limit_sustained_window_ms,
                    max_requests=settings.rate_limit_sustained_requests,
                ),
            )
        )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP rate limiting with standard rate limit headers.

    Requests are allowed without headers when no limiter is configured;
    a limiter whose store is down allows everything (fail open).
    """

    def __init__(self, app: ASGIApp, config: RateLimitMiddlewareConfig | None = None):
        super().__init__(app)
        self.config = config or RateLimitMiddlewareConfig()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if any(path.startswith(prefix) for prefix in self.config.bypass_prefixes):
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        if client_ip in self.config.bypass_ips:
            return await call_next(request)

        limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
        if limiter is None:
            return await call_next(request)

        result = await limiter.check_multi_window(
            f"ip:{sanitize_ip(client_ip)}", self.config.windows
        )
        headers = result.headers()

        if not result.allowed:
            logger.info(f"Rejecting request from {client_ip} to {path}: rate limit exceeded")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too Many Requests",
                    "message": "Rate limit exceeded. Please retry later.",
                    "retryAfter": result.retry_after,
                },
                headers=headers,
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP, handling proxies.

        Checks standard proxy headers in order of preference.
        """
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # First entry is the original client
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"
