"""Redis-backed fixed-window rate limiting.

Counters live in the shared store so limits hold across every server
instance. Each window gets its own key, rate_limit:{identifier}:{window_start},
incremented and given its expiry in one MULTI/EXEC transaction; counters are
never decremented, a new window simply starts a new key.

When the store is unavailable the limiter fails open and allows the request.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from rentcache.cache.keys import CacheKeys
from rentcache.cache.redis import CacheStore
from rentcache.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

_IP_UNSAFE = re.compile(r"[^0-9a-f.:]")
_SCOPES = ("ip", "user", "endpoint")


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting configuration."""

    # Window duration in milliseconds
    window_ms: int
    # Maximum requests per window
    max_requests: int

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if self.max_requests < 0:
            raise ValueError("max_requests must not be negative")

    @property
    def ttl_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)


@dataclass(frozen=True)
class MultiWindowConfig:
    """Burst (short) and sustained (long) limits evaluated together."""

    short: RateLimitConfig
    long: RateLimitConfig


@dataclass
class RateLimitResult:
    """Outcome of one rate limit check."""

    allowed: bool
    remaining: int
    # Epoch milliseconds at which the current window ends
    reset_time: int
    total: int
    # Seconds to wait before retrying, set only when rejected
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        """Standard rate limit response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.total),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_time / 1000)),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


@dataclass
class RateLimitStats:
    """Current counter state of an identifier."""

    current_count: int
    reset_time: int
    window_start: int


def sanitize_ip(ip: str) -> str:
    """Strip everything but hex digits, dots and colons from an address."""
    return _IP_UNSAFE.sub("", ip.lower()) or "unknown"


class RateLimiter:
    """Fixed-window rate limiter over CacheStore."""

    def __init__(self, store: CacheStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def _window_start(now_ms: int, window_ms: int) -> int:
        return now_ms // window_ms * window_ms

    def _allow(self, config: RateLimitConfig, now_ms: int) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            remaining=config.max_requests,
            reset_time=now_ms + config.window_ms,
            total=config.max_requests,
        )

    async def check_limit(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Count a request for ``identifier`` and decide whether it is allowed."""
        now = self._now_ms()
        if not self.store.is_available():
            return self._allow(config, now)

        window_start = self._window_start(now, config.window_ms)
        key = CacheKeys.rate_limit(identifier, window_start)
        count = await self.store.incr_with_expiry(key, config.ttl_seconds)
        if count is None:
            logger.warning(f"Rate limit check for {identifier} failed open")
            return self._allow(config, now)

        reset_time = window_start + config.window_ms
        allowed = count <= config.max_requests
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, config.max_requests - count),
            reset_time=reset_time,
            total=config.max_requests,
            retry_after=None if allowed else math.ceil((reset_time - now) / 1000),
        )

        scope = identifier.split(":", 1)[0]
        get_metrics().rate_limit_decisions_total.labels(
            scope=scope if scope in _SCOPES else "custom",
            allowed=str(allowed).lower(),
        ).inc()
        if not allowed:
            logger.info(f"Rate limit exceeded for {identifier} ({count}/{config.max_requests})")
        return result

    async def check_multi_window(
        self, identifier: str, configs: MultiWindowConfig
    ) -> RateLimitResult:
        """Check burst and sustained windows, returning the more restrictive result.

        The two windows count under distinct identifiers so that window starts
        which coincide never share a counter.
        """
        short_result, long_result = await asyncio.gather(
            self.check_limit(f"{identifier}:short", configs.short),
            self.check_limit(f"{identifier}:long", configs.long),
        )

        if not short_result.allowed:
            return short_result
        if not long_result.allowed:
            return long_result

        return RateLimitResult(
            allowed=True,
            remaining=min(short_result.remaining, long_result.remaining),
            reset_time=min(short_result.reset_time, long_result.reset_time),
            total=min(short_result.total, long_result.total),
        )

    async def check_ip(self, ip: str, config: RateLimitConfig) -> RateLimitResult:
        """IP-based rate limiting."""
        return await self.check_limit(f"ip:{sanitize_ip(ip)}", config)

    async def check_user(self, user_id: str, config: RateLimitConfig) -> RateLimitResult:
        """User-based rate limiting."""
        return await self.check_limit(f"user:{user_id}", config)

    async def check_endpoint(
        self, endpoint: str, identifier: str, config: RateLimitConfig
    ) -> RateLimitResult:
        """Per-endpoint rate limiting for one caller."""
        return await self.check_limit(f"endpoint:{endpoint}:{identifier}", config)

    async def reset(self, identifier: str, window_ms: int) -> None:
        """Clear the current window's counter for an identifier."""
        window_start = self._window_start(self._now_ms(), window_ms)
        await self.store.delete(CacheKeys.rate_limit(identifier, window_start))

    async def get_stats(self, identifier: str, window_ms: int) -> RateLimitStats | None:
        """Current window counter for an identifier, None when the store is down."""
        if not self.store.is_available():
            return None

        window_start = self._window_start(self._now_ms(), window_ms)
        count = await self.store.get_int(CacheKeys.rate_limit(identifier, window_start))
        return RateLimitStats(
            current_count=count or 0,
            reset_time=window_start + window_ms,
            window_start=window_start,
        )


# -----------------------------------------------------------------------------
# Predefined limits
# -----------------------------------------------------------------------------

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

RATE_LIMITS: dict[str, RateLimitConfig] = {
    # API endpoints
    "search_api": RateLimitConfig(window_ms=MINUTE_MS, max_requests=30),
    "product_details": RateLimitConfig(window_ms=MINUTE_MS, max_requests=60),
    "booking_api": RateLimitConfig(window_ms=MINUTE_MS, max_requests=10),
    # Authentication
    "login_attempts": RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=5),
    "password_reset": RateLimitConfig(window_ms=HOUR_MS, max_requests=3),
    # User actions
    "favorites": RateLimitConfig(window_ms=MINUTE_MS, max_requests=20),
    "contact_form": RateLimitConfig(window_ms=HOUR_MS, max_requests=5),
    # Admin
    "admin_actions": RateLimitConfig(window_ms=MINUTE_MS, max_requests=100),
    # Per IP across the whole API
    "global_api": RateLimitConfig(window_ms=MINUTE_MS, max_requests=200),
}

BURST_PROTECTION = MultiWindowConfig(
    short=RateLimitConfig(window_ms=10 * 1000, max_requests=20),
    long=RateLimitConfig(window_ms=HOUR_MS, max_requests=1000),
)
