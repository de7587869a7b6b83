"""Integration tests for rate limiting."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.asyncio import Redis

from rentcache.api.middleware.rate_limit import RateLimitMiddleware, RateLimitMiddlewareConfig
from rentcache.cache.rate_limiter import MultiWindowConfig, RateLimitConfig, RateLimiter
from rentcache.cache.redis import CacheStore


@pytest.mark.asyncio
async def test_limit_enforced(store: CacheStore, redis_client: Redis) -> None:
    """Counters live in Redis with the window TTL."""
    limiter = RateLimiter(store)
    config = RateLimitConfig(window_ms=60_000, max_requests=2)

    results = [await limiter.check_ip("10.0.0.1", config) for _ in range(3)]

    assert [r.allowed for r in results] == [True, True, False]
    keys = [key async for key in redis_client.scan_iter(match="rate_limit:ip:10.0.0.1:*")]
    assert len(keys) == 1
    assert 0 < await redis_client.ttl(keys[0]) <= 60


@pytest.mark.asyncio
async def test_middleware_enforced(store: CacheStore) -> None:
    """Requests beyond the burst window return 429."""
    app = FastAPI()
    app.state.rate_limiter = RateLimiter(store)
    app.add_middleware(
        RateLimitMiddleware,
        config=RateLimitMiddlewareConfig(
            windows=MultiWindowConfig(
                short=RateLimitConfig(window_ms=60_000, max_requests=2),
                long=RateLimitConfig(window_ms=3_600_000, max_requests=100),
            ),
            bypass_prefixes=[],
        ),
    )

    @app.get("/limited")
    async def limited() -> dict[str, str]:
        return {"ok": "true"}

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        resp1 = await client.get("/limited")
        resp2 = await client.get("/limited")
        resp3 = await client.get("/limited")

    assert resp1.status_code == 200
    assert resp2.status_code == 200
    assert resp3.status_code == 429
    assert resp2.headers["X-RateLimit-Remaining"] == "0"
    assert "Retry-After" in resp3.headers
