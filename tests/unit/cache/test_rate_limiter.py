"""Tests for the fixed-window rate limiter."""

import pytest

from rentcache.cache.rate_limiter import (
    BURST_PROTECTION,
    RATE_LIMITS,
    MultiWindowConfig,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    sanitize_ip,
)
from rentcache.cache.redis import CacheStore
from tests.unit.fake_redis import FakeClock

FIVE_PER_MINUTE = RateLimitConfig(window_ms=60_000, max_requests=5)


@pytest.fixture
def limiter(store: CacheStore, clock: FakeClock) -> RateLimiter:
    return RateLimiter(store, clock=clock)


class TestRateLimitConfig:
    """Configuration validation."""

    def test_ttl_rounds_up(self) -> None:
        assert RateLimitConfig(window_ms=1500, max_requests=1).ttl_seconds == 2

    def test_invalid_window(self) -> None:
        with pytest.raises(ValueError):
            RateLimitConfig(window_ms=0, max_requests=1)

    def test_negative_max_requests(self) -> None:
        with pytest.raises(ValueError):
            RateLimitConfig(window_ms=1000, max_requests=-1)

    def test_presets(self) -> None:
        assert RATE_LIMITS["search_api"] == RateLimitConfig(window_ms=60_000, max_requests=30)
        assert RATE_LIMITS["login_attempts"].window_ms == 15 * 60_000
        assert BURST_PROTECTION.short.max_requests == 20
        assert BURST_PROTECTION.long.window_ms == 3_600_000


class TestCheckLimit:
    """Single window counting."""

    @pytest.mark.asyncio
    async def test_window_boundary(self, limiter: RateLimiter) -> None:
        """Five requests pass with decreasing remaining, the sixth is rejected."""
        remaining = []
        for _ in range(5):
            result = await limiter.check_limit("ip:1.2.3.4", FIVE_PER_MINUTE)
            assert result.allowed is True
            assert result.retry_after is None
            remaining.append(result.remaining)
        assert remaining == [4, 3, 2, 1, 0]

        rejected = await limiter.check_limit("ip:1.2.3.4", FIVE_PER_MINUTE)
        assert rejected.allowed is False
        assert rejected.remaining == 0
        assert rejected.retry_after is not None and rejected.retry_after > 0

    @pytest.mark.asyncio
    async def test_retry_after_counts_to_window_end(
        self, limiter: RateLimiter, clock: FakeClock
    ) -> None:
        config = RateLimitConfig(window_ms=60_000, max_requests=1)
        await limiter.check_limit("user:42", config)
        clock.advance(15)
        result = await limiter.check_limit("user:42", config)
        assert result.retry_after == 45
        assert result.reset_time == int(clock() * 1000) + 45_000

    @pytest.mark.asyncio
    async def test_window_reset(self, limiter: RateLimiter, clock: FakeClock) -> None:
        """A new window starts a fresh counter."""
        for _ in range(6):
            await limiter.check_limit("ip:1.2.3.4", FIVE_PER_MINUTE)

        clock.advance(60)
        result = await limiter.check_limit("ip:1.2.3.4", FIVE_PER_MINUTE)
        assert result.allowed is True
        assert result.remaining == 4

    @pytest.mark.asyncio
    async def test_identifiers_are_independent(self, limiter: RateLimiter) -> None:
        for _ in range(5):
            await limiter.check_limit("ip:1.1.1.1", FIVE_PER_MINUTE)
        result = await limiter.check_limit("ip:2.2.2.2", FIVE_PER_MINUTE)
        assert result.remaining == 4

    @pytest.mark.asyncio
    async def test_counter_expires(
        self, limiter: RateLimiter, store: CacheStore, clock: FakeClock
    ) -> None:
        await limiter.check_limit("ip:1.2.3.4", FIVE_PER_MINUTE)
        keys = await store.scan_keys("rate_limit:*")
        assert len(keys) == 1
        assert await store.ttl(keys[0]) == 60

    @pytest.mark.asyncio
    async def test_zero_limit_rejects(self, limiter: RateLimiter) -> None:
        result = await limiter.check_limit("x", RateLimitConfig(window_ms=1000, max_requests=0))
        assert result.allowed is False

    @pytest.mark.asyncio
    async def test_fail_open_when_store_down(self, clock: FakeClock) -> None:
        """An unreachable store allows every request with the full quota."""
        limiter = RateLimiter(CacheStore(enabled=False), clock=clock)
        for _ in range(10):
            result = await limiter.check_limit("ip:1.2.3.4", FIVE_PER_MINUTE)
            assert result.allowed is True
            assert result.remaining == 5


class TestMultiWindow:
    """Burst and sustained windows together."""

    @pytest.mark.asyncio
    async def test_short_window_exhausted(self, limiter: RateLimiter) -> None:
        configs = MultiWindowConfig(
            short=RateLimitConfig(window_ms=10_000, max_requests=2),
            long=RateLimitConfig(window_ms=3_600_000, max_requests=100),
        )
        await limiter.check_multi_window("ip:1.2.3.4", configs)
        second = await limiter.check_multi_window("ip:1.2.3.4", configs)
        assert second.allowed is True
        assert second.remaining == 0

        third = await limiter.check_multi_window("ip:1.2.3.4", configs)
        assert third.allowed is False
        assert third.total == 2

    @pytest.mark.asyncio
    async def test_long_window_exhausted(self, limiter: RateLimiter, clock: FakeClock) -> None:
        configs = MultiWindowConfig(
            short=RateLimitConfig(window_ms=10_000, max_requests=5),
            long=RateLimitConfig(window_ms=3_600_000, max_requests=3),
        )
        for _ in range(3):
            await limiter.check_multi_window("ip:1.2.3.4", configs)
            clock.advance(10)

        result = await limiter.check_multi_window("ip:1.2.3.4", configs)
        assert result.allowed is False
        assert result.total == 3

    @pytest.mark.asyncio
    async def test_windows_count_separately(self, limiter: RateLimiter) -> None:
        """Windows with the same start time never share a counter."""
        configs = MultiWindowConfig(
            short=RateLimitConfig(window_ms=60_000, max_requests=10),
            long=RateLimitConfig(window_ms=60_000, max_requests=10),
        )
        result = await limiter.check_multi_window("ip:1.2.3.4", configs)
        assert result.remaining == 9


class TestHelpers:
    """Scoped checks, reset and stats."""

    @pytest.mark.asyncio
    async def test_check_ip_sanitizes(self, limiter: RateLimiter, store: CacheStore) -> None:
        await limiter.check_ip("10.0.0.1; DROP", FIVE_PER_MINUTE)
        keys = await store.scan_keys("rate_limit:*")
        assert keys[0].startswith("rate_limit:ip:10.0.0.1d:")

    @pytest.mark.asyncio
    async def test_check_user_and_endpoint(self, limiter: RateLimiter, store: CacheStore) -> None:
        await limiter.check_user("42", FIVE_PER_MINUTE)
        await limiter.check_endpoint("search", "ip:1.2.3.4", FIVE_PER_MINUTE)
        keys = sorted(await store.scan_keys("rate_limit:*"))
        assert keys[0].startswith("rate_limit:endpoint:search:ip:1.2.3.4:")
        assert keys[1].startswith("rate_limit:user:42:")

    @pytest.mark.asyncio
    async def test_reset(self, limiter: RateLimiter) -> None:
        for _ in range(5):
            await limiter.check_limit("user:1", FIVE_PER_MINUTE)
        await limiter.reset("user:1", FIVE_PER_MINUTE.window_ms)
        result = await limiter.check_limit("user:1", FIVE_PER_MINUTE)
        assert result.remaining == 4

    @pytest.mark.asyncio
    async def test_get_stats(self, limiter: RateLimiter, clock: FakeClock) -> None:
        await limiter.check_limit("user:1", FIVE_PER_MINUTE)
        await limiter.check_limit("user:1", FIVE_PER_MINUTE)
        stats = await limiter.get_stats("user:1", FIVE_PER_MINUTE.window_ms)
        assert stats is not None
        assert stats.current_count == 2
        assert stats.window_start == int(clock() * 1000)
        assert stats.reset_time == stats.window_start + 60_000

    @pytest.mark.asyncio
    async def test_get_stats_store_down(self, clock: FakeClock) -> None:
        limiter = RateLimiter(CacheStore(enabled=False), clock=clock)
        assert await limiter.get_stats("user:1", 60_000) is None

    def test_sanitize_ip(self) -> None:
        assert sanitize_ip("2001:DB8::1") == "2001:db8::1"
        assert sanitize_ip("<script>") == "c"
        assert sanitize_ip("???") == "unknown"

    def test_result_headers(self) -> None:
        result = RateLimitResult(
            allowed=False, remaining=0, reset_time=1_700_000_060_000, total=5, retry_after=12
        )
        assert result.headers() == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": "1700000060",
            "Retry-After": "12",
        }
