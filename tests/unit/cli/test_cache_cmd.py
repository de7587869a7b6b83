"""Tests for the cache maintenance CLI."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from typer.testing import CliRunner

from rentcache.cache.filters import FilterSpecification
from rentcache.cache.redis import CacheStore
from rentcache.cache.search import SearchPagination, SearchResultCache
from rentcache.cli import app, cache_cmd
from tests.unit.fake_redis import FakeRedis

runner = CliRunner()


@pytest.fixture(autouse=True)
def use_store(store: CacheStore, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cache_cmd, "create_store", lambda: store)


@pytest.fixture
def seeded(search_cache: SearchResultCache) -> None:
    asyncio.run(
        search_cache.cache_search(
            FilterSpecification(query="villa"),
            [{"id": "p1"}, {"id": "p2"}],
            SearchPagination.from_total(1, 20, 2),
        )
    )


class TestClear:
    """rentcache cache clear"""

    def test_clear_pattern(self, seeded, store: CacheStore) -> None:
        asyncio.run(store.set("rate_limit:ip:1.2.3.4:0", 1))
        result = runner.invoke(app, ["cache", "clear", "search:*"])
        assert result.exit_code == 0
        assert "Deleted 3 cache keys" in result.output
        assert "Total keys remaining: 1" in result.output

    def test_clear_nothing(self) -> None:
        result = runner.invoke(app, ["cache", "clear"])
        assert result.exit_code == 0
        assert "No keys found" in result.output

    def test_unreachable(self, fake_redis: FakeRedis) -> None:
        fake_redis.fail = RedisConnectionError("down")
        result = runner.invoke(app, ["cache", "clear"])
        assert result.exit_code == 1


class TestInspect:
    """rentcache cache inspect"""

    def test_inspect_search_keys(self, seeded) -> None:
        result = runner.invoke(app, ["cache", "inspect"])
        assert result.exit_code == 0
        assert "Results: 2" in result.output
        assert "Tagged search pages (1)" in result.output
        assert "Total: 3 keys" in result.output

    def test_inspect_limit(self, seeded) -> None:
        result = runner.invoke(app, ["cache", "inspect", "--limit", "1"])
        assert "Total: 1 keys" in result.output

    def test_inspect_empty(self) -> None:
        result = runner.invoke(app, ["cache", "inspect", "perf_test:*"])
        assert "No keys found" in result.output


class TestHealthAndBenchmark:
    """rentcache cache health / benchmark"""

    def test_health(self) -> None:
        result = runner.invoke(app, ["cache", "health"])
        assert result.exit_code == 0
        assert "Score: 100/100" in result.output

    def test_unhealthy_exit_code(self, fake_redis: FakeRedis) -> None:
        fake_redis.info_sections["stats"]["rejected_connections"] = 1
        result = runner.invoke(app, ["cache", "health"])
        assert result.exit_code == 1
        assert "[issue] Rejected connections detected: 1" in result.output

    def test_benchmark(self) -> None:
        result = runner.invoke(app, ["cache", "benchmark", "--iterations", "10"])
        assert result.exit_code == 0
        assert "Throughput:" in result.output
