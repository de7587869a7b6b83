"""Unit test fixtures: an in-memory Redis double behind a real CacheStore."""

from __future__ import annotations

import pytest

from rentcache.cache.redis import CacheStore
from rentcache.cache.search import SearchResultCache
from tests.unit.fake_redis import FakeClock, FakeRedis


@pytest.fixture
def clock() -> FakeClock:
    """Clock shared by the fake Redis and the components under test."""
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def store(fake_redis: FakeRedis, clock: FakeClock) -> CacheStore:
    """Connected store backed by the fake."""
    return CacheStore(client=fake_redis, clock=clock)  # type: ignore[arg-type]


@pytest.fixture
def search_cache(store: CacheStore) -> SearchResultCache:
    return SearchResultCache(store, ttl=300, tag_ttl=900)
