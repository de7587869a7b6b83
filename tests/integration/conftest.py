"""Integration test fixtures using Docker.

Provides a containerized Redis server for realistic testing. Tests skip when
Docker is unavailable.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
import redis.asyncio as redis
from redis.exceptions import RedisError

from rentcache.cache.redis import CacheStore
from tests.integration.docker_utils import DockerService, get_docker_client, run_redis


def pytest_collection_modifyitems(items):
    """Mark everything in this directory as an integration test."""
    for item in items:
        if "integration" in item.path.parts:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def docker_client():
    """Create a Docker client or skip if Docker is unavailable."""
    pytest.importorskip("docker")
    try:
        client = get_docker_client()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")
    yield client
    client.close()


@pytest.fixture(scope="session")
def redis_container(docker_client) -> Iterator[DockerService]:
    """Start Redis container for the test session."""
    with run_redis(docker_client, "--maxmemory", "64mb") as service:
        yield service


@pytest.fixture(scope="session")
def redis_url(redis_container: DockerService) -> str:
    return redis_container.redis_url()


@pytest_asyncio.fixture
async def redis_client(redis_url: str) -> AsyncIterator[redis.Redis]:
    """Raw Redis client, flushed after each test."""
    client = redis.from_url(redis_url, decode_responses=True)
    await _wait_for_redis(client)
    yield client
    await client.flushdb()
    await client.aclose()


@pytest_asyncio.fixture
async def store(redis_url: str, redis_client: redis.Redis) -> AsyncIterator[CacheStore]:
    """Connected CacheStore against the container."""
    cache_store = CacheStore(redis_url)
    assert await cache_store.connect()
    yield cache_store
    await cache_store.close()


async def _wait_for_redis(client: redis.Redis, timeout: float = 30.0) -> None:
    """Wait for Redis to accept connections."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            await client.ping()
            return
        except (RedisError, OSError):
            if time.monotonic() >= deadline:
                raise
            await asyncio.sleep(0.5)
