"""Fixtures for API tests: the real app wired to the in-memory store."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from rentcache.api.app import create_app
from rentcache.cache.redis import CacheStore
from rentcache.config import settings


@pytest.fixture
def client(store: CacheStore) -> TestClient:
    """Client without the global rate limit."""
    app = create_app(
        settings=settings.model_copy(update={"enable_rate_limiting": False}),
        store=store,
    )
    return TestClient(app)
