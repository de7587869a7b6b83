"""Shared FastAPI dependencies for rentcache routers.

Components are created once by the application lifespan and stored on
``app.state``; these getters hand them to route handlers.
"""

from __future__ import annotations

from fastapi import Request

from rentcache.cache.invalidation import CacheInvalidator
from rentcache.cache.rate_limiter import RateLimiter
from rentcache.cache.redis import CacheStore
from rentcache.cache.search import SearchResultCache
from rentcache.observability.monitor import CacheMonitor


def get_store(request: Request) -> CacheStore:
    return request.app.state.store


def get_search_cache(request: Request) -> SearchResultCache:
    return request.app.state.search_cache


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_monitor(request: Request) -> CacheMonitor:
    return request.app.state.monitor


def get_invalidator(request: Request) -> CacheInvalidator:
    return request.app.state.invalidator
