"""FastAPI application factory for rentcache.

Creates the application with:
- Cache operations (/cache/*), health (/health) and metrics (/metrics) routers
- Lifecycle management for the Redis connection
- Correlation context and global per-IP rate limiting middleware
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from rentcache import __version__
from rentcache.api.middleware import CorrelationMiddleware, RateLimitMiddleware
from rentcache.api.middleware.rate_limit import RateLimitMiddlewareConfig
from rentcache.api.routers import cache, health
from rentcache.api.routers import metrics as metrics_router
from rentcache.cache.invalidation import CacheInvalidator
from rentcache.cache.rate_limiter import RateLimiter
from rentcache.cache.redis import CacheStore
from rentcache.cache.search import SearchResultCache
from rentcache.config import Settings
from rentcache.config import settings as default_settings
from rentcache.observability import configure_logging
from rentcache.observability.metrics import get_metrics
from rentcache.observability.monitor import CacheMonitor

logger = logging.getLogger(__name__)


def init_components(app: FastAPI, store: CacheStore) -> None:
    """Build the cache services around ``store`` and attach them to ``app.state``."""
    search_cache = SearchResultCache(store)
    app.state.store = store
    app.state.search_cache = search_cache
    app.state.rate_limiter = RateLimiter(store)
    app.state.monitor = CacheMonitor(store)
    app.state.invalidator = CacheInvalidator(search_cache)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Initialize Prometheus metrics
    - Connect to Redis (the app keeps running without it)

    On shutdown:
    - Close Redis connections
    """
    settings: Settings = app.state.settings
    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )
    get_metrics()

    logger.info(f"Starting rentcache ({settings.env})")
    store = getattr(app.state, "store", None)
    if store is None:
        store = CacheStore.from_settings(settings)
        init_components(app, store)
    await store.connect()
    logger.info("rentcache startup complete")

    yield

    logger.info("Shutting down rentcache")
    await store.close()
    logger.info("rentcache shutdown complete")


def create_app(settings: Settings | None = None, store: CacheStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``store`` lets tests and embedding applications supply a ready CacheStore;
    otherwise one is created from settings during startup.
    """
    settings = settings or default_settings
    app = FastAPI(
        title="rentcache",
        description="Search result caching, rate limiting and cache monitoring",
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.settings = settings
    if store is not None:
        init_components(app, store)

    # CorrelationMiddleware is added last so it wraps rate limiting and
    # rejected requests still carry a request id
    if settings.enable_rate_limiting:
        app.add_middleware(
            RateLimitMiddleware,
            config=RateLimitMiddlewareConfig.from_settings(settings),
        )
    app.add_middleware(CorrelationMiddleware)

    app.include_router(health.router)
    app.include_router(cache.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)

    return app
