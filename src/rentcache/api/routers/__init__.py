"""API routers for rentcache."""

from rentcache.api.routers import cache, health, metrics

__all__ = [
    "cache",
    "health",
    "metrics",
]
