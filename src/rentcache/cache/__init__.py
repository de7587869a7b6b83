"""Cache layer for rentcache.

Provides Redis caching with the cache-aside pattern:
- Deterministic cache keys derived from search filter specifications
- Search result pages cached with a short TTL
- Tag-based invalidation when listings change
- Fixed-window rate limiting on the same store
- Fail-open behavior whenever Redis is unavailable
"""

from rentcache.cache.filters import FilterSpecification
from rentcache.cache.invalidation import CacheInvalidator, InvalidationMessage, InvalidationType
from rentcache.cache.keys import CacheKeys, canonical_filter_record, derive_key
from rentcache.cache.rate_limiter import (
    BURST_PROTECTION,
    RATE_LIMITS,
    MultiWindowConfig,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
)
from rentcache.cache.redis import CacheStore, fail_open
from rentcache.cache.search import CachedSearchResult, SearchPagination, SearchResultCache

__all__ = [
    # Keys
    "CacheKeys",
    "FilterSpecification",
    "canonical_filter_record",
    "derive_key",
    # Store
    "CacheStore",
    "fail_open",
    # Search cache
    "CachedSearchResult",
    "SearchPagination",
    "SearchResultCache",
    # Invalidation
    "CacheInvalidator",
    "InvalidationMessage",
    "InvalidationType",
    # Rate limiting
    "BURST_PROTECTION",
    "RATE_LIMITS",
    "MultiWindowConfig",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimitResult",
]
