"""Middleware for the rentcache API.

- Correlation context (request ids in logs and response headers)
- Global per-IP rate limiting backed by the shared store
"""

from rentcache.api.middleware.correlation import CorrelationMiddleware
from rentcache.api.middleware.rate_limit import RateLimitMiddleware

__all__ = [
    "CorrelationMiddleware",
    "RateLimitMiddleware",
]
