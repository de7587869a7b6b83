"""rentcache - search result caching, rate limiting and cache monitoring for
a rental listings API, backed by Redis."""

__version__ = "0.1.0"
