"""Redis store client for rentcache.

Provides async Redis operations for the search cache, the rate limiter and the
cache monitor. Uses the redis-py async client for connection pooling.

The store is an optimization, never a correctness dependency: every operation
fails open. When Redis is disabled, not connected, or a command errors or
times out, the call is logged and returns a neutral default (a miss for reads,
success for writes) instead of raising.
"""

from __future__ import annotations

import asyncio
import builtins
import functools
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar, cast

import orjson
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from rentcache.observability.metrics import get_metrics

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from rentcache.config import Settings

logger = logging.getLogger(__name__)

STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)
CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)

# Default TTL (5 minutes)
DEFAULT_TTL = 300

# Keys per SCAN batch
SCAN_BATCH_SIZE = 100

T = TypeVar("T")


@dataclass
class StoreStats:
    """Operation counters for this client instance."""

    operations: int = 0
    errors: int = 0

    @property
    def error_rate(self) -> float:
        """Failed operations as a percentage of attempted ones."""
        if self.operations == 0:
            return 0.0
        return self.errors / self.operations * 100


def fail_open(
    default: Any = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Make a CacheStore coroutine method return ``default`` instead of failing.

    ``default`` may be a zero-argument callable (``list``, ``dict``) so each
    call gets a fresh mutable value.
    """

    def make_default() -> Any:
        return default() if callable(default) else default

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(self: CacheStore, *args: Any, **kwargs: Any) -> T:
            if not self.is_available():
                return cast(T, make_default())

            self.stats.operations += 1
            try:
                return await func(self, *args, **kwargs)
            except STORE_ERRORS as exc:
                self.stats.errors += 1
                get_metrics().store_errors_total.labels(operation=func.__name__).inc()
                logger.warning(f"Cache {func.__name__} failed, serving fail-open: {exc}")
                if isinstance(exc, CONNECTION_ERRORS):
                    self._mark_down()
                return cast(T, make_default())

        return wrapper

    return decorator


class CacheStore:
    """Thin async wrapper over a Redis client.

    The client is created lazily by ``connect()`` and released by ``close()``.
    Tests and embedding applications may pass a ready ``client`` instead.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        enabled: bool = True,
        client: Redis | None = None,
        connect_timeout: float = 10.0,
        operation_timeout: float = 2.0,
        max_connections: int = 50,
        retry_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.enabled = enabled
        self.client = client
        self.connect_timeout = connect_timeout
        self.operation_timeout = operation_timeout
        self.max_connections = max_connections
        self.retry_interval = retry_interval
        self.stats = StoreStats()
        self._clock = clock
        self._down_until = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheStore":
        """Create a store configured from application settings."""
        return cls(
            settings.redis_url,
            enabled=settings.cache_enabled,
            connect_timeout=settings.redis_connect_timeout,
            operation_timeout=settings.redis_operation_timeout,
            max_connections=settings.redis_max_connections,
            retry_interval=settings.redis_retry_interval,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """Create the connection pool and check the server answers.

        Returns False (and leaves the store in fail-open mode) when caching is
        disabled, no URL is configured, or the server cannot be reached.
        """
        if not self.enabled:
            logger.info("Redis cache is disabled, running without caching")
            return False

        if self.client is None:
            if not self.url:
                logger.warning("No Redis URL configured, running without caching")
                return False
            self.client = redis.from_url(  # type: ignore[no-untyped-call]
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.connect_timeout,
                socket_timeout=self.operation_timeout,
                max_connections=self.max_connections,
            )

        if await self.ping():
            logger.info("Redis connected")
            return True

        logger.warning("Redis connection failed, app will run without caching")
        return False

    async def close(self) -> None:
        """Close Redis connections."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    def is_available(self) -> bool:
        """Whether operations are currently sent to Redis."""
        return (
            self.enabled
            and self.client is not None
            and self._clock() >= self._down_until
        )

    @property
    def _redis(self) -> Redis:
        return cast("Redis", self.client)

    def _mark_down(self) -> None:
        self._down_until = self._clock() + self.retry_interval

    async def ping(self) -> bool:
        """Check Redis connectivity, re-enabling the store on success."""
        if not self.enabled or self.client is None:
            return False
        try:
            await cast(Awaitable[bool], self.client.ping())
        except STORE_ERRORS as exc:
            logger.warning(f"Redis ping failed: {exc}")
            self._mark_down()
            return False
        self._down_until = 0.0
        return True

    # -------------------------------------------------------------------------
    # Key/value operations
    # -------------------------------------------------------------------------

    @fail_open(default=None)
    async def get(self, key: str) -> Any:
        """Get a JSON value, or None on a miss.

        A stored value that is not valid UTF-8 or not valid JSON is reported as
        a miss.
        """
        try:
            raw = await self._redis.get(key)
        except UnicodeDecodeError:
            logger.warning(f"Discarding undecodable cache value for key {key}")
            return None
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Discarding malformed cache value for key {key}")
            return None

    @fail_open(default=True)
    async def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool:
        """Store a JSON-serializable value with a TTL in seconds."""
        await self._redis.set(key, orjson.dumps(value), ex=ttl)
        return True

    @fail_open(default=0)
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        if not keys:
            return 0
        return int(await self._redis.delete(*keys))

    @fail_open(default=-2)
    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-1 no expiry, -2 missing)."""
        return int(await self._redis.ttl(key))

    # -------------------------------------------------------------------------
    # Pipelines and counters
    # -------------------------------------------------------------------------

    @fail_open(default=list)
    async def pipeline(self, ops: Sequence[tuple[Any, ...]]) -> list[Any]:
        """Run commands in one MULTI/EXEC transaction.

        Each op is ``(method_name, *args)`` using redis-py method names, for
        example ``("incr", key)`` or ``("expire", key, 60)``.
        """
        async with self._redis.pipeline(transaction=True) as pipe:
            for name, *args in ops:
                getattr(pipe, name)(*args)
            return cast(list[Any], await pipe.execute())

    @fail_open(default=None)
    async def incr_with_expiry(self, key: str, ttl: int) -> int | None:
        """Atomically increment a counter, setting its TTL on creation only.

        Returns None when the store is unavailable.
        """
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl, nx=True)
            count, _ = await pipe.execute()
        return int(count)

    @fail_open(default=None)
    async def get_int(self, key: str) -> int | None:
        """Read an integer counter, None when missing or not an integer."""
        try:
            raw = await self._redis.get(key)
            return int(raw) if raw is not None else None
        except ValueError:
            logger.warning(f"Discarding non-integer counter value for key {key}")
            return None

    # -------------------------------------------------------------------------
    # Sets (used for product tags)
    # -------------------------------------------------------------------------

    @fail_open(default=True)
    async def add_to_sets(self, keys: Iterable[str], member: str, ttl: int) -> bool:
        """Add ``member`` to every set in ``keys`` and refresh their TTL."""
        async with self._redis.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.sadd(key, member)
                pipe.expire(key, ttl)
            await pipe.execute()
        return True

    @fail_open(default=builtins.set)
    async def members(self, key: str) -> set[str]:
        """Members of a set."""
        return set(await cast(Awaitable[set[str]], self._redis.smembers(key)))

    # -------------------------------------------------------------------------
    # Keyspace scans
    # -------------------------------------------------------------------------

    @fail_open(default=list)
    async def scan_keys(self, pattern: str, limit: int | None = None) -> list[str]:
        """List keys matching a pattern using SCAN."""
        keys: list[str] = []
        async for key in self._redis.scan_iter(match=pattern, count=SCAN_BATCH_SIZE):
            keys.append(key)
            if limit is not None and len(keys) >= limit:
                break
        return keys

    @fail_open(default=0)
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a pattern.

        Uses SCAN to avoid blocking on large keyspaces.
        """
        deleted = 0
        batch: list[str] = []
        async for key in self._redis.scan_iter(match=pattern, count=SCAN_BATCH_SIZE):
            batch.append(key)
            if len(batch) >= SCAN_BATCH_SIZE:
                deleted += int(await self._redis.delete(*batch))
                batch = []
        if batch:
            deleted += int(await self._redis.delete(*batch))
        return deleted

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @fail_open(default=dict)
    async def info(self, section: str | None = None) -> dict[str, Any]:
        """Parsed INFO output for one section (or the default sections)."""
        if section is None:
            return cast(dict[str, Any], await self._redis.info())
        return cast(dict[str, Any], await self._redis.info(section))

    @fail_open(default=0)
    async def dbsize(self) -> int:
        """Number of keys in the current database."""
        return int(await self._redis.dbsize())
