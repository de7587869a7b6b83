"""In-memory stand-in for ``redis.asyncio.Redis`` used by unit tests.

Implements only the commands rentcache issues, with ``decode_responses=True``
semantics (values come back as ``str``) and expiry driven by a controllable
clock so TTL behavior can be tested without sleeping.
"""

from __future__ import annotations

import fnmatch
import math
from collections.abc import AsyncIterator
from typing import Any

from redis.exceptions import ResponseError

WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_699_999_980.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    """Queues commands and runs them against the fake on ``execute``."""

    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self._commands: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    async def __aenter__(self) -> FakePipeline:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._commands = []

    def __getattr__(self, name: str) -> Any:
        def queue(*args: Any, **kwargs: Any) -> FakePipeline:
            self._commands.append((name, args, kwargs))
            return self

        return queue

    async def execute(self) -> list[Any]:
        self._redis._check()
        results = []
        for name, args, kwargs in self._commands:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._commands = []
        return results


class FakeRedis:
    """Dictionary-backed async Redis double."""

    def __init__(self, clock: FakeClock | None = None):
        self.clock = clock or FakeClock()
        self.data: dict[str, Any] = {}
        self.expiry: dict[str, float] = {}
        # Set to an exception instance to make every command raise it
        self.fail: Exception | None = None
        self.closed = False
        self.info_sections: dict[str, dict[str, Any]] = {
            "memory": {
                "used_memory": 1_048_576,
                "used_memory_human": "1.00M",
                "used_memory_peak": 2_097_152,
                "maxmemory": 0,
                "mem_fragmentation_ratio": 1.1,
            },
            "stats": {
                "total_commands_processed": 1000,
                "instantaneous_ops_per_sec": 12,
                "keyspace_hits": 90,
                "keyspace_misses": 10,
                "expired_keys": 3,
                "evicted_keys": 0,
                "rejected_connections": 0,
            },
            "clients": {"connected_clients": 5, "blocked_clients": 0},
            "persistence": {"rdb_last_save_time": 1_699_999_000, "rdb_changes_since_last_save": 4},
            "server": {"uptime_in_seconds": 93_784, "redis_version": "7.2.4"},
        }

    # -- helpers --------------------------------------------------------------

    def _check(self) -> None:
        if self.fail is not None:
            raise self.fail

    def _purge(self, key: str) -> None:
        deadline = self.expiry.get(key)
        if deadline is not None and self.clock() >= deadline:
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    def _live_keys(self) -> list[str]:
        for key in list(self.data):
            self._purge(key)
        return list(self.data)

    # -- connection -----------------------------------------------------------

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self.closed = True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    # -- strings --------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        self._check()
        self._purge(key)
        value = self.data.get(key)
        if isinstance(value, set):
            raise ResponseError(WRONGTYPE)
        if isinstance(value, bytes):
            # Raw bytes planted by a test are decoded strictly, as redis-py does
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self._check()
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        self.data[key] = str(value)
        self.expiry.pop(key, None)
        if ex is not None:
            self.expiry[key] = self.clock() + ex
        return True

    async def incr(self, key: str) -> int:
        self._check()
        self._purge(key)
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def delete(self, *keys: str) -> int:
        self._check()
        deleted = 0
        for key in keys:
            self._purge(key)
            if key in self.data:
                del self.data[key]
                self.expiry.pop(key, None)
                deleted += 1
        return deleted

    # -- expiry ---------------------------------------------------------------

    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        self._check()
        self._purge(key)
        if key not in self.data:
            return False
        if nx and key in self.expiry:
            return False
        self.expiry[key] = self.clock() + seconds
        return True

    async def ttl(self, key: str) -> int:
        self._check()
        self._purge(key)
        if key not in self.data:
            return -2
        if key not in self.expiry:
            return -1
        return math.ceil(self.expiry[key] - self.clock())

    # -- sets -----------------------------------------------------------------

    async def sadd(self, key: str, *members: str) -> int:
        self._check()
        self._purge(key)
        current = self.data.setdefault(key, set())
        if not isinstance(current, set):
            raise ResponseError(WRONGTYPE)
        before = len(current)
        current.update(members)
        return len(current) - before

    async def smembers(self, key: str) -> set[str]:
        self._check()
        self._purge(key)
        value = self.data.get(key, set())
        if not isinstance(value, set):
            raise ResponseError(WRONGTYPE)
        return set(value)

    # -- keyspace -------------------------------------------------------------

    async def scan_iter(
        self, match: str | None = None, count: int | None = None
    ) -> AsyncIterator[str]:
        self._check()
        for key in sorted(self._live_keys()):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def dbsize(self) -> int:
        self._check()
        return len(self._live_keys())

    async def info(self, section: str | None = None) -> dict[str, Any]:
        self._check()
        if section is None:
            merged: dict[str, Any] = {}
            for values in self.info_sections.values():
                merged.update(values)
            return merged
        return dict(self.info_sections.get(section, {}))
