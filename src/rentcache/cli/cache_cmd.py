"""CLI commands for cache maintenance.

Usage:
    rentcache cache clear                # every key
    rentcache cache clear "search:*"     # search pages and tags only
    rentcache cache inspect "search:*" --limit 5
    rentcache cache health
    rentcache cache benchmark --iterations 500

The store is configured from the same settings as the server (REDIS_URL...).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from rentcache.cache.keys import CacheKeys
from rentcache.cache.redis import CacheStore
from rentcache.config import settings
from rentcache.observability.monitor import CacheMonitor

app = typer.Typer(help="Inspect and maintain the Redis cache", no_args_is_help=True)

T = TypeVar("T")


def create_store() -> CacheStore:
    """Store used by the commands."""
    return CacheStore.from_settings(settings)


def _run(action: Callable[[CacheStore], Awaitable[T]]) -> T:
    """Connect, run ``action`` and close, exiting with 1 when Redis is unreachable."""

    async def runner() -> T:
        store = create_store()
        try:
            typer.echo("Connecting to Redis...")
            if not await store.connect():
                typer.echo("Error: Redis is not reachable (check REDIS_URL)", err=True)
                raise typer.Exit(code=1)
            return await action(store)
        finally:
            await store.close()

    return asyncio.run(runner())


@app.command("clear")
def clear(
    pattern: str = typer.Argument("*", help="Key pattern (SCAN MATCH syntax)"),
) -> None:
    """Delete every key matching PATTERN."""

    async def action(store: CacheStore) -> None:
        typer.echo(f"Deleting keys matching pattern: {pattern}")
        deleted = await store.delete_pattern(pattern)
        if deleted:
            typer.echo(f"Deleted {deleted} cache keys")
        else:
            typer.echo("No keys found matching pattern")

        memory = await store.info("memory")
        typer.echo(f"  Memory used: {memory.get('used_memory_human', 'unknown')}")
        typer.echo(f"  Total keys remaining: {await store.dbsize()}")

    _run(action)


@app.command("inspect")
def inspect(
    pattern: str = typer.Argument(CacheKeys.search_pattern(), help="Key pattern"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum keys to show"),
) -> None:
    """Show keys matching PATTERN with their TTL and content."""

    async def action(store: CacheStore) -> None:
        keys = sorted(await store.scan_keys(pattern, limit=limit))
        if not keys:
            typer.echo(f"No keys found matching pattern: {pattern}")
            return

        for index, key in enumerate(keys, start=1):
            typer.echo("=" * 80)
            typer.echo(f"Key {index}: {key}")
            typer.echo(f"  TTL: {await store.ttl(key)}s")

            parsed = CacheKeys.parse_key(key) or {}
            if parsed.get("kind") == "search_tag":
                members = sorted(await store.members(key))
                typer.echo(f"  Tagged search pages ({len(members)}):")
                for member in members:
                    typer.echo(f"    {member}")
            elif parsed.get("kind") == "rate_limit":
                typer.echo(f"  Count: {await store.get_int(key)}")
            else:
                value = await store.get(key)
                if isinstance(value, dict) and "results" in value:
                    typer.echo(f"  Results: {len(value['results'])}")
                    typer.echo(f"  Pagination: {json.dumps(value.get('pagination'))}")
                else:
                    typer.echo(f"  Value: {json.dumps(value, default=str)[:500]}")
        typer.echo("=" * 80)
        typer.echo(f"Total: {len(keys)} keys")

    _run(action)


@app.command("health")
def health() -> None:
    """Print the health check of the store; exits with 1 when unhealthy."""

    async def action(store: CacheStore) -> bool:
        result = await CacheMonitor(store).health_check()
        typer.echo(f"Healthy: {'yes' if result.healthy else 'no'}")
        typer.echo(f"Score: {result.score}/100")
        for issue in result.issues:
            typer.echo(f"  [issue] {issue}")
        for warning in result.warnings:
            typer.echo(f"  [warning] {warning}")
        for recommendation in result.recommendations:
            typer.echo(f"  -> {recommendation}")
        return result.healthy

    if not _run(action):
        raise typer.Exit(code=1)


@app.command("benchmark")
def benchmark(
    iterations: int = typer.Option(
        settings.monitor_perf_iterations,
        "--iterations",
        "-i",
        min=1,
        help="SET/GET/DEL cycles to time",
    ),
) -> None:
    """Time sequential SET, GET and DEL round trips."""

    async def action(store: CacheStore) -> bool:
        result = await CacheMonitor(store).performance_test(iterations)
        if not result.succeeded:
            typer.echo("Error: performance test failed", err=True)
            return False

        grades = result.grades()
        typer.echo(f"SET: {result.set_latency:.3f} ms ({grades['set_performance']})")
        typer.echo(f"GET: {result.get_latency:.3f} ms ({grades['get_performance']})")
        typer.echo(f"DEL: {result.del_latency:.3f} ms ({grades['del_performance']})")
        typer.echo(
            f"Throughput: {result.throughput_ops_per_sec:.0f} ops/sec "
            f"({grades['throughput_grade']})"
        )
        for recommendation in result.recommendations():
            typer.echo(f"  -> {recommendation}")
        return True

    if not _run(action):
        raise typer.Exit(code=1)
