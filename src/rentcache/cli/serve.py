"""CLI command for running the rentcache API.

Server defaults follow the application settings, so the environment that
configures the cache also configures the server:

    RENTCACHE_ENV=dev    single reloading worker, console logs, access log on
    RENTCACHE_ENV=prod   JSON logs, no reload, access log off
    RENTCACHE_LOG_LEVEL  log level of both the app and uvicorn

Usage:
    rentcache serve
    rentcache serve --port 8080 --workers 4
    rentcache serve --check-redis --log-level debug
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import typer
import uvicorn

from rentcache.cli import cache_cmd
from rentcache.config import settings
from rentcache.observability import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(help="Run the rentcache API server")

APP_FACTORY = "rentcache.api.app:create_app"
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


def build_run_options(
    host: str,
    port: int,
    workers: int,
    reload: bool | None,
    log_level: str | None,
) -> dict[str, Any]:
    """Keyword arguments for ``uvicorn.run`` resolved against settings."""
    dev = settings.env == "dev"
    reload = dev if reload is None else reload
    level = (log_level or settings.log_level).lower()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(f"unknown log level {level!r}", param_hint="--log-level")

    return {
        "app": APP_FACTORY,
        "factory": True,
        "host": host,
        "port": port,
        "reload": reload,
        # Reload requires a single worker
        "workers": 1 if reload else workers,
        "log_level": level,
        # uvicorn records propagate to the handler set up by configure_logging
        "log_config": None,
        "access_log": dev,
    }


async def _redis_reachable() -> bool:
    store = cache_cmd.create_store()
    try:
        return await store.connect()
    finally:
        await store.close()


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to listen on"),
    workers: int = typer.Option(1, "--workers", "-w", min=1, help="Worker processes"),
    reload: bool | None = typer.Option(
        None,
        "--reload/--no-reload",
        help="Auto-reload on code changes (default: on when RENTCACHE_ENV=dev)",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (default: RENTCACHE_LOG_LEVEL)",
    ),
    check_redis: bool = typer.Option(
        False,
        "--check-redis",
        help="Refuse to start when caching is enabled but Redis does not answer",
    ),
) -> None:
    """Run the rentcache API server."""
    options = build_run_options(host, port, workers, reload, log_level)
    configure_logging(json_format=settings.env != "dev", level=options["log_level"].upper())

    if check_redis and settings.cache_enabled and not asyncio.run(_redis_reachable()):
        typer.echo("Error: Redis is not reachable (check REDIS_URL)", err=True)
        raise typer.Exit(code=1)

    logger.info(
        f"Starting rentcache ({settings.env}) on {options['host']}:{options['port']} "
        f"with {options['workers']} worker(s), reload={options['reload']}"
    )
    uvicorn.run(**options)
