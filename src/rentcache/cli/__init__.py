"""CLI commands for rentcache.

Provides command-line interface using Typer:
- rentcache serve: Run the API server
- rentcache cache clear: Delete cache keys matching a pattern
- rentcache cache inspect: Show cache keys, TTLs and values
- rentcache cache health: Print the store health check
- rentcache cache benchmark: Time SET/GET/DEL round trips

Usage:
    rentcache --help
    rentcache serve --port 8080
    rentcache cache clear "search:*"
    rentcache cache inspect --limit 5
"""

import typer

from rentcache.cli.cache_cmd import app as cache_app
from rentcache.cli.serve import app as serve_app

# Main CLI application
app = typer.Typer(
    name="rentcache",
    help="rentcache: search result caching, rate limiting and cache monitoring",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(cache_app, name="cache")


@app.callback()
def callback() -> None:
    """rentcache: search result caching, rate limiting and cache monitoring."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
