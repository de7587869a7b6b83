"""Global pytest configuration."""

from __future__ import annotations


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: test needs a real Redis server (started with Docker)"
    )
