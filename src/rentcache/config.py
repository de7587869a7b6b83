from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RENTCACHE_", env_file=".env", extra="ignore")

    app_name: str = "rentcache"
    env: str = "dev"
    host: str = "0.0.0.0"  # nosec B104 - intentional for container deployments
    port: int = 8080

    # Redis
    redis_url: str | None = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    cache_enabled: bool = Field(default=True, validation_alias="ENABLE_REDIS_CACHE")
    redis_connect_timeout: float = Field(default=10.0, validation_alias="REDIS_CONNECT_TIMEOUT")
    redis_operation_timeout: float = Field(default=2.0, validation_alias="REDIS_OPERATION_TIMEOUT")
    redis_max_connections: int = Field(default=50, validation_alias="REDIS_MAX_CONNECTIONS")
    # Seconds to skip the store after a connection failure
    redis_retry_interval: float = Field(default=5.0, validation_alias="REDIS_RETRY_INTERVAL")

    # Cache TTLs (seconds)
    cache_ttl_product_search: int = Field(default=300, validation_alias="CACHE_TTL_PRODUCT_SEARCH")
    cache_ttl_search_tag: int = Field(default=900, validation_alias="CACHE_TTL_SEARCH_TAG")

    # HTTP caching of search responses
    cache_max_age: int = Field(default=60, validation_alias="CACHE_MAX_AGE")
    cache_stale_while_revalidate: int = Field(
        default=180, validation_alias="CACHE_STALE_WHILE_REVALIDATE"
    )

    # Monitor alert thresholds
    monitor_memory_usage_percent: float = 80.0
    monitor_hit_rate_percent: float = 70.0
    monitor_error_rate_percent: float = 5.0
    monitor_response_time_ms: float = 100.0
    monitor_connection_count: int = 100
    monitor_eviction_rate: float = 10.0
    # Used when the store does not report maxmemory
    monitor_memory_limit_bytes: int = 128 * 1024 * 1024
    monitor_alert_history_size: int = 100
    monitor_perf_iterations: int = 100

    # Rate Limiting (global per-IP limit applied by middleware)
    enable_rate_limiting: bool = Field(default=True, validation_alias="ENABLE_RATE_LIMITING")
    rate_limit_burst_requests: int = Field(default=20, validation_alias="RATE_LIMIT_BURST_REQUESTS")
    rate_limit_burst_window_ms: int = Field(
        default=10_000, validation_alias="RATE_LIMIT_BURST_WINDOW_MS"
    )
    rate_limit_sustained_requests: int = Field(
        default=1000, validation_alias="RATE_LIMIT_SUSTAINED_REQUESTS"
    )
    rate_limit_sustained_window_ms: int = Field(
        default=3_600_000, validation_alias="RATE_LIMIT_SUSTAINED_WINDOW_MS"
    )

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_level: str = "INFO"


settings = Settings()
