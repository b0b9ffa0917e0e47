"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with FARMSYNC_ prefix.
No YAML files, no file-based config — just env vars (12-factor app style).

Learn: Both the realtime client and the cache gateway read the same
Settings object, but they only look at their own fields.
"""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via FARMSYNC_* env vars."""

    # Realtime channel
    realtime_url: str = "ws://localhost:5000/realtime"
    auth_token: Optional[str] = None
    connect_timeout_seconds: float = 10.0
    max_reconnect_attempts: int = 5
    reconnect_base_delay_seconds: float = 1.0
    reconnect_max_delay_seconds: Optional[float] = None  # None = uncapped

    # Gateway upstream
    upstream_url: str = "http://localhost:3000"
    fetch_timeout_seconds: float = 30.0

    # Cache buckets, named "{prefix}-{kind}-{version}"
    cache_prefix: str = "farm-manager"
    cache_version: str = "v1"
    cache_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"

    # Request classification
    api_prefix: str = "/api/"
    static_extensions: list[str] = [
        ".js", ".css", ".png", ".jpg", ".jpeg", ".gif",
        ".svg", ".ico", ".woff", ".woff2",
    ]
    precache_assets: list[str] = [
        "/",
        "/index.html",
        "/manifest.json",
        "/offline.html",
    ]
    offline_page: str = "/offline.html"

    # Retention sweep
    cache_retention_days: int = 7
    cache_sweep_interval_hours: float = 24.0

    # Background sync
    sync_tag: str = "farm-data-sync"

    # Server
    environment: str = "development"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    model_config = {"env_prefix": "FARMSYNC_"}

    @property
    def static_cache(self) -> str:
        return f"{self.cache_prefix}-static-{self.cache_version}"

    @property
    def dynamic_cache(self) -> str:
        return f"{self.cache_prefix}-dynamic-{self.cache_version}"

    @property
    def api_cache(self) -> str:
        return f"{self.cache_prefix}-api-{self.cache_version}"

    @property
    def current_caches(self) -> tuple[str, str, str]:
        return (self.static_cache, self.dynamic_cache, self.api_cache)

    @model_validator(mode="after")
    def validate_settings(self):
        """Reject values the reconnect loop and cache layer can't work with."""
        if self.reconnect_base_delay_seconds <= 0:
            raise ValueError("FARMSYNC_RECONNECT_BASE_DELAY_SECONDS must be positive")
        if self.max_reconnect_attempts < 0:
            raise ValueError("FARMSYNC_MAX_RECONNECT_ATTEMPTS must not be negative")
        if self.cache_backend not in ("memory", "redis"):
            raise ValueError(
                f"FARMSYNC_CACHE_BACKEND must be 'memory' or 'redis', got {self.cache_backend!r}"
            )
        if self.cache_backend == "redis" and not self.redis_url:
            raise ValueError("FARMSYNC_REDIS_URL is required when the cache backend is redis")
        if not self.api_prefix.startswith("/"):
            raise ValueError("FARMSYNC_API_PREFIX must start with '/'")
        return self


# Singleton, import this everywhere
settings = Settings()
