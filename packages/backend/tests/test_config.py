"""Settings tests — env loading, bucket names, validation."""

import pytest
from pydantic import ValidationError

from farmsync.config import Settings


def test_defaults():
    s = Settings()
    assert s.max_reconnect_attempts == 5
    assert s.reconnect_base_delay_seconds == 1.0
    assert s.reconnect_max_delay_seconds is None
    assert s.cache_retention_days == 7
    assert s.sync_tag == "farm-data-sync"


def test_bucket_names():
    s = Settings(cache_prefix="farm-manager", cache_version="v1")
    assert s.current_caches == (
        "farm-manager-static-v1",
        "farm-manager-dynamic-v1",
        "farm-manager-api-v1",
    )


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("FARMSYNC_CACHE_VERSION", "v2")
    monkeypatch.setenv("FARMSYNC_MAX_RECONNECT_ATTEMPTS", "3")
    s = Settings()
    assert s.static_cache.endswith("-static-v2")
    assert s.max_reconnect_attempts == 3


@pytest.mark.parametrize("overrides", [
    {"reconnect_base_delay_seconds": 0},
    {"max_reconnect_attempts": -1},
    {"cache_backend": "memcached"},
    {"cache_backend": "redis", "redis_url": ""},
    {"api_prefix": "api/"},
])
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)
