"""Unit tests for cache configuration."""

from pathlib import Path

import pytest

from motorcache.cache.config import (
    CacheConfig,
    get_global_config,
    set_global_config,
)


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """Start every test without a global config or MOTORCACHE_* variables."""
    for name in [
        "MOTORCACHE_ENABLED",
        "MOTORCACHE_DIR",
        "MOTORCACHE_TTL",
        "MOTORCACHE_MAX_ENTRIES",
        "MOTORCACHE_PREFIX",
        "MOTORCACHE_MAX_BYTES",
        "MOTORCACHE_API_URL",
    ]:
        monkeypatch.delenv(name, raising=False)
    set_global_config(None)
    yield
    set_global_config(None)


class TestDefaults:
    def test_defaults(self):
        config = CacheConfig()

        assert config.enabled is True
        assert config.ttl == 3 * 24 * 60 * 60
        assert config.max_entries == 50
        assert config.prefix == "motor_nation_"
        assert config.evict_fraction == 0.3
        assert config.storage_dir == Path.home() / ".motorcache"

    def test_string_storage_dir_converted(self):
        config = CacheConfig(storage_dir="~/somewhere")

        assert isinstance(config.storage_dir, Path)
        assert "~" not in str(config.storage_dir)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"ttl": 0},
            {"ttl": -5},
            {"max_entries": 0},
            {"evict_fraction": 0},
            {"evict_fraction": 1.5},
            {"prefix": ""},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            CacheConfig(**kwargs)


class TestPersistence:
    """Test saving and loading configuration files."""

    def test_save_and_load(self, tmp_path):
        config = CacheConfig(
            storage_dir=tmp_path / "cache",
            ttl=120,
            max_entries=7,
            prefix="test_",
            max_storage_bytes=None,
            api_base_url="https://cars.example/api",
        )
        config_path = tmp_path / "config.json"

        config.save(config_path)
        loaded = CacheConfig.load(config_path)

        assert loaded == config

    def test_save_defaults_to_storage_dir(self, tmp_path):
        config = CacheConfig(storage_dir=tmp_path)

        config.save()

        assert (tmp_path / "config.json").exists()

    def test_load_missing_file_returns_defaults(self, tmp_path):
        assert CacheConfig.load(tmp_path / "absent.json") == CacheConfig()


class TestEnvironment:
    """Test configuration from environment variables."""

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MOTORCACHE_ENABLED", "false")
        monkeypatch.setenv("MOTORCACHE_DIR", str(tmp_path))
        monkeypatch.setenv("MOTORCACHE_TTL", "3600")
        monkeypatch.setenv("MOTORCACHE_MAX_ENTRIES", "10")
        monkeypatch.setenv("MOTORCACHE_PREFIX", "staging_")
        monkeypatch.setenv("MOTORCACHE_MAX_BYTES", "1024")
        monkeypatch.setenv("MOTORCACHE_API_URL", "https://staging.example/api")

        config = CacheConfig.from_env()

        assert config.enabled is False
        assert config.storage_dir == tmp_path
        assert config.ttl == 3600
        assert config.max_entries == 10
        assert config.prefix == "staging_"
        assert config.max_storage_bytes == 1024
        assert config.api_base_url == "https://staging.example/api"

    def test_from_env_without_variables(self):
        assert CacheConfig.from_env() == CacheConfig()

    def test_global_config_uses_env(self, monkeypatch):
        monkeypatch.setenv("MOTORCACHE_TTL", "99")

        assert get_global_config().ttl == 99

    def test_set_global_config(self):
        config = CacheConfig(ttl=5)

        set_global_config(config)

        assert get_global_config() is config
