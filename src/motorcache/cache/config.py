"""Cache configuration management."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_STORAGE_DIR = Path.home() / ".motorcache"
THREE_DAYS = 3 * 24 * 60 * 60


@dataclass
class CacheConfig:
    """Configuration for the persistent cache and the API client.

    Attributes:
        enabled: Whether the fetcher consults the cache at all
        storage_dir: Directory used by FileStorage
        ttl: Time-to-live of every entry in seconds (3 days)
        max_entries: Maximum number of entries kept after a write
        prefix: Namespace prepended to every key in the storage substrate
        evict_fraction: Share of entries evicted when the substrate is full
        max_storage_bytes: Quota for FileStorage in bytes (None = unlimited)
        api_base_url: Base URL of the content API
    """

    enabled: bool = True
    storage_dir: Path = DEFAULT_STORAGE_DIR
    ttl: int = THREE_DAYS
    max_entries: int = 50
    prefix: str = "motor_nation_"
    evict_fraction: float = 0.3
    max_storage_bytes: Optional[int] = 5 * 1024 * 1024  # browser-style 5 MB
    api_base_url: str = "http://localhost:3000/api"

    def __post_init__(self):
        """Normalize storage_dir and reject values the cache cannot honor."""
        if self.storage_dir is None:
            self.storage_dir = DEFAULT_STORAGE_DIR
        self.storage_dir = Path(self.storage_dir).expanduser()

        if self.ttl <= 0:
            raise ValueError(f"ttl must be positive, got {self.ttl}")
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {self.max_entries}")
        if not 0 < self.evict_fraction <= 1:
            raise ValueError(
                f"evict_fraction must be in (0, 1], got {self.evict_fraction}"
            )
        if not self.prefix:
            raise ValueError("prefix must be a non-empty string")

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            CacheConfig instance
        """
        if config_path is None:
            config_path = DEFAULT_STORAGE_DIR / "config.json"

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if "storage_dir" in data:
            data["storage_dir"] = Path(data["storage_dir"])

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path is None:
            config_path = self.storage_dir / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "enabled": self.enabled,
            "storage_dir": str(self.storage_dir),
            "ttl": self.ttl,
            "max_entries": self.max_entries,
            "prefix": self.prefix,
            "evict_fraction": self.evict_fraction,
            "max_storage_bytes": self.max_storage_bytes,
            "api_base_url": self.api_base_url,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            MOTORCACHE_ENABLED: Enable caching (true/false)
            MOTORCACHE_DIR: Storage directory path
            MOTORCACHE_TTL: TTL in seconds
            MOTORCACHE_MAX_ENTRIES: Maximum number of entries
            MOTORCACHE_PREFIX: Key namespace prefix
            MOTORCACHE_MAX_BYTES: Storage quota in bytes
            MOTORCACHE_API_URL: Base URL of the content API

        Returns:
            CacheConfig instance
        """
        kwargs = {}

        if os.getenv("MOTORCACHE_ENABLED"):
            kwargs["enabled"] = os.getenv("MOTORCACHE_ENABLED", "").lower() == "true"

        if os.getenv("MOTORCACHE_DIR"):
            kwargs["storage_dir"] = Path(os.getenv("MOTORCACHE_DIR"))

        if os.getenv("MOTORCACHE_TTL"):
            kwargs["ttl"] = int(os.getenv("MOTORCACHE_TTL"))

        if os.getenv("MOTORCACHE_MAX_ENTRIES"):
            kwargs["max_entries"] = int(os.getenv("MOTORCACHE_MAX_ENTRIES"))

        if os.getenv("MOTORCACHE_PREFIX"):
            kwargs["prefix"] = os.getenv("MOTORCACHE_PREFIX")

        if os.getenv("MOTORCACHE_MAX_BYTES"):
            kwargs["max_storage_bytes"] = int(os.getenv("MOTORCACHE_MAX_BYTES"))

        if os.getenv("MOTORCACHE_API_URL"):
            kwargs["api_base_url"] = os.getenv("MOTORCACHE_API_URL")

        return cls(**kwargs)


# Global cache configuration instance
_global_config: Optional[CacheConfig] = None


def get_global_config() -> CacheConfig:
    """Get global cache configuration.

    Returns:
        Global CacheConfig instance
    """
    global _global_config
    if _global_config is None:
        # Environment wins over the config file when both are present
        if any(key.startswith("MOTORCACHE_") for key in os.environ):
            _global_config = CacheConfig.from_env()
        else:
            try:
                _global_config = CacheConfig.load()
            except (OSError, ValueError, TypeError):
                _global_config = CacheConfig()
    return _global_config


def set_global_config(config: Optional[CacheConfig]) -> None:
    """Set global cache configuration.

    Args:
        config: CacheConfig instance to use globally, or None to reset
    """
    global _global_config
    _global_config = config
