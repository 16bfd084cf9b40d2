"""Persistent caching of API responses.

This module provides a time-boxed, size-bounded key/value cache layered over
a storage substrate that survives process restarts.

Key components:
- PersistentCache: Main cache interface
- CacheConfig: Configuration management
- CacheEntry: Stored record and its serialized form
- CacheResult: Hit/miss/degraded outcome of a read or write
"""

from motorcache.cache.config import CacheConfig, get_global_config, set_global_config
from motorcache.cache.entry import CacheEntry, CacheError, CorruptEntryError
from motorcache.cache.manager import (
    CacheResult,
    CacheStats,
    EntrySummary,
    LookupStatus,
    PersistentCache,
)

__all__ = [
    "PersistentCache",
    "CacheConfig",
    "CacheEntry",
    "CacheResult",
    "CacheStats",
    "EntrySummary",
    "LookupStatus",
    "CacheError",
    "CorruptEntryError",
    "get_global_config",
    "set_global_config",
]
