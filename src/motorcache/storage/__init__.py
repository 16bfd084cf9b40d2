"""Storage substrates for the persistent cache.

This module provides the string key/value stores the cache writes into,
either a directory on disk or an in-process dict, along with the error
classes they raise.
"""

from motorcache.storage.backend import (
    FileStorage,
    MemoryStorage,
    StorageBackend,
    StorageError,
    StorageQuotaExceededError,
    StorageUnavailableError,
)

__all__ = [
    "StorageBackend",
    "FileStorage",
    "MemoryStorage",
    "StorageError",
    "StorageQuotaExceededError",
    "StorageUnavailableError",
]
