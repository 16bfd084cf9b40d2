"""Persistent cache for API responses."""

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, NamedTuple, Optional

from typing_extensions import TypedDict

from motorcache.cache.config import CacheConfig
from motorcache.cache.entry import (
    CacheEntry,
    CacheError,
    CorruptEntryError,
    decode_record,
)
from motorcache.cache.validation import compute_expiry, is_expired
from motorcache.storage.backend import (
    StorageBackend,
    StorageError,
    StorageQuotaExceededError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CacheError",
    "CorruptEntryError",
    "CacheResult",
    "CacheStats",
    "EntrySummary",
    "LookupStatus",
    "PersistentCache",
]

# Storage failures the cache contains instead of propagating
_CONTAINED_ERRORS = (StorageError, OSError)


class LookupStatus(Enum):
    OK = "ok"
    MISS = "miss"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class CacheResult:
    """Outcome of a cache read or write.

    ``status`` is OK for a hit or a completed write, MISS when there is nothing
    usable under the key, and DEGRADED when the storage substrate failed.
    ``reason`` names why a read missed or a write degraded.
    """

    status: LookupStatus
    value: Any = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None) -> "CacheResult":
        return cls(LookupStatus.OK, value)

    @classmethod
    def miss(cls, reason: str) -> "CacheResult":
        return cls(LookupStatus.MISS, reason=reason)

    @classmethod
    def degraded(cls, reason: str) -> "CacheResult":
        return cls(LookupStatus.DEGRADED, reason=reason)

    @property
    def hit(self) -> bool:
        return self.status is LookupStatus.OK


class EntrySummary(TypedDict):
    """Diagnostic view of one stored entry."""

    key: str
    stored_at: float
    expires_at: Optional[float]
    size_bytes: int


class CacheStats(TypedDict):
    """Read-only snapshot of the cache namespace."""

    total_items: int
    expired_items: int
    total_size_bytes: int
    oldest_entry: Optional[EntrySummary]
    newest_entry: Optional[EntrySummary]


class _ScannedEntry(NamedTuple):
    raw_key: str
    key: str
    stored_at: float
    expires_at: Any
    size_bytes: int
    corrupt: bool


class PersistentCache:
    """Time- and capacity-bounded key/value cache over a storage substrate.

    Every entry lives for a fixed TTL. After each write, the namespace is
    trimmed to ``max_entries`` by deleting the entries with the oldest
    ``stored_at``; reads do not refresh that ordering. Storage failures never
    reach the caller: reads degrade to a miss and writes are dropped.

    Examples:
        >>> cache = PersistentCache(MemoryStorage(), ttl=60)
        >>> cache.set('news_all', [{'id': 1}])
        >>> cache.get('news_all')
        [{'id': 1}]
    """

    def __init__(
        self,
        storage: StorageBackend,
        config: Optional[CacheConfig] = None,
        *,
        ttl: Optional[float] = None,
        max_entries: Optional[int] = None,
        prefix: Optional[str] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize the cache.

        Args:
            storage: Substrate holding the serialized entries
            config: Cache configuration (defaults if None)
            ttl: Override the configured TTL in seconds
            max_entries: Override the configured capacity
            prefix: Override the configured key namespace
            clock: Callable returning epoch seconds (time.time if None)
        """
        self.storage = storage
        self.config = config or CacheConfig()

        self.ttl = ttl if ttl is not None else self.config.ttl
        self.max_entries = (
            max_entries if max_entries is not None else self.config.max_entries
        )
        self.prefix = prefix if prefix is not None else self.config.prefix
        self.evict_fraction = self.config.evict_fraction
        self._clock = clock or time.time

        if self.ttl <= 0:
            raise ValueError(f"ttl must be positive, got {self.ttl}")
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {self.max_entries}")
        if not self.prefix:
            raise ValueError("prefix must be a non-empty string")

    def _raw_key(self, key: str) -> str:
        return self.prefix + key

    def now(self) -> float:
        """Current time according to the cache clock."""
        return self._clock()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, key: str) -> Any:
        """Return the cached payload, or None if absent, corrupt or expired.

        Corrupt and expired entries are deleted as a side effect.
        """
        return self.lookup(key).value

    def lookup(self, key: str) -> CacheResult:
        """Read ``key`` and report why it hit or missed.

        Args:
            key: Logical cache key

        Returns:
            CacheResult with the payload on a hit
        """
        try:
            with self.storage.lock():
                return self._lookup_locked(key)
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Cache retrieval failed for {key}: {e}")
            return CacheResult.degraded("storage_error")

    def _lookup_locked(self, key: str) -> CacheResult:
        raw_key = self._raw_key(key)
        raw = self.storage.read(raw_key)
        if raw is None:
            return CacheResult.miss("absent")

        try:
            entry = CacheEntry.decode(raw, key=key)
        except CorruptEntryError as e:
            logger.warning(f"Removing corrupt cache entry {key}: {e}")
            self.storage.delete(raw_key)
            return CacheResult.miss("corrupt")

        if is_expired(entry.expires_at, self.now()):
            logger.debug(f"Cache expired: {key}")
            self.storage.delete(raw_key)
            return CacheResult.miss("expired")

        logger.debug(f"Cache hit: {key}")
        return CacheResult.ok(entry.payload)

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry without checking expiry or deleting anything.

        Returns:
            The decoded entry, or None if absent, corrupt or unreadable
        """
        try:
            with self.storage.lock():
                raw = self.storage.read(self._raw_key(key))
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Cache peek failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.decode(raw, key=key)
        except CorruptEntryError:
            return None

    # =========================================================================
    # Writes
    # =========================================================================

    def set(self, key: str, payload: Any) -> None:
        """Store ``payload`` under ``key``, replacing any previous entry.

        Best effort: a write the substrate refuses is logged and dropped.
        """
        self.store(key, payload)

    def store(self, key: str, payload: Any) -> CacheResult:
        """Write an entry and report whether it was persisted.

        Args:
            key: Logical cache key
            payload: JSON-serializable value

        Returns:
            CacheResult with status OK, or DEGRADED with the reason the write
            was dropped ('unserializable', 'quota_exceeded', 'storage_error')
        """
        stored_at = self.now()
        entry = CacheEntry(
            key=key,
            payload=payload,
            stored_at=stored_at,
            expires_at=compute_expiry(stored_at, self.ttl),
        )

        try:
            raw = entry.encode()
        except TypeError as e:
            logger.warning(f"Cannot cache {key}: payload is not serializable: {e}")
            return CacheResult.degraded("unserializable")

        try:
            with self.storage.lock():
                return self._store_locked(key, raw, payload)
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Cache storage failed for {key}: {e}")
            return CacheResult.degraded("storage_error")

    def _store_locked(self, key: str, raw: str, payload: Any) -> CacheResult:
        raw_key = self._raw_key(key)
        try:
            self.storage.write(raw_key, raw)
        except StorageQuotaExceededError as e:
            logger.warning(f"Cache storage full while writing {key}: {e}")
            self._evict_for_quota()
            try:
                self.storage.write(raw_key, raw)
            except _CONTAINED_ERRORS as retry_error:
                logger.error(
                    f"Cache storage failed for {key} even after cleanup: {retry_error}"
                )
                return CacheResult.degraded("quota_exceeded")
            logger.info(f"Cached {key} after cleanup")

        logger.debug(f"Cached: {key} (expires in {self.ttl} seconds)")

        try:
            self._maintain_capacity()
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Cache size maintenance failed: {e}")

        return CacheResult.ok(payload)

    def remove(self, key: str) -> None:
        """Delete ``key`` if present."""
        try:
            with self.storage.lock():
                self.storage.delete(self._raw_key(key))
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Cache removal failed for {key}: {e}")

    # =========================================================================
    # Maintenance
    # =========================================================================

    def _scan(self, purge_corrupt: bool) -> List[_ScannedEntry]:
        """Collect every entry in the namespace.

        Args:
            purge_corrupt: Delete entries that are not JSON objects instead of
                reporting them

        Returns:
            Scanned entries; a missing ``stored_at`` reads as 0 (oldest)
        """
        scanned = []
        for raw_key in self.storage.list_keys():
            if not raw_key.startswith(self.prefix):
                continue
            raw = self.storage.read(raw_key)
            if raw is None:
                continue
            key = raw_key[len(self.prefix) :]
            size_bytes = len(raw.encode("utf-8"))
            try:
                record = decode_record(raw)
            except CorruptEntryError:
                if purge_corrupt:
                    logger.info(f"Removing corrupt cache entry {key}")
                    self.storage.delete(raw_key)
                    continue
                scanned.append(_ScannedEntry(raw_key, key, 0.0, None, size_bytes, True))
                continue

            stored_at = record.get("stored_at")
            if isinstance(stored_at, bool) or not isinstance(stored_at, (int, float)):
                stored_at = 0.0
            scanned.append(
                _ScannedEntry(
                    raw_key,
                    key,
                    float(stored_at),
                    record.get("expires_at"),
                    size_bytes,
                    False,
                )
            )
        return scanned

    @staticmethod
    def _oldest_first(entries: List[_ScannedEntry]) -> List[_ScannedEntry]:
        return sorted(entries, key=lambda e: (e.stored_at, e.raw_key))

    def _maintain_capacity(self) -> int:
        """Delete the oldest entries beyond ``max_entries``.

        Returns:
            Number of entries removed
        """
        entries = self._scan(purge_corrupt=True)
        excess = len(entries) - self.max_entries
        if excess <= 0:
            return 0

        for entry in self._oldest_first(entries)[:excess]:
            self.storage.delete(entry.raw_key)
            logger.info(f"Cache size limit: removed {entry.key}")
        return excess

    def _evict_for_quota(self) -> int:
        """Delete the oldest share of entries to make room after a quota error.

        Returns:
            Number of entries removed
        """
        entries = self._scan(purge_corrupt=True)
        if not entries:
            return 0

        # strip float error before the ceiling
        share = round(len(entries) * self.evict_fraction, 9)
        to_remove = max(1, math.ceil(share))
        for entry in self._oldest_first(entries)[:to_remove]:
            self.storage.delete(entry.raw_key)
            logger.info(f"Removed old cache entry {entry.key}")
        return to_remove

    def clear_expired(self) -> int:
        """Delete every expired entry in the namespace.

        Entries with missing or unreadable expiry count as expired.

        Returns:
            Number of entries removed
        """
        try:
            with self.storage.lock():
                now = self.now()
                removed = 0
                for entry in self._scan(purge_corrupt=False):
                    if entry.corrupt or is_expired(entry.expires_at, now):
                        self.storage.delete(entry.raw_key)
                        removed += 1
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Clearing expired cache entries failed: {e}")
            return 0

        if removed > 0:
            logger.info(f"Cleared {removed} expired cache entries")
        return removed

    def clear_all(self) -> int:
        """Delete every entry in the namespace regardless of expiry.

        Keys outside the namespace are left untouched.

        Returns:
            Number of entries removed
        """
        try:
            with self.storage.lock():
                raw_keys = [
                    k for k in self.storage.list_keys() if k.startswith(self.prefix)
                ]
                for raw_key in raw_keys:
                    self.storage.delete(raw_key)
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Clearing cache failed: {e}")
            return 0

        logger.info(f"Cleared all cache ({len(raw_keys)} entries)")
        return len(raw_keys)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    @staticmethod
    def _summary(entry: _ScannedEntry) -> EntrySummary:
        expires_at = entry.expires_at
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            expires_at = None
        return {
            "key": entry.key,
            "stored_at": entry.stored_at,
            "expires_at": expires_at,
            "size_bytes": entry.size_bytes,
        }

    def entries(self) -> List[EntrySummary]:
        """List the entries in the namespace, oldest first. Does not mutate."""
        try:
            with self.storage.lock():
                scanned = self._scan(purge_corrupt=False)
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Listing cache entries failed: {e}")
            return []
        return [self._summary(e) for e in self._oldest_first(scanned)]

    def stats(self) -> CacheStats:
        """Snapshot the namespace without evicting anything.

        Returns:
            CacheStats; an unreadable substrate reports an empty cache
        """
        stats: CacheStats = {
            "total_items": 0,
            "expired_items": 0,
            "total_size_bytes": 0,
            "oldest_entry": None,
            "newest_entry": None,
        }
        try:
            with self.storage.lock():
                scanned = self._scan(purge_corrupt=False)
        except _CONTAINED_ERRORS as e:
            logger.warning(f"Reading cache statistics failed: {e}")
            return stats

        now = self.now()
        stats["total_items"] = len(scanned)
        stats["expired_items"] = sum(
            1 for e in scanned if e.corrupt or is_expired(e.expires_at, now)
        )
        stats["total_size_bytes"] = sum(e.size_bytes for e in scanned)

        if scanned:
            ordered = self._oldest_first(scanned)
            stats["oldest_entry"] = self._summary(ordered[0])
            stats["newest_entry"] = self._summary(ordered[-1])

        return stats

    def startup(self) -> CacheStats:
        """Clear expired entries and log a summary; call once at process start.

        Returns:
            Statistics after the cleanup
        """
        removed = self.clear_expired()
        stats = self.stats()
        logger.info(
            f"Cache initialized: {stats['total_items']} items, "
            f"~{round(stats['total_size_bytes'] / 1024)}KB"
        )
        if removed > 0:
            logger.info(f"Found {removed} expired items (cleaned up)")
        return stats
