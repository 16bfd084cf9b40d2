"""Cache entry records and their serialized form."""

from dataclasses import dataclass
from typing import Any, Optional

import orjson


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CorruptEntryError(CacheError):
    """Raised when a stored value cannot be decoded into a CacheEntry."""

    pass


@dataclass(frozen=True)
class CacheEntry:
    """One cached API response.

    Attributes:
        key: Caller-chosen logical key (without the namespace prefix)
        payload: JSON-serializable value
        stored_at: Epoch seconds when the entry was written
        expires_at: Epoch seconds when the entry becomes stale
    """

    key: str
    payload: Any
    stored_at: float
    expires_at: float

    def encode(self) -> str:
        """Serialize the entry for the storage substrate.

        Raises:
            TypeError: If the payload is not JSON-serializable
        """
        return orjson.dumps(
            {
                "key": self.key,
                "payload": self.payload,
                "stored_at": self.stored_at,
                "expires_at": self.expires_at,
            }
        ).decode("utf-8")

    @classmethod
    def decode(cls, raw: str, key: Optional[str] = None) -> "CacheEntry":
        """Parse a serialized entry.

        Args:
            raw: Stored string
            key: Logical key to use when the record does not carry one

        Raises:
            CorruptEntryError: If the value is not a well-formed entry
        """
        record = decode_record(raw)
        if "payload" not in record:
            raise CorruptEntryError("Entry has no payload")

        stored_at = record.get("stored_at")
        expires_at = record.get("expires_at")
        for name, value in (("stored_at", stored_at), ("expires_at", expires_at)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise CorruptEntryError(f"Entry has invalid {name}: {value!r}")

        return cls(
            key=key if key is not None else record.get("key"),
            payload=record["payload"],
            stored_at=float(stored_at),
            expires_at=float(expires_at),
        )


def decode_record(raw: str) -> dict:
    """Parse a stored string into its raw JSON object without validating fields.

    Used by maintenance scans that must tolerate partially damaged entries.

    Raises:
        CorruptEntryError: If the value is not a JSON object
    """
    try:
        record = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise CorruptEntryError(f"Entry is not valid JSON: {e}") from e
    if not isinstance(record, dict):
        raise CorruptEntryError(
            f"Entry is a {type(record).__name__}, expected an object"
        )
    return record
