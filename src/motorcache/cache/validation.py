"""Expiry checks for cache entries.

Timestamps are epoch seconds as floats. An entry is expired from the instant
``now`` reaches ``expires_at``; the boundary itself counts as expired.
"""

import math
from typing import Any, Optional


def compute_expiry(stored_at: float, ttl_seconds: float) -> float:
    """Return the expiry timestamp for an entry stored at ``stored_at``.

    Args:
        stored_at: Epoch seconds when the entry was written
        ttl_seconds: Time-to-live in seconds

    Returns:
        Epoch seconds after which the entry is stale
    """
    return stored_at + ttl_seconds


def is_expired(expires_at: Any, now: float) -> bool:
    """Check whether an entry is expired.

    Missing or malformed expiry metadata counts as expired, so a damaged entry
    is evicted instead of being served indefinitely.

    Args:
        expires_at: Expiry timestamp read from storage (may be anything)
        now: Current epoch seconds

    Returns:
        True if the entry should no longer be served
    """
    if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
        return True
    if math.isnan(expires_at):
        return True
    return now >= expires_at


def get_ttl_remaining(expires_at: Any, now: float) -> Optional[float]:
    """Get remaining seconds until an entry expires.

    Args:
        expires_at: Expiry timestamp read from storage
        now: Current epoch seconds

    Returns:
        Seconds remaining (0 when expired), or None if the expiry is unreadable
    """
    if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
        return None
    return max(0.0, expires_at - now)
