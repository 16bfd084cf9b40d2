"""Utility functions for motorcache."""

from datetime import datetime, timezone
from typing import Optional


def format_size(size_bytes: int) -> str:
    """Render a byte count for humans.

    Examples:
        >>> format_size(512)
        '512 B'
        >>> format_size(2048)
        '2.0 KB'
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def format_timestamp(epoch_seconds: Optional[float]) -> str:
    """Render an epoch timestamp as a UTC 'YYYY-MM-DD HH:MM' string."""
    if epoch_seconds is None:
        return ""
    dt = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M")


def format_duration(seconds: Optional[float]) -> str:
    """Render a duration as the largest whole unit, e.g. '3d', '5h', '12m', '40s'."""
    if seconds is None:
        return ""
    seconds = max(0, int(seconds))
    for unit, width in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= width:
            return f"{seconds // width}{unit}"
    return f"{seconds}s"
