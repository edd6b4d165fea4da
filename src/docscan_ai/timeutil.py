"""
Timestamp helpers.

All timestamps are timezone-aware UTC datetimes in memory and epoch
milliseconds in DuckDB.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_epoch_ms(value: datetime | None) -> int | None:
    """Convert a datetime to epoch milliseconds (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int | None) -> datetime | None:
    """Convert epoch milliseconds back to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
