"""Epoch-millisecond conversion for every API and service boundary.

The database stores timezone-aware datetimes; everything crossing a
boundary (schemas, WebSocket payloads, presentation helpers) uses
integer milliseconds since the Unix epoch.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MS = timedelta(milliseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_ms(value: datetime | None) -> int | None:
    """Convert a datetime to epoch milliseconds. Naive values are treated as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // _MS


def from_epoch_ms(value: int | None) -> datetime | None:
    """Convert epoch milliseconds to an aware UTC datetime."""
    if value is None:
        return None
    return EPOCH + timedelta(milliseconds=value)
