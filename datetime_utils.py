from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional


UTC = timezone.utc

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def add_millis(dt: datetime, millis: int) -> datetime:
    return dt + timedelta(milliseconds=millis)


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339 in UTC."""

    if dt is None:
        return None
    value = ensure_utc(dt)
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = [
    "UTC",
    "Clock",
    "add_millis",
    "ensure_utc",
    "to_rfc3339_utc",
    "utc_now",
]
