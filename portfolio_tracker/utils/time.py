"""Time utilities (UTC)."""

from datetime import datetime, timezone
from typing import Optional


def now_utc_naive() -> datetime:
    """
    Current time in UTC, returned as naive datetime for storage.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    """
    Normalize a datetime to naive UTC.

    Naive values are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_iso(dt: Optional[datetime]) -> Optional[str]:
    """Naive-UTC datetime to ISO string with offset."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat()
