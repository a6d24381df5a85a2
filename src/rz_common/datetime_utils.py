"""UTC datetime utilities."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def floor_to_minute(ts: datetime) -> datetime:
    """Truncate to the start of the minute: 12:03:41.5 -> 12:03:00."""
    return ts.replace(second=0, microsecond=0)
