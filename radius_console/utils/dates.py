"""Datetime helpers.

Console tables store timezone-aware UTC timestamps; the FreeRADIUS tables
store naive UTC (``DATETIME``). These helpers keep comparisons consistent.
"""

from datetime import datetime, time, timedelta, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as aware UTC; naive values are assumed to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as naive UTC for comparison with FreeRADIUS columns."""
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def start_of_day(value: datetime) -> datetime:
    """Midnight of the (UTC) day containing ``value``."""
    value = ensure_utc(value)
    return datetime.combine(value.date(), time.min, tzinfo=timezone.utc)


def default_range(
    start: datetime | None,
    end: datetime | None,
) -> tuple[datetime, datetime]:
    """Fill a missing range with "today so far" (UTC)."""
    now = utc_now()
    start = ensure_utc(start) if start else start_of_day(now)
    end = ensure_utc(end) if end else now
    return start, end


def day_bounds(day: datetime | None) -> tuple[datetime, datetime]:
    """Start and end (exclusive) of a UTC day; defaults to today."""
    start = start_of_day(day or utc_now())
    return start, start + timedelta(days=1)
