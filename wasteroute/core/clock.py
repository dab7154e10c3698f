# wasteroute/core/clock.py
from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Naive UTC timestamp; everything stored is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def today() -> date:
    return utcnow().date()


def day_start(value: Optional[Union[date, datetime]] = None) -> datetime:
    """Normalize a date or datetime to midnight of its (UTC) calendar day."""
    if value is None:
        value = utcnow()
    if isinstance(value, datetime):
        value = as_utc(value).date()
    return datetime.combine(value, time.min)
