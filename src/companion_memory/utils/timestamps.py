"""
Timestamp helpers.

All stored timestamps are naive UTC so that SQLite and PostgreSQL columns
compare the same way.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values pass through"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def days_since(moment: datetime, now: datetime) -> float:
    """Fractional days elapsed between moment and now"""
    return (to_naive_utc(now) - to_naive_utc(moment)).total_seconds() / 86400.0
