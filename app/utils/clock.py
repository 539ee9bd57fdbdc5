"""
Gym Membership Service - Clock Helpers

All timestamps are naive UTC. Services take a clock callable so tests can
pin "now" without patching globals.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable


Clock = Callable[[], datetime]

DAYS_PER_MONTH = 30


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_between(start: datetime, end: datetime) -> int:
    """Whole calendar days from start to end (negative if end is earlier)."""
    return (_as_date(end) - _as_date(start)).days


def add_days(moment: datetime, days: int) -> datetime:
    return moment + timedelta(days=days)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
