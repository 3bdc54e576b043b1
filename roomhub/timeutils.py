"""Clock and calendar-day helpers. All instants are naive UTC."""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def day_bounds(reference: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return ``[start_of_day, start_of_next_day)`` for the day holding ``reference``."""
    reference = reference or utcnow()
    start = reference.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Half-open interval overlap: ``[start1, end1)`` meets ``[start2, end2)``.

    Touching endpoints do not overlap.
    """
    return start1 < end2 and start2 < end1
