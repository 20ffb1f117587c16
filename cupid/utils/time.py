"""UTC time helpers shared by the ranking engine and the quota tracker."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes.

    SQLite hands timestamps back without tzinfo even for
    ``DateTime(timezone=True)`` columns; everything we store is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_utc_day(now: datetime | None = None) -> datetime:
    """Midnight UTC of the calendar day containing ``now``."""
    now = as_utc(now) if now is not None else utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)
