"""Time helpers.

Clock readings are truncated to milliseconds, the precision of the
`YYYY-MM-DDTHH:MM:SS.mmmZ` wire format, so exported timestamps compare equal
to the stored ones when they come back through an import.
"""

from __future__ import annotations

from datetime import datetime, timezone


def _to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def utcnow() -> datetime:
    """Return a naive UTC datetime for storage in the database."""
    return _to_millis(datetime.now(timezone.utc)).replace(tzinfo=None)


def aware_utcnow() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return _to_millis(datetime.now(timezone.utc))


def as_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_naive(value: datetime) -> datetime:
    """Convert any datetime to naive UTC for storage."""
    return as_aware(value).replace(tzinfo=None)
