"""Time helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so everything read from the store goes through ``as_utc`` before
arithmetic. Tests monkeypatch ``utcnow`` to move time forward.
"""

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, rounded half-up."""
    elapsed = (as_utc(end) - as_utc(start)).total_seconds() / 60
    return round_half_up(elapsed)
