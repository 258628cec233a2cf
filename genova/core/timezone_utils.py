"""
Time helpers shared across services.

All persisted timestamps are UTC. SQLite drops tzinfo on the way back,
so values read from the store go through ``ensure_utc`` before any
comparison with an aware ``now``.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ensure_utc_optional(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from ``start`` to ``end``; half minutes round up."""
    seconds = Decimal(str((ensure_utc(end) - ensure_utc(start)).total_seconds()))
    return int((seconds / 60).quantize(Decimal(1), rounding=ROUND_HALF_UP))
