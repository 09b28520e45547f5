"""
Timezone utilities for the availability engine.

The resolver works in the tutor's wall-clock time: dates and times of day are
naive and interpreted in the tutor's timezone. These helpers produce that
wall-clock "now" from an injectable clock.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import pytz

from .config import settings

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: aware UTC now."""
    return datetime.now(timezone.utc)


def get_timezone(tz_name: Optional[str] = None) -> pytz.BaseTzInfo:
    """
    Resolve a timezone name, falling back to the configured default.

    Args:
        tz_name: IANA timezone name (e.g. "America/New_York")

    Returns:
        pytz timezone object
    """
    return pytz.timezone(tz_name or settings.default_timezone)


def to_wall_clock(moment: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert an aware datetime to naive wall-clock time in the given zone."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(get_timezone(tz_name)).replace(tzinfo=None)


def get_tutor_now(tz_name: Optional[str] = None, clock: Optional[Clock] = None) -> datetime:
    """Current naive wall-clock time for a tutor."""
    return to_wall_clock((clock or utc_now)(), tz_name)


def as_utc(moment: datetime) -> datetime:
    """Stored timestamps are UTC; SQLite drops tzinfo on the round trip."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
