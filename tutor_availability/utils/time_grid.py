"""
Time grid helpers: the day as 48 half-hour slots.

Tutors and the calendar UI speak in 12-hour strings ("9 am", "11:30 pm");
internally everything is a ``datetime.time`` on the 30-minute grid or a slot
index 0..47. Exception keys keep the stored ``"{date}-{time}"`` format, parsed
into structured values as soon as they cross into the engine.
"""

from __future__ import annotations

from datetime import date, datetime, time
import re
from typing import List, NamedTuple

from ..core.constants import MINUTES_PER_DAY, SLOT_MINUTES, SLOTS_PER_DAY
from ..core.exceptions import ParseError

_TWELVE_HOUR = re.compile(
    r"^\s*(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<period>[ap])\.?\s*m\.?\s*$",
    re.IGNORECASE,
)
_TWENTY_FOUR_HOUR = re.compile(
    r"^\s*(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?\s*$"
)
_LEGACY_DATE = re.compile(r"^(?P<month>\d{1,2})/(?P<day>\d{1,2})$")


class SlotKey(NamedTuple):
    """Structured form of a stored ``"{date}-{time}"`` exception key."""

    date: date
    time_of_day: time


def parse_time_of_day(text: str) -> float:
    """
    Parse a time-of-day string into fractional hours since midnight.

    Accepts 12-hour strings with optional minutes ("9 am", "11:30 pm", "9AM")
    and 24-hour "HH:MM[:SS]" strings. "24:00" is accepted as end of day.

    Raises:
        ParseError: if the text is not a recognizable time of day
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError(str(text), "empty")

    match = _TWELVE_HOUR.match(text)
    if match:
        hour = int(match.group("hour"))
        minute = int(match.group("minute") or 0)
        if not 1 <= hour <= 12:
            raise ParseError(text, "hour must be 1-12 on a 12-hour clock")
        if not 0 <= minute < 60:
            raise ParseError(text, "minutes must be 0-59")
        period = match.group("period").lower()
        if period == "p" and hour != 12:
            hour += 12
        elif period == "a" and hour == 12:
            hour = 0
        return hour + minute / 60

    match = _TWENTY_FOUR_HOUR.match(text)
    if match:
        hour = int(match.group("hour"))
        minute = int(match.group("minute"))
        second = int(match.group("second") or 0)
        if hour == 24 and minute == 0 and second == 0:
            return 24.0
        if not (0 <= hour < 24 and 0 <= minute < 60 and 0 <= second < 60):
            raise ParseError(text, "out of range")
        return hour + minute / 60 + second / 3600

    raise ParseError(text)


def format_time_of_day(hour24: int, minute: int = 0) -> str:
    """Canonical 12-hour string: ``"9 am"``, ``"11:30 pm"``, ``"12 pm"``, ``"12 am"``."""
    if not (0 <= hour24 < 24 and 0 <= minute < 60):
        raise ValueError(f"invalid time of day: {hour24}:{minute}")
    period = "pm" if hour24 >= 12 else "am"
    hour12 = hour24 % 12 or 12
    if minute == 0:
        return f"{hour12} {period}"
    return f"{hour12}:{minute:02d} {period}"


def hours_to_minutes(value: float) -> int:
    return int(round(value * 60))


def parse_time(text: str) -> time:
    """Parse into a ``datetime.time``; end-of-day "24:00" is rejected here."""
    minutes = hours_to_minutes(parse_time_of_day(text))
    if minutes >= MINUTES_PER_DAY:
        raise ParseError(text, "24:00 is only valid as a range end")
    return minutes_to_time(minutes)


def format_time(t: time) -> str:
    return format_time_of_day(t.hour, t.minute)


def time_to_minutes(t: time, *, is_end_time: bool = False) -> int:
    """
    Convert time to minutes since midnight.

    Args:
        t: Time object.
        is_end_time: If True, treat time(0, 0) as 1440 (end of day).

    Returns:
        Minutes since midnight (0-1440).
    """
    minutes = t.hour * 60 + t.minute
    if is_end_time and minutes == 0:
        return MINUTES_PER_DAY
    return minutes


def minutes_to_time(minutes: int) -> time:
    """Minutes since midnight to ``time``; 1440 wraps to midnight."""
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValueError(f"minutes out of range: {minutes}")
    minutes %= MINUTES_PER_DAY
    return time(minutes // 60, minutes % 60)


def slot_index(t: time) -> int:
    """Index of the half-hour slot containing ``t``."""
    return time_to_minutes(t) // SLOT_MINUTES


def slot_start(index: int) -> time:
    if not 0 <= index < SLOTS_PER_DAY:
        raise ValueError(f"slot index out of range: {index}")
    return minutes_to_time(index * SLOT_MINUTES)


def is_on_grid(t: time) -> bool:
    return t.second == 0 and t.microsecond == 0 and time_to_minutes(t) % SLOT_MINUTES == 0


def slot_indexes_between(start_minutes: int, end_minutes: int) -> range:
    """Slots that lie entirely inside ``[start_minutes, end_minutes)``."""
    first = -(-start_minutes // SLOT_MINUTES)  # ceil
    last = end_minutes // SLOT_MINUTES
    return range(max(first, 0), min(last, SLOTS_PER_DAY))


def slot_indexes_touching(start_minutes: int, end_minutes: int) -> range:
    """Slots that intersect ``[start_minutes, end_minutes)``."""
    first = start_minutes // SLOT_MINUTES
    last = -(-end_minutes // SLOT_MINUTES)  # ceil
    return range(max(first, 0), min(last, SLOTS_PER_DAY))


def day_slot_times() -> List[time]:
    """All 48 slot start times of a day."""
    return [slot_start(i) for i in range(SLOTS_PER_DAY)]


# ---------------------------------------------------------------------------
# Exception slot keys
# ---------------------------------------------------------------------------


def build_slot_key(day: date, t: time) -> str:
    """``"2026-03-15-9 am"``."""
    return f"{day.isoformat()}-{format_time(t)}"


def parse_slot_key(key: str) -> SlotKey:
    """
    Parse a full-date ``"{YYYY-MM-DD}-{time}"`` key.

    Raises:
        ParseError: for malformed keys, including legacy month/day keys
    """
    date_part, sep, time_part = key.rpartition("-")
    if not sep or not date_part:
        raise ParseError(key, "missing '-' between date and time")
    try:
        day = date.fromisoformat(date_part)
    except ValueError as exc:
        raise ParseError(key, "date must be YYYY-MM-DD") from exc
    return SlotKey(day, parse_time(time_part))


def parse_legacy_slot_key(key: str, now: datetime) -> SlotKey:
    """
    Parse a legacy ``"{M/D}-{time}"`` key by picking the occurrence of that
    month/day nearest to ``now``.

    The year is not recoverable from these keys; this is for migrating stored
    data onto full-date keys, not for use inside the resolver.
    """
    date_part, sep, time_part = key.partition("-")
    match = _LEGACY_DATE.match(date_part.strip()) if sep else None
    if not match:
        raise ParseError(key, "expected M/D-time")

    month, day_of_month = int(match.group("month")), int(match.group("day"))
    today = now.date()
    candidates: List[date] = []
    for year in (today.year - 1, today.year, today.year + 1):
        try:
            candidates.append(date(year, month, day_of_month))
        except ValueError:
            continue
    if not candidates:
        raise ParseError(key, "no such calendar date")

    nearest = min(candidates, key=lambda d: (abs((d - today).days), d))
    return SlotKey(nearest, parse_time(time_part))
