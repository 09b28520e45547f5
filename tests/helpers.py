"""Shared test helpers: fixed dates, a settable clock and small builders."""

from datetime import date, datetime, time
from typing import Optional

from tutor_availability.core.enums import BookingStatus, ExceptionType
from tutor_availability.schemas.availability import ExceptionEntry

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)
TUTOR_ID = "tutor-1"
STUDENT_ID = "student-1"


class FrozenClock:
    """Callable clock returning a settable aware UTC instant."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


class FakeBooking:
    """Minimal booking shape accepted by the reconciler."""

    def __init__(
        self,
        booking_date: date,
        start_time: time,
        duration_minutes: int = 60,
        status: BookingStatus = BookingStatus.SCHEDULED,
        id: Optional[str] = None,
    ):
        self.id = id or f"{booking_date}-{start_time}"
        self.booking_date = booking_date
        self.start_time = start_time
        self.duration_minutes = duration_minutes
        self.status = status


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


def add(day: date, text: str) -> ExceptionEntry:
    return ExceptionEntry(date=day, time_of_day=text, type=ExceptionType.ADD)


def remove(day: date, text: str) -> ExceptionEntry:
    return ExceptionEntry(date=day, time_of_day=text, type=ExceptionType.REMOVE)


def times(*labels: str) -> list:
    """``times("9:00", "9:30")`` -> list of ``datetime.time``."""
    out = []
    for label in labels:
        hour, minute = label.split(":")
        out.append(time(int(hour), int(minute)))
    return out


NINE_TO_FIVE_MONDAY = {"Monday": [{"startTime": "9 am", "endTime": "5 pm"}]}
