# tutor_availability/core/enums.py
"""
Core enums for the tutor availability engine.

Stored values are lowercase strings so rows written by earlier tooling
("add"/"remove", "scheduled") remain readable.
"""

from datetime import date
from enum import Enum


class DayOfWeek(str, Enum):
    """Days of the week, Sunday first as the tutor calendar displays them."""

    SUNDAY = "Sunday"
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        # date.weekday() is Monday=0; shift so Sunday leads
        return _ORDERED_DAYS[(value.weekday() + 1) % 7]

    @property
    def index(self) -> int:
        """Sunday=0 .. Saturday=6."""
        return _ORDERED_DAYS.index(self)


_ORDERED_DAYS = list(DayOfWeek)


class ExceptionType(str, Enum):
    """Kind of date-specific override applied on top of the weekly template."""

    ADD = "add"  # force the cell open
    REMOVE = "remove"  # force the cell closed


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING_PAYMENT = "pending_payment"  # hold while checkout completes
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.SCHEDULED, BookingStatus.RESCHEDULED})
