# tutor_availability/schemas/booking.py
"""
Booking request schemas.

Durations default to the configured lesson length; start times accept the
same "9 am" / "14:30" strings as availability.
"""

import datetime
from typing import Any, Optional

from pydantic import Field, field_validator

from ..core.config import settings
from ..utils.time_grid import is_on_grid, parse_time
from .base import StrictModel

DateType = datetime.date
TimeType = datetime.time


def _parse_start(value: Any) -> Any:
    if isinstance(value, str):
        return parse_time(value)
    return value


def _require_grid(value: TimeType) -> TimeType:
    if not is_on_grid(value):
        raise ValueError("Lessons must start on a 30-minute boundary")
    return value


class BookingCreate(StrictModel):
    """Request to book a lesson with a tutor."""

    tutor_id: str = Field(..., min_length=1)
    student_id: str = Field(..., min_length=1)
    booking_date: DateType
    start_time: TimeType
    duration_minutes: int = Field(default_factory=lambda: settings.default_lesson_duration_minutes)

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, value: Any) -> Any:
        return _parse_start(value)

    @field_validator("start_time")
    @classmethod
    def _start_on_grid(cls, value: TimeType) -> TimeType:
        return _require_grid(value)

    @field_validator("duration_minutes")
    @classmethod
    def _positive_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Duration must be positive")
        return value


class BookingReschedule(StrictModel):
    """Move an existing lesson to a new date/time."""

    new_date: DateType
    new_start_time: TimeType
    duration_minutes: Optional[int] = None

    @field_validator("new_start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, value: Any) -> Any:
        return _parse_start(value)

    @field_validator("new_start_time")
    @classmethod
    def _start_on_grid(cls, value: TimeType) -> TimeType:
        return _require_grid(value)
