# tutor_availability/schemas/availability.py
"""
Availability schemas for the tutor availability engine.

Structured values only: raw ``"{date}-{time}"`` keys and 12-hour strings are
parsed here, at the boundary, and never travel further into the resolver.
"""

import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..core.enums import DayOfWeek, ExceptionType
from ..utils.time_grid import (
    build_slot_key,
    format_time,
    hours_to_minutes,
    is_on_grid,
    minutes_to_time,
    parse_slot_key,
    parse_time,
    parse_time_of_day,
    time_to_minutes,
)
from .base import StandardizedModel, StrictModel

# Type aliases for clarity
DateType = datetime.date
TimeType = datetime.time
DateTimeType = datetime.datetime


def _coerce_time(value: Any) -> Any:
    if isinstance(value, str):
        return parse_time(value)
    return value


class TimeRange(StrictModel):
    """
    One recurring window of a weekly template.

    ``end_time`` of midnight means end of day, so "9 pm" - "12 am" covers the
    last three hours.
    """

    start_time: TimeType
    end_time: TimeType

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start(cls, value: Any) -> Any:
        return _coerce_time(value)

    @field_validator("end_time", mode="before")
    @classmethod
    def _parse_end(cls, value: Any) -> Any:
        if isinstance(value, str):
            minutes = hours_to_minutes(parse_time_of_day(value))
            return minutes_to_time(minutes)
        return value

    @model_validator(mode="after")
    def _validate_order(self) -> "TimeRange":
        if self.end_minutes <= self.start_minutes:
            raise ValueError("End time must be after start time")
        return self

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time, is_end_time=True)

    def __str__(self) -> str:
        return f"{format_time(self.start_time)} - {format_time(self.end_time)}"


class WeeklyTemplate(StandardizedModel):
    """Tutor's recurring availability keyed by day of week."""

    model_config = ConfigDict(use_enum_values=False, populate_by_name=True)

    days: Dict[DayOfWeek, List[TimeRange]] = Field(default_factory=dict)

    def ranges_for(self, day: DayOfWeek) -> List[TimeRange]:
        return list(self.days.get(day, []))

    def is_empty(self) -> bool:
        return not any(self.days.values())

    @classmethod
    def from_document(cls, document: Optional[Mapping[str, Any]]) -> "WeeklyTemplate":
        """
        Build from the stored document shape:
        ``{"Monday": [{"startTime": "9 am", "endTime": "5 pm"}], ...}``.
        """
        days: Dict[DayOfWeek, List[TimeRange]] = {}
        for day_name, ranges in (document or {}).items():
            day = DayOfWeek(day_name)
            days[day] = [
                TimeRange(
                    start_time=item.get("startTime", item.get("start_time")),
                    end_time=item.get("endTime", item.get("end_time")),
                )
                for item in ranges or []
            ]
        return cls(days=days)

    def to_document(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            day.value: [
                {"startTime": format_time(r.start_time), "endTime": format_time(r.end_time)}
                for r in ranges
            ]
            for day, ranges in self.days.items()
            if ranges
        }


class ExceptionEntry(StrictModel):
    """A dated Add/Remove override for one calendar cell."""

    date: DateType
    time_of_day: TimeType
    type: ExceptionType

    @field_validator("time_of_day", mode="before")
    @classmethod
    def _parse_time_of_day(cls, value: Any) -> Any:
        return _coerce_time(value)

    @field_validator("time_of_day")
    @classmethod
    def _on_grid(cls, value: TimeType) -> TimeType:
        if not is_on_grid(value):
            raise ValueError("Exceptions must start on a 30-minute boundary")
        return value

    @property
    def slot_key(self) -> str:
        return build_slot_key(self.date, self.time_of_day)

    @property
    def key(self) -> tuple[DateType, TimeType]:
        return (self.date, self.time_of_day)

    @classmethod
    def from_slot_key(cls, slot_key: str, type: ExceptionType | str) -> "ExceptionEntry":
        parsed = parse_slot_key(slot_key)
        return cls(date=parsed.date, time_of_day=parsed.time_of_day, type=ExceptionType(type))


class ExceptionDiff(StandardizedModel):
    """Minimal set of exception writes derived from a calendar edit."""

    to_add: List[ExceptionEntry] = Field(default_factory=list)
    to_remove: List[ExceptionEntry] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove

    def affected_dates(self) -> List[DateType]:
        return sorted({e.date for e in self.to_add} | {e.date for e in self.to_remove})


class GridCell(StrictModel):
    """One cell of the tutor's editable calendar as displayed/submitted."""

    date: DateType
    time_of_day: TimeType
    available: bool

    @field_validator("time_of_day", mode="before")
    @classmethod
    def _parse_time_of_day(cls, value: Any) -> Any:
        return _coerce_time(value)


class ResolvedSlot(StandardizedModel):
    """Derived per-slot state for one render/request; never persisted."""

    time_of_day: TimeType
    is_available: bool
    is_booked: bool
    is_past: bool

    @property
    def label(self) -> str:
        return format_time(self.time_of_day)

    @property
    def is_bookable_start(self) -> bool:
        return self.is_available and not self.is_booked and not self.is_past


class DayAvailability(StandardizedModel):
    """Everything the booking calendar needs for one date."""

    tutor_id: str
    date: DateType
    slots: List[ResolvedSlot]
    bookable_start_times: List[TimeType]
    lesson_duration_minutes: int


class AvailabilityChangedEvent(BaseModel):
    """Push notification that a tutor's availability inputs changed."""

    tutor_id: str
    reason: str
    dates: List[DateType] = Field(default_factory=list)
    occurred_at: DateTimeType = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )
