# tutor_availability/services/exception_diff.py
"""
Exception diff for calendar edits.

The tutor's calendar shows one editable cell per ``exception_span_minutes``.
A cell's state is its exception when one exists, otherwise whether the weekly
template covers the cell's first slot. Saving compares the submitted cells to
that state and produces the smallest set of exception writes:

- unchanged cell            -> nothing
- changed back to template  -> drop the existing exception
- changed away from template -> (replace and) write an Add or Remove
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.constants import SLOT_MINUTES
from ..core.enums import DayOfWeek, ExceptionType
from ..schemas.availability import ExceptionDiff, ExceptionEntry, GridCell, WeeklyTemplate
from ..utils.time_grid import minutes_to_time, time_to_minutes
from .availability_resolver import template_covers

ExceptionKey = Tuple[date, time]


def index_exceptions(exceptions: Iterable[ExceptionEntry]) -> Dict[ExceptionKey, ExceptionEntry]:
    """Key exceptions by (date, time); on duplicate keys a Remove is kept."""
    indexed: Dict[ExceptionKey, ExceptionEntry] = {}
    for entry in exceptions:
        existing = indexed.get(entry.key)
        if existing is not None and ExceptionType(existing.type) == ExceptionType.REMOVE:
            continue
        indexed[entry.key] = entry
    return indexed


def template_cell_state(template: Optional[WeeklyTemplate], day: date, cell_time: time) -> bool:
    """A cell reads as template-open when the template covers its first half hour."""
    return template_covers(
        template,
        DayOfWeek.from_date(day),
        cell_time,
        minutes_to_time(time_to_minutes(cell_time) + SLOT_MINUTES),
    )


def cell_state(
    template: Optional[WeeklyTemplate],
    exceptions_by_key: Dict[ExceptionKey, ExceptionEntry],
    day: date,
    cell_time: time,
) -> bool:
    """Whether the editable cell currently reads as available."""
    existing = exceptions_by_key.get((day, cell_time))
    if existing is not None:
        return ExceptionType(existing.type) == ExceptionType.ADD
    return template_cell_state(template, day, cell_time)


def build_editable_grid(
    template: Optional[WeeklyTemplate],
    exceptions: Iterable[ExceptionEntry],
    days: Sequence[date],
    cell_times: Sequence[time],
) -> List[GridCell]:
    """Cells the calendar renders for editing, in day then time order."""
    indexed = index_exceptions(exceptions)
    return [
        GridCell(date=day, time_of_day=t, available=cell_state(template, indexed, day, t))
        for day in days
        for t in cell_times
    ]


def compute_exception_diff(
    template: Optional[WeeklyTemplate],
    exceptions: Iterable[ExceptionEntry],
    displayed: Iterable[GridCell],
    *,
    now: Optional[datetime] = None,
) -> ExceptionDiff:
    """
    Exception writes that turn the loaded state into the displayed state.

    Cells that start before ``now`` are never rewritten. Resubmitting the grid
    exactly as loaded yields an empty diff.
    """
    indexed = index_exceptions(exceptions)
    wall_now = now.replace(tzinfo=None) if now is not None else None
    diff = ExceptionDiff()

    for cell in displayed:
        if wall_now is not None and datetime.combine(cell.date, cell.time_of_day) < wall_now:
            continue
        key = (cell.date, cell.time_of_day)
        if cell.available == cell_state(template, indexed, cell.date, cell.time_of_day):
            continue

        existing = indexed.get(key)
        if existing is not None:
            diff.to_remove.append(existing)
        if cell.available != template_cell_state(template, cell.date, cell.time_of_day):
            diff.to_add.append(
                ExceptionEntry(
                    date=cell.date,
                    time_of_day=cell.time_of_day,
                    type=ExceptionType.ADD if cell.available else ExceptionType.REMOVE,
                )
            )
    return diff


def week_dates(week_start: date) -> List[date]:
    """Seven consecutive dates starting at ``week_start``."""
    return [week_start + timedelta(days=offset) for offset in range(7)]
