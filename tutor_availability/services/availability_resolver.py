# tutor_availability/services/availability_resolver.py
"""
Availability Resolver

Pure computation of which half-hour slots a tutor has open on a date, from
three inputs: the weekly template, the dated exceptions, and the date itself.
Bookings are not considered here (see booking_reconciler).

Resolution order for one day:
1. Template: a slot is open if it lies entirely inside one of the day's ranges.
2. Add exceptions open their own slot even where the template is closed. A
   lesson starting on an Add may run past it (see booking_reconciler).
3. With at least one Add on the day, slots strictly between two consecutive
   Adds no more than an hour apart are opened as well.
4. Remove exceptions close their whole cell (``exception_span_minutes`` wide)
   and win over everything above.
5. Slots starting before ``now`` are dropped.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time
import logging
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from ..core.config import settings
from ..core.constants import ADD_BRIDGE_MAX_GAP_MINUTES, SLOT_MINUTES, SLOTS_PER_DAY
from ..core.enums import DayOfWeek, ExceptionType
from ..core.exceptions import InvariantViolation
from ..schemas.availability import ExceptionEntry, WeeklyTemplate
from ..utils.bitset import pack_indexes
from ..utils.time_grid import (
    slot_index,
    slot_indexes_between,
    slot_indexes_touching,
    slot_start,
    time_to_minutes,
)

logger = logging.getLogger(__name__)


def template_slot_indexes(template: Optional[WeeklyTemplate], day: DayOfWeek) -> Set[int]:
    """Slots fully covered by the template ranges for ``day``; overlapping ranges union."""
    if template is None:
        return set()
    covered: Set[int] = set()
    for time_range in template.ranges_for(day):
        covered.update(slot_indexes_between(time_range.start_minutes, time_range.end_minutes))
    return covered


def template_covers(
    template: Optional[WeeklyTemplate], day: DayOfWeek, start: time, end: time
) -> bool:
    """Whether ``[start, end)`` lies wholly inside the template's open slots for ``day``."""
    start_minutes = time_to_minutes(start)
    end_minutes = time_to_minutes(end, is_end_time=True)
    if end_minutes <= start_minutes:
        return False
    covered = template_slot_indexes(template, day)
    return all(idx in covered for idx in slot_indexes_touching(start_minutes, end_minutes))


def partition_exceptions(
    exceptions: Iterable[ExceptionEntry], target_date: date
) -> Tuple[Set[int], Set[int]]:
    """
    Split the exceptions dated ``target_date`` into Add and Remove start slots.

    A key carrying both types breaks the one-exception-per-key invariant; it is
    logged and resolved as Remove.
    """
    types_by_slot: Dict[int, Set[ExceptionType]] = defaultdict(set)
    for entry in exceptions:
        if entry.date != target_date:
            continue
        types_by_slot[slot_index(entry.time_of_day)].add(ExceptionType(entry.type))

    adds: Set[int] = set()
    removes: Set[int] = set()
    for idx, types in types_by_slot.items():
        if ExceptionType.REMOVE in types:
            removes.add(idx)
            if ExceptionType.ADD in types:
                violation = InvariantViolation(
                    "Add and Remove exceptions share a slot key; Remove wins",
                    details={"date": target_date.isoformat(), "time": slot_start(idx).isoformat()},
                )
                logger.warning(violation.message, extra=violation.details)
        else:
            adds.add(idx)
    return adds, removes


def _cells(starts: Iterable[int], span_slots: int) -> Set[int]:
    covered: Set[int] = set()
    for start in starts:
        covered.update(range(start, min(start + span_slots, SLOTS_PER_DAY)))
    return covered


def _bridged(add_starts: Iterable[int]) -> Set[int]:
    ordered = sorted(add_starts)
    bridged: Set[int] = set()
    for current, following in zip(ordered, ordered[1:]):
        if (following - current) * SLOT_MINUTES <= ADD_BRIDGE_MAX_GAP_MINUTES:
            bridged.update(range(current + 1, following))
    return bridged


def _span_slots(exception_span_minutes: Optional[int]) -> int:
    span = exception_span_minutes or settings.exception_span_minutes
    if span <= 0 or span % SLOT_MINUTES:
        raise ValueError(f"exception span must be a positive multiple of {SLOT_MINUTES} minutes")
    return span // SLOT_MINUTES


class DayResolution(NamedTuple):
    """Open slots for a day plus the exception slots the reconciler needs."""

    open_slots: List[time]
    add_starts: List[time]  # open slots that carry an Add exception
    closed_slots: List[time]  # slots inside a Remove cell


def _resolve(
    template: Optional[WeeklyTemplate],
    exceptions: Iterable[ExceptionEntry],
    target_date: date,
    now: Optional[datetime],
    exception_span_minutes: Optional[int],
) -> Tuple[Set[int], Set[int], Set[int]]:
    span_slots = _span_slots(exception_span_minutes)
    adds, removes = partition_exceptions(exceptions, target_date)
    closed = _cells(removes, span_slots)

    open_slots = template_slot_indexes(template, DayOfWeek.from_date(target_date))
    if adds:
        open_slots |= adds
        open_slots |= _bridged(adds)
    open_slots -= closed

    if now is not None:
        wall_now = now.replace(tzinfo=None)
        open_slots = {
            idx for idx in open_slots if datetime.combine(target_date, slot_start(idx)) >= wall_now
        }
    return open_slots, adds & open_slots, closed


def resolve_day_indexes(
    template: Optional[WeeklyTemplate],
    exceptions: Iterable[ExceptionEntry],
    target_date: date,
    *,
    now: Optional[datetime] = None,
    exception_span_minutes: Optional[int] = None,
) -> Set[int]:
    """Slot indexes (0..47) open on ``target_date``; see module docstring for the rules."""
    open_slots, _, _ = _resolve(template, exceptions, target_date, now, exception_span_minutes)
    return open_slots


def resolve_day(
    template: Optional[WeeklyTemplate],
    exceptions: Iterable[ExceptionEntry],
    target_date: date,
    *,
    now: Optional[datetime] = None,
    exception_span_minutes: Optional[int] = None,
) -> DayResolution:
    """Resolve one day, keeping the Add starts and Remove cells alongside the open slots."""
    open_slots, add_starts, closed = _resolve(
        template, exceptions, target_date, now, exception_span_minutes
    )
    return DayResolution(
        open_slots=[slot_start(idx) for idx in sorted(open_slots)],
        add_starts=[slot_start(idx) for idx in sorted(add_starts)],
        closed_slots=[slot_start(idx) for idx in sorted(closed)],
    )


def resolve_day_availability(
    template: Optional[WeeklyTemplate],
    exceptions: Iterable[ExceptionEntry],
    target_date: date,
    *,
    now: Optional[datetime] = None,
    exception_span_minutes: Optional[int] = None,
) -> List[time]:
    """
    Open slot start times for ``target_date``, ascending.

    Args:
        template: Weekly template; None means no recurring availability
        exceptions: Dated Add/Remove overrides (other dates are ignored)
        target_date: The day to resolve
        now: Tutor wall-clock time; slots starting before it are excluded
        exception_span_minutes: Cell width a Remove closes (defaults to settings)

    Returns:
        Sorted list of open half-hour slot start times
    """
    return resolve_day(
        template,
        exceptions,
        target_date,
        now=now,
        exception_span_minutes=exception_span_minutes,
    ).open_slots


def resolve_day_bits(
    template: Optional[WeeklyTemplate],
    exceptions: Iterable[ExceptionEntry],
    target_date: date,
    *,
    now: Optional[datetime] = None,
    exception_span_minutes: Optional[int] = None,
) -> bytes:
    """Same result as resolve_day_availability packed into the 6-byte day bitmap."""
    return pack_indexes(
        resolve_day_indexes(
            template,
            exceptions,
            target_date,
            now=now,
            exception_span_minutes=exception_span_minutes,
        )
    )
