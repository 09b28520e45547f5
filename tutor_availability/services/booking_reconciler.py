# tutor_availability/services/booking_reconciler.py
"""
Slot-Booking Reconciler

Subtracts active bookings from the resolver's open slots. Every interval is
half-open, ``[start, start + duration)``, so lessons that only touch end to
start never conflict. Booking durations are always read from the booking.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
import logging
import math
from typing import Any, Iterable, List, Optional, Protocol, Set, Tuple

from ..core.config import settings
from ..core.constants import SLOT_MINUTES, SLOTS_PER_DAY
from ..core.enums import ACTIVE_BOOKING_STATUSES, BookingStatus
from ..schemas.availability import ResolvedSlot
from ..utils.time_grid import slot_index, slot_start

logger = logging.getLogger(__name__)


class BookingLike(Protocol):
    """What the reconciler reads from a booking (ORM row or snapshot)."""

    id: Any
    booking_date: date
    start_time: time
    duration_minutes: int
    status: Any


Interval = Tuple[datetime, datetime]


def is_active(booking: BookingLike) -> bool:
    """Scheduled and rescheduled lessons occupy time; nothing else does."""
    return BookingStatus(booking.status) in ACTIVE_BOOKING_STATUSES


def booking_interval(booking: BookingLike) -> Interval:
    start = datetime.combine(booking.booking_date, booking.start_time)
    return start, start + timedelta(minutes=int(booking.duration_minutes))


def booking_dates(booking: BookingLike) -> List[date]:
    """Days the lesson occupies: its start date, plus the next day if it runs past midnight."""
    start, end = booking_interval(booking)
    last = (end - timedelta(microseconds=1)).date()
    return [start.date() + timedelta(days=n) for n in range((last - start.date()).days + 1)]


def intervals_overlap(
    start: datetime, end: datetime, other_start: datetime, other_end: datetime
) -> bool:
    """Half-open interval intersection; touching endpoints do not overlap."""
    return start < other_end and end > other_start


def active_intervals_for_day(bookings: Iterable[BookingLike], target_date: date) -> List[Interval]:
    """Active booking intervals that intersect ``target_date``, including ones crossing midnight."""
    day_start = datetime.combine(target_date, time.min)
    day_end = day_start + timedelta(days=1)
    intervals: List[Interval] = []
    for booking in bookings:
        if not is_active(booking):
            continue
        start, end = booking_interval(booking)
        if intervals_overlap(start, end, day_start, day_end):
            intervals.append((start, end))
    return intervals


def find_conflicts(
    bookings: Iterable[BookingLike],
    start: datetime,
    duration_minutes: int,
    *,
    exclude_booking_id: Optional[Any] = None,
) -> List[BookingLike]:
    """Active bookings overlapping a prospective lesson."""
    end = start + timedelta(minutes=duration_minutes)
    conflicts = []
    for booking in bookings:
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        if not is_active(booking):
            continue
        other_start, other_end = booking_interval(booking)
        if intervals_overlap(start, end, other_start, other_end):
            conflicts.append(booking)
    return conflicts


def slots_needed(duration_minutes: int) -> int:
    if duration_minutes <= 0:
        raise ValueError("lesson duration must be positive")
    return math.ceil(duration_minutes / SLOT_MINUTES)


def lesson_fits_open_slots(
    open_indexes: Set[int],
    start_index: int,
    duration_minutes: int,
    add_indexes: Optional[Set[int]] = None,
    closed_indexes: Optional[Set[int]] = None,
) -> bool:
    """
    Whether a lesson starting at ``start_index`` fits the day's open slots.

    Normally every half-hour slot the lesson touches must be open. A lesson
    starting on an open Add slot may run past it into closed time, but never
    into a slot a Remove exception closed. Lessons never cross midnight.
    """
    needed = slots_needed(duration_minutes)
    if start_index + needed > SLOTS_PER_DAY or start_index not in open_indexes:
        return False
    touched = range(start_index, start_index + needed)
    if add_indexes and start_index in add_indexes:
        return not any(idx in (closed_indexes or set()) for idx in touched)
    return all(idx in open_indexes for idx in touched)


def compute_bookable_slots(
    open_slots: Iterable[time],
    bookings: Iterable[BookingLike],
    target_date: date,
    lesson_duration_minutes: Optional[int] = None,
    *,
    add_starts: Iterable[time] = (),
    closed_slots: Iterable[time] = (),
) -> List[time]:
    """
    Start times a lesson of ``lesson_duration_minutes`` can be booked at.

    A start is bookable when the lesson fits the open slots (see
    lesson_fits_open_slots) and its interval does not intersect any active
    booking on the day.

    Args:
        open_slots: Output of the availability resolver for ``target_date``
        bookings: Bookings for the tutor around ``target_date`` (any status)
        target_date: The day being reconciled
        lesson_duration_minutes: Length of the lesson being offered
        add_starts: Open slots carrying an Add exception
        closed_slots: Slots closed by Remove exceptions

    Returns:
        Ordered bookable start times
    """
    duration = lesson_duration_minutes or settings.default_lesson_duration_minutes
    open_indexes = {slot_index(t) for t in open_slots}
    add_indexes = {slot_index(t) for t in add_starts}
    closed_indexes = {slot_index(t) for t in closed_slots}
    busy = active_intervals_for_day(bookings, target_date)

    bookable: List[time] = []
    for idx in sorted(open_indexes):
        if not lesson_fits_open_slots(open_indexes, idx, duration, add_indexes, closed_indexes):
            continue
        start = datetime.combine(target_date, slot_start(idx))
        end = start + timedelta(minutes=duration)
        if any(intervals_overlap(start, end, b_start, b_end) for b_start, b_end in busy):
            continue
        bookable.append(slot_start(idx))
    return bookable


def is_exact_slot_booked(
    bookings: Iterable[BookingLike], target_date: date, start_time: time
) -> bool:
    """True when an active booking starts exactly at ``target_date`` ``start_time``."""
    return any(
        is_active(b) and b.booking_date == target_date and b.start_time == start_time
        for b in bookings
    )


def resolve_day_slots(
    open_slots: Iterable[time],
    bookings: Iterable[BookingLike],
    target_date: date,
    *,
    now: Optional[datetime] = None,
) -> List[ResolvedSlot]:
    """One ResolvedSlot per half-hour of ``target_date`` for the calendar grid."""
    open_indexes = {slot_index(t) for t in open_slots}
    busy = active_intervals_for_day(bookings, target_date)
    wall_now = now.replace(tzinfo=None) if now is not None else None

    rows: List[ResolvedSlot] = []
    for idx in range(SLOTS_PER_DAY):
        start = datetime.combine(target_date, slot_start(idx))
        end = start + timedelta(minutes=SLOT_MINUTES)
        is_past = wall_now is not None and start < wall_now
        rows.append(
            ResolvedSlot(
                time_of_day=slot_start(idx),
                is_available=idx in open_indexes and not is_past,
                is_booked=any(intervals_overlap(start, end, b_s, b_e) for b_s, b_e in busy),
                is_past=is_past,
            )
        )
    return rows
