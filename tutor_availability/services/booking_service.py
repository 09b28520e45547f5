# tutor_availability/services/booking_service.py
"""
Booking Service for the tutor availability engine.

Handles the lesson lifecycle against tutor availability:
- create (directly or through a payment hold)
- reschedule and cancel, subject to the change policy window
- complete
- release of abandoned payment holds

Every mutation re-checks conflicts inside one transaction while holding the
tutor row lock (and the Redis tutor-day mutex when configured).
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
import logging
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock
from ..core.broadcast import notify_availability_changed
from ..core.config import settings
from ..core.enums import ACTIVE_BOOKING_STATUSES, BookingStatus
from ..core.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    PolicyViolation,
    SlotConflict,
    SlotUnavailable,
)
from ..core.timezone_utils import Clock, as_utc, utc_now
from ..models.booking import Booking
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import AvailabilityChangedEvent
from ..schemas.booking import BookingCreate, BookingReschedule
from ..utils.time_grid import slot_index
from .availability_service import AvailabilityService
from .base import BaseService
from .booking_reconciler import booking_dates, find_conflicts, lesson_fits_open_slots

if TYPE_CHECKING:
    from ..repositories.availability_cache import AvailabilityCache
    from ..repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)


class BookingService(BaseService):
    """Service layer for booking operations."""

    def __init__(
        self,
        db: Session,
        availability_service: Optional[AvailabilityService] = None,
        cache: Optional["AvailabilityCache"] = None,
        repository: Optional["BookingRepository"] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize booking service with optional collaborators and clock."""
        super().__init__(db, cache=cache)
        self.clock: Clock = clock or utc_now
        self.repository = repository or RepositoryFactory.create_booking_repository(db)
        self.availability_service = availability_service or AvailabilityService(
            db, cache=cache, booking_repository=self.repository, clock=self.clock
        )

    # ----- helpers -----

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        return booking

    def _require_within_availability(
        self, tutor_id: str, booking_date: date, start_time: time, duration_minutes: int
    ) -> None:
        """The lesson must fit the tutor's open (and future) slots for the day."""
        day = self.availability_service.resolve_open_day(tutor_id, booking_date)
        fits = lesson_fits_open_slots(
            {slot_index(t) for t in day.open_slots},
            slot_index(start_time),
            duration_minutes,
            {slot_index(t) for t in day.add_starts},
            {slot_index(t) for t in day.closed_slots},
        )
        if not fits:
            raise SlotUnavailable(
                details={
                    "tutor_id": tutor_id,
                    "booking_date": booking_date.isoformat(),
                    "start_time": start_time.isoformat(),
                    "duration_minutes": duration_minutes,
                }
            )

    def _hours_until_start(self, booking: Booking) -> float:
        now = self.availability_service.tutor_now(booking.tutor_id)
        return (booking.start_datetime - now).total_seconds() / 3600

    def _enforce_change_policy(self, booking: Booking, action: str) -> None:
        hours_until = self._hours_until_start(booking)
        if hours_until < settings.change_policy_hours:
            raise PolicyViolation(action, settings.change_policy_hours, hours_until)

    def _require_status(self, booking: Booking, allowed: Iterable[BookingStatus]) -> None:
        if BookingStatus(booking.status) not in set(allowed):
            raise BusinessRuleException(
                f"Booking {booking.id} is {booking.status}",
                code="INVALID_BOOKING_STATUS",
                details={"booking_id": booking.id, "status": booking.status},
            )

    @contextmanager
    def _tutor_day_lock(self, tutor_id: str, day: date) -> Iterator[None]:
        with booking_lock(tutor_id, day) as acquired:
            if not acquired:
                raise ConflictException(
                    "Another booking for this tutor and day is in progress; please retry",
                    code="BOOKING_IN_PROGRESS",
                    details={"tutor_id": tutor_id, "day": day.isoformat()},
                )
            yield

    def _changed(self, tutor_id: str, reason: str, dates: Iterable[date]) -> None:
        affected = sorted(set(dates))
        self.invalidate_availability(tutor_id, affected)
        notify_availability_changed(
            AvailabilityChangedEvent(tutor_id=tutor_id, reason=reason, dates=affected)
        )

    # ----- lifecycle -----

    @BaseService.measure_operation("create_booking")
    def create_booking(self, data: BookingCreate) -> Booking:
        """
        Book a lesson.

        Args:
            data: Tutor, student, date, start time and duration

        Returns:
            The scheduled booking

        Raises:
            SlotUnavailable: the lesson is outside published availability
            SlotConflict: another active lesson overlaps it
        """
        self._require_within_availability(
            data.tutor_id, data.booking_date, data.start_time, data.duration_minutes
        )

        with self._tutor_day_lock(data.tutor_id, data.booking_date):
            try:
                with self.transaction():
                    booking = self.repository.insert_booking_atomic(
                        tutor_id=data.tutor_id,
                        student_id=data.student_id,
                        booking_date=data.booking_date,
                        start_time=data.start_time,
                        duration_minutes=data.duration_minutes,
                        status=BookingStatus.SCHEDULED.value,
                    )
            except SlotConflict:
                prometheus_metrics.record_booking_conflict("create_booking")
                raise

        self.log_operation(
            "create_booking",
            booking_id=booking.id,
            tutor_id=booking.tutor_id,
            booking_date=booking.booking_date.isoformat(),
        )
        self._changed(booking.tutor_id, "booking_created", booking_dates(booking))
        return booking

    @BaseService.measure_operation("create_payment_hold")
    def create_payment_hold(self, data: BookingCreate) -> Booking:
        """
        Reserve a lesson pending payment.

        Holds do not occupy the tutor's time; the slot is re-checked when the
        hold is confirmed.
        """
        self._require_within_availability(
            data.tutor_id, data.booking_date, data.start_time, data.duration_minutes
        )
        active = self.repository.get_bookings_in_range(
            data.tutor_id,
            data.booking_date - timedelta(days=1),
            data.booking_date + timedelta(days=1),
            statuses=ACTIVE_BOOKING_STATUSES,
        )
        start = datetime.combine(data.booking_date, data.start_time)
        if find_conflicts(active, start, data.duration_minutes):
            prometheus_metrics.record_booking_conflict("create_payment_hold")
            raise SlotConflict()

        with self.transaction():
            booking = self.repository.create(
                tutor_id=data.tutor_id,
                student_id=data.student_id,
                booking_date=data.booking_date,
                start_time=data.start_time,
                duration_minutes=data.duration_minutes,
                status=BookingStatus.PENDING_PAYMENT.value,
                hold_expires_at=self.clock() + timedelta(minutes=settings.payment_hold_minutes),
            )

        self.log_operation("create_payment_hold", booking_id=booking.id, tutor_id=data.tutor_id)
        return booking

    @BaseService.measure_operation("confirm_payment_hold")
    def confirm_payment_hold(self, booking_id: str, payment_reference: str) -> Booking:
        """
        Schedule a held lesson once payment succeeds.

        Raises:
            BusinessRuleException: the hold expired or is not pending
            SlotConflict: the time was booked by someone else meanwhile
        """
        booking = self._get_booking(booking_id)
        self._require_status(booking, [BookingStatus.PENDING_PAYMENT])

        expires_at = booking.hold_expires_at
        if expires_at is not None and as_utc(expires_at) <= self.clock():
            raise BusinessRuleException(
                "Payment hold has expired",
                code="HOLD_EXPIRED",
                details={"booking_id": booking.id},
            )

        with self._tutor_day_lock(booking.tutor_id, booking.booking_date):
            try:
                with self.transaction():
                    booking = self.repository.activate_booking_atomic(
                        booking, payment_reference=payment_reference
                    )
            except SlotConflict:
                prometheus_metrics.record_booking_conflict("confirm_payment_hold")
                raise

        self.log_operation("confirm_payment_hold", booking_id=booking.id)
        self._changed(booking.tutor_id, "booking_created", booking_dates(booking))
        return booking

    @BaseService.measure_operation("reschedule_booking")
    def reschedule_booking(self, booking_id: str, data: BookingReschedule) -> Booking:
        """
        Move a lesson to a new time.

        Raises:
            PolicyViolation: the lesson starts within the change window
            SlotUnavailable: the new time is outside published availability
            SlotConflict: another active lesson overlaps the new time
        """
        booking = self._get_booking(booking_id)
        self._require_status(booking, ACTIVE_BOOKING_STATUSES)
        self._enforce_change_policy(booking, "rescheduled")

        duration = data.duration_minutes or booking.duration_minutes
        self._require_within_availability(
            booking.tutor_id, data.new_date, data.new_start_time, duration
        )
        old_date = booking.booking_date
        old_dates = booking_dates(booking)

        with self._tutor_day_lock(booking.tutor_id, data.new_date):
            try:
                with self.transaction():
                    booking = self.repository.move_booking_atomic(
                        booking, data.new_date, data.new_start_time, duration
                    )
            except SlotConflict:
                prometheus_metrics.record_booking_conflict("reschedule_booking")
                raise

        self.log_operation(
            "reschedule_booking",
            booking_id=booking.id,
            from_date=old_date.isoformat(),
            to_date=booking.booking_date.isoformat(),
        )
        self._changed(
            booking.tutor_id, "booking_rescheduled", [*old_dates, *booking_dates(booking)]
        )
        return booking

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """
        Cancel a lesson or an outstanding payment hold.

        Raises:
            PolicyViolation: a scheduled lesson starts within the change window
        """
        booking = self._get_booking(booking_id)
        self._require_status(booking, [BookingStatus.PENDING_PAYMENT, *ACTIVE_BOOKING_STATUSES])
        was_active = booking.is_active
        if was_active:
            self._enforce_change_policy(booking, "cancelled")

        with self.transaction():
            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = self.clock()
            booking.cancellation_reason = reason
            booking.hold_expires_at = None

        self.log_operation("cancel_booking", booking_id=booking.id, reason=reason)
        if was_active:
            self._changed(booking.tutor_id, "booking_cancelled", booking_dates(booking))
        return booking

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, booking_id: str) -> Booking:
        """Mark a scheduled lesson as taught."""
        booking = self._get_booking(booking_id)
        self._require_status(booking, ACTIVE_BOOKING_STATUSES)

        with self.transaction():
            booking.status = BookingStatus.COMPLETED.value
            booking.completed_at = self.clock()

        self.log_operation("complete_booking", booking_id=booking.id)
        self._changed(booking.tutor_id, "booking_completed", booking_dates(booking))
        return booking

    @BaseService.measure_operation("release_expired_holds")
    def release_expired_holds(self, now: Optional[datetime] = None) -> List[str]:
        """
        Cancel payment holds whose expiry has passed.

        Returns:
            IDs of the released bookings
        """
        moment = now or self.clock()
        with self.transaction():
            expired = self.repository.get_expired_holds(moment)
            for booking in expired:
                booking.status = BookingStatus.CANCELLED.value
                booking.cancelled_at = moment
                booking.cancellation_reason = "payment_hold_expired"
                booking.hold_expires_at = None

        released = [b.id for b in expired]
        if released:
            self.log_operation("release_expired_holds", released=len(released))
        return released
