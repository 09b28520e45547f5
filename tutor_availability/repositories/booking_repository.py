# tutor_availability/repositories/booking_repository.py
"""
BookingRepository - booking reads and the atomic conflict-checked insert.

Overlap is evaluated in Python on the rows of the affected days so the same
half-open rule is used here and in the reconciler.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Iterable, List, Optional, cast

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import ACTIVE_BOOKING_STATUSES, BookingStatus
from ..core.exceptions import RepositoryException, SlotConflict
from ..core.timezone_utils import as_utc
from ..models.booking import Booking
from ..services.booking_reconciler import find_conflicts
from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)
        self.tutors = AvailabilityRepository(db)

    def create(self, **kwargs: Any) -> Booking:
        """Create a booking; a unique-index hit on an active start becomes SlotConflict."""
        try:
            return super().create(**kwargs)
        except RepositoryException as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise SlotConflict(
                    details={
                        "tutor_id": kwargs.get("tutor_id"),
                        "booking_date": str(kwargs.get("booking_date")),
                        "start_time": str(kwargs.get("start_time")),
                    }
                ) from exc.__cause__
            raise

    def get_bookings_in_range(
        self,
        tutor_id: str,
        start_date: date,
        end_date: date,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        """
        Bookings for a tutor dated within ``[start_date, end_date]``.

        Args:
            tutor_id: The tutor ID
            start_date: First date (inclusive)
            end_date: Last date (inclusive)
            statuses: Optional status filter; all statuses when omitted

        Returns:
            Bookings ordered by date and start time
        """
        try:
            query = self.db.query(Booking).filter(
                Booking.tutor_id == tutor_id,
                Booking.booking_date >= start_date,
                Booking.booking_date <= end_date,
            )
            if statuses is not None:
                query = query.filter(Booking.status.in_([BookingStatus(s).value for s in statuses]))
            return cast(
                List[Booking], query.order_by(Booking.booking_date, Booking.start_time).all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting bookings in range: {str(e)}")
            raise RepositoryException(f"Failed to get bookings: {str(e)}")

    def get_active_bookings_around(self, tutor_id: str, target_date: date) -> List[Booking]:
        """Active bookings on ``target_date`` plus the previous day (lessons crossing midnight)."""
        return self.get_bookings_in_range(
            tutor_id,
            target_date - timedelta(days=1),
            target_date,
            statuses=ACTIVE_BOOKING_STATUSES,
        )

    def _check_conflicts_locked(
        self,
        tutor_id: str,
        booking_date: date,
        start_time: time,
        duration_minutes: int,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        self.tutors.lock_tutor(tutor_id)
        candidates = self.get_bookings_in_range(
            tutor_id,
            booking_date - timedelta(days=1),
            booking_date + timedelta(days=1),
            statuses=ACTIVE_BOOKING_STATUSES,
        )
        conflicts = find_conflicts(
            candidates,
            datetime.combine(booking_date, start_time),
            duration_minutes,
            exclude_booking_id=exclude_booking_id,
        )
        if conflicts:
            raise SlotConflict(
                details={
                    "tutor_id": tutor_id,
                    "booking_date": booking_date.isoformat(),
                    "start_time": start_time.isoformat(),
                    "conflicting_booking_ids": [b.id for b in conflicts],
                }
            )

    def _flush_or_conflict(self, booking: Booking) -> Booking:
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.logger.warning("Unique start index rejected booking %s", booking.id)
            self.db.rollback()
            raise SlotConflict(details={"booking_id": booking.id}) from exc
        return booking

    def insert_booking_atomic(
        self,
        *,
        tutor_id: str,
        booking_date: date,
        start_time: time,
        duration_minutes: int,
        **fields: Any,
    ) -> Booking:
        """
        Take the tutor lock, re-check conflicts, then insert.

        The caller's transaction must stay open until commit for the lock to
        hold; a concurrent writer for the same tutor waits in lock_tutor and
        then sees this booking. The partial unique index on active starts
        backs this up.

        Raises:
            SlotConflict: when an active booking overlaps the requested interval
        """
        self._check_conflicts_locked(tutor_id, booking_date, start_time, duration_minutes)
        return self.create(
            tutor_id=tutor_id,
            booking_date=booking_date,
            start_time=start_time,
            duration_minutes=duration_minutes,
            **fields,
        )

    def move_booking_atomic(
        self,
        booking: Booking,
        new_date: date,
        new_start_time: time,
        duration_minutes: Optional[int] = None,
    ) -> Booking:
        """
        Move an existing booking under the same lock and conflict rule.

        The booking's own interval is excluded from the check. The first
        original date/time is kept across repeated reschedules.
        """
        duration = duration_minutes or booking.duration_minutes
        self._check_conflicts_locked(
            booking.tutor_id, new_date, new_start_time, duration, exclude_booking_id=booking.id
        )

        if booking.original_date is None:
            booking.original_date = booking.booking_date
            booking.original_start_time = booking.start_time
        booking.booking_date = new_date
        booking.start_time = new_start_time
        booking.duration_minutes = duration
        booking.status = BookingStatus.RESCHEDULED.value
        return self._flush_or_conflict(booking)

    def activate_booking_atomic(self, booking: Booking, **fields: Any) -> Booking:
        """Turn a payment hold into a scheduled lesson if its time is still free."""
        self._check_conflicts_locked(
            booking.tutor_id,
            booking.booking_date,
            booking.start_time,
            booking.duration_minutes,
            exclude_booking_id=booking.id,
        )
        for key, value in fields.items():
            setattr(booking, key, value)
        booking.status = BookingStatus.SCHEDULED.value
        booking.hold_expires_at = None
        return self._flush_or_conflict(booking)

    def get_expired_holds(self, now: datetime) -> List[Booking]:
        """Pending-payment bookings whose hold expired at or before ``now`` (UTC)."""
        try:
            rows = (
                self.db.query(Booking)
                .filter(
                    Booking.status == BookingStatus.PENDING_PAYMENT.value,
                    Booking.hold_expires_at.isnot(None),
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting expired holds: {str(e)}")
            raise RepositoryException(f"Failed to get expired holds: {str(e)}")
        return [b for b in rows if as_utc(b.hold_expires_at) <= now]

