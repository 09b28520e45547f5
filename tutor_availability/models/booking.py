# tutor_availability/models/booking.py
"""
Booking model for the tutor availability engine.

Bookings are the source of truth for occupied tutor time. Each row stores its
own date, start time and duration so conflicts never depend on the
availability template that was in force when the lesson was booked.
"""

from datetime import datetime, timedelta
import logging

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.sql import func
import ulid

from ..core.enums import ACTIVE_BOOKING_STATUSES, BookingStatus
from ..database import Base

logger = logging.getLogger(__name__)

_ACTIVE_STATUS_SQL = "status IN ({})".format(
    ", ".join(f"'{s.value}'" for s in sorted(ACTIVE_BOOKING_STATUSES, key=lambda s: s.value))
)


class Booking(Base):
    """
    Lesson between a student and a tutor.

    Lifecycle: pending_payment -> scheduled -> completed | cancelled | rescheduled.
    A reschedule moves the row and records the first original date/time.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    tutor_id = Column(String(128), nullable=False, index=True)
    student_id = Column(String(128), nullable=False, index=True)

    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.SCHEDULED.value, index=True)

    # Reschedule audit trail
    original_date = Column(Date, nullable=True)
    original_start_time = Column(Time, nullable=True)

    # Payment hold (opaque to the engine)
    payment_reference = Column(String(255), nullable=True)
    hold_expires_at = Column(DateTime(timezone=True), nullable=True)

    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_bookings_positive_duration"),
        # Two active lessons can never share a tutor start time
        Index(
            "uq_bookings_active_tutor_start",
            "tutor_id",
            "booking_date",
            "start_time",
            unique=True,
            sqlite_where=text(_ACTIVE_STATUS_SQL),
            postgresql_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index("idx_bookings_tutor_date_status", "tutor_id", "booking_date", "status"),
    )

    @property
    def start_datetime(self) -> datetime:
        return datetime.combine(self.booking_date, self.start_time)

    @property
    def end_datetime(self) -> datetime:
        return self.start_datetime + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        return BookingStatus(self.status) in ACTIVE_BOOKING_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id} {self.tutor_id} "
            f"{self.booking_date} {self.start_time} {self.status}>"
        )
