# tutor_availability/models/availability.py
"""
Availability models for the tutor availability engine.

Classes:
    TutorAvailability: One row per tutor; holds timezone and a version
        counter, and is the row locked while a booking is inserted
    WeeklyAvailabilityRange: One recurring range of the weekly template
    AvailabilityException: Dated Add/Remove override of one calendar cell
"""

import logging

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import ExceptionType
from ..database import Base

logger = logging.getLogger(__name__)


class TutorAvailability(Base):
    """Per-tutor availability header."""

    __tablename__ = "tutor_availability"

    tutor_id = Column(String(128), primary_key=True)
    timezone = Column(String(64), nullable=False, default="America/New_York")
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    weekly_ranges = relationship(
        "WeeklyAvailabilityRange",
        back_populates="tutor_availability",
        cascade="all, delete-orphan",
        order_by="WeeklyAvailabilityRange.position",
    )
    exceptions = relationship(
        "AvailabilityException",
        back_populates="tutor_availability",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<TutorAvailability {self.tutor_id} v{self.version}>"


class WeeklyAvailabilityRange(Base):
    """One recurring time range; end_time of 00:00 means end of day."""

    __tablename__ = "weekly_availability_ranges"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(
        String(128),
        ForeignKey("tutor_availability.tutor_id", ondelete="CASCADE"),
        nullable=False,
    )
    day_of_week = Column(String(9), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    tutor_availability = relationship("TutorAvailability", back_populates="weekly_ranges")

    __table_args__ = (Index("idx_weekly_ranges_tutor_day", "tutor_id", "day_of_week"),)

    def __repr__(self) -> str:
        return f"<WeeklyAvailabilityRange {self.day_of_week} {self.start_time}-{self.end_time}>"


class AvailabilityException(Base):
    """Dated override; at most one per (tutor, date, time) by constraint."""

    __tablename__ = "availability_exceptions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(
        String(128),
        ForeignKey("tutor_availability.tutor_id", ondelete="CASCADE"),
        nullable=False,
    )
    exception_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    exception_type = Column(String(10), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tutor_availability = relationship("TutorAvailability", back_populates="exceptions")

    __table_args__ = (
        UniqueConstraint(
            "tutor_id", "exception_date", "start_time", name="uq_availability_exception_slot"
        ),
        CheckConstraint(
            f"exception_type IN ('{ExceptionType.ADD.value}', '{ExceptionType.REMOVE.value}')",
            name="ck_availability_exception_type",
        ),
        Index("idx_availability_exceptions_tutor_date", "tutor_id", "exception_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<AvailabilityException {self.exception_type} "
            f"{self.exception_date} {self.start_time}>"
        )
