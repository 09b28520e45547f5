# tutor_availability/repositories/availability_repository.py
"""
AvailabilityRepository - weekly templates and dated exceptions.

Rows are converted to WeeklyTemplate / ExceptionEntry snapshots on the way
out so the resolver never sees ORM objects.
"""

from datetime import date
import logging
from typing import Iterable, List, Optional, cast

from sqlalchemy import and_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import DayOfWeek, ExceptionType
from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilityException, TutorAvailability, WeeklyAvailabilityRange
from ..schemas.availability import ExceptionDiff, ExceptionEntry, TimeRange, WeeklyTemplate

logger = logging.getLogger(__name__)


class AvailabilityRepository:
    """Repository for a tutor's recurring template and its exceptions."""

    def __init__(self, db: Session):
        """Initialize repository."""
        self.db = db
        self.logger = logging.getLogger(__name__)

    # Tutor header

    def get_tutor(self, tutor_id: str) -> Optional[TutorAvailability]:
        return cast(Optional[TutorAvailability], self.db.get(TutorAvailability, tutor_id))

    def ensure_tutor(self, tutor_id: str, timezone: Optional[str] = None) -> TutorAvailability:
        """Get or create the tutor's availability header row."""
        tutor = self.get_tutor(tutor_id)
        if tutor is not None:
            if timezone and tutor.timezone != timezone:
                tutor.timezone = timezone
            return tutor
        try:
            tutor = TutorAvailability(tutor_id=tutor_id, version=0)
            if timezone:
                tutor.timezone = timezone
            self.db.add(tutor)
            self.db.flush()
            return tutor
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating availability header for {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to create tutor availability: {str(e)}")

    def lock_tutor(self, tutor_id: str) -> TutorAvailability:
        """
        Take the tutor's write lock for the rest of the transaction.

        The lock is a no-op UPDATE of the header row. PostgreSQL row-locks the
        header; SQLite, which ignores FOR UPDATE, takes its database write lock.
        Either way a second writer blocks here until the first commits, so
        reads made after this call cannot go stale before the insert. A missing
        header is created, and the INSERT takes the same lock.

        Raises:
            RepositoryException: the lock could not be taken (e.g. SQLite busy timeout)
        """
        try:
            result = self.db.execute(
                update(TutorAvailability)
                .where(TutorAvailability.tutor_id == tutor_id)
                .values(version=TutorAvailability.version)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock tutor availability: {str(e)}")
        if not result.rowcount:
            return self.ensure_tutor(tutor_id)
        return cast(TutorAvailability, self.get_tutor(tutor_id))

    def bump_version(self, tutor_id: str) -> int:
        tutor = self.ensure_tutor(tutor_id)
        tutor.version = (tutor.version or 0) + 1
        self.db.flush()
        return int(tutor.version)

    def list_tutor_ids(self) -> List[str]:
        rows = self.db.query(TutorAvailability.tutor_id).order_by(TutorAvailability.tutor_id).all()
        return [row[0] for row in rows]

    # Weekly template

    def get_weekly_template(self, tutor_id: str) -> WeeklyTemplate:
        """
        Load the weekly template snapshot.

        A tutor without rows has an empty template (no recurring availability).
        """
        try:
            rows = (
                self.db.query(WeeklyAvailabilityRange)
                .filter(WeeklyAvailabilityRange.tutor_id == tutor_id)
                .order_by(WeeklyAvailabilityRange.day_of_week, WeeklyAvailabilityRange.position)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading weekly template: {str(e)}")
            raise RepositoryException(f"Failed to load weekly template: {str(e)}")

        days: dict[DayOfWeek, List[TimeRange]] = {}
        for row in rows:
            days.setdefault(DayOfWeek(row.day_of_week), []).append(
                TimeRange(start_time=row.start_time, end_time=row.end_time)
            )
        return WeeklyTemplate(days=days)

    def replace_weekly_template(self, tutor_id: str, template: WeeklyTemplate) -> int:
        """
        Replace every weekly range for a tutor.

        Returns:
            Number of ranges written
        """
        self.ensure_tutor(tutor_id)
        try:
            self.db.query(WeeklyAvailabilityRange).filter(
                WeeklyAvailabilityRange.tutor_id == tutor_id
            ).delete(synchronize_session=False)

            written = 0
            for day, ranges in template.days.items():
                for position, time_range in enumerate(ranges):
                    self.db.add(
                        WeeklyAvailabilityRange(
                            tutor_id=tutor_id,
                            day_of_week=DayOfWeek(day).value,
                            start_time=time_range.start_time,
                            end_time=time_range.end_time,
                            position=position,
                        )
                    )
                    written += 1
            self.db.flush()
            return written
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving weekly template: {str(e)}")
            raise RepositoryException(f"Failed to save weekly template: {str(e)}")

    # Exceptions

    def get_exceptions(
        self,
        tutor_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[ExceptionEntry]:
        """Exceptions for a tutor, optionally limited to an inclusive date range."""
        try:
            query = self.db.query(AvailabilityException).filter(
                AvailabilityException.tutor_id == tutor_id
            )
            if start_date is not None:
                query = query.filter(AvailabilityException.exception_date >= start_date)
            if end_date is not None:
                query = query.filter(AvailabilityException.exception_date <= end_date)
            rows = query.order_by(
                AvailabilityException.exception_date, AvailabilityException.start_time
            ).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading exceptions: {str(e)}")
            raise RepositoryException(f"Failed to load exceptions: {str(e)}")

        return [
            ExceptionEntry(
                date=row.exception_date,
                time_of_day=row.start_time,
                type=ExceptionType(row.exception_type),
            )
            for row in rows
        ]

    def apply_exception_diff(self, tutor_id: str, diff: ExceptionDiff) -> int:
        """
        Write a diff: deletes first, then inserts, so a key can change type.

        Returns:
            Number of rows written or deleted

        Raises:
            RepositoryException: if an insert collides with an existing key
        """
        self.ensure_tutor(tutor_id)
        changed = 0
        try:
            for entry in diff.to_remove:
                changed += (
                    self.db.query(AvailabilityException)
                    .filter(
                        and_(
                            AvailabilityException.tutor_id == tutor_id,
                            AvailabilityException.exception_date == entry.date,
                            AvailabilityException.start_time == entry.time_of_day,
                        )
                    )
                    .delete(synchronize_session=False)
                )
            self.db.flush()

            for entry in diff.to_add:
                self.db.add(
                    AvailabilityException(
                        tutor_id=tutor_id,
                        exception_date=entry.date,
                        start_time=entry.time_of_day,
                        exception_type=ExceptionType(entry.type).value,
                    )
                )
                changed += 1
            self.db.flush()
            return changed
        except IntegrityError as e:
            self.logger.error(f"Duplicate exception key for {tutor_id}: {str(e)}")
            raise RepositoryException(f"Exception already exists for slot: {str(e)}")
        except SQLAlchemyError as e:
            self.logger.error(f"Error applying exception diff: {str(e)}")
            raise RepositoryException(f"Failed to apply exception changes: {str(e)}")

    def add_exceptions(self, tutor_id: str, entries: Iterable[ExceptionEntry]) -> int:
        """Insert exceptions directly (seeding and legacy migration)."""
        return self.apply_exception_diff(tutor_id, ExceptionDiff(to_add=list(entries)))

    def delete_exceptions_before(self, tutor_id: str, cutoff: date) -> int:
        """Drop exceptions dated before ``cutoff``; they can no longer affect availability."""
        try:
            deleted = (
                self.db.query(AvailabilityException)
                .filter(
                    and_(
                        AvailabilityException.tutor_id == tutor_id,
                        AvailabilityException.exception_date < cutoff,
                    )
                )
                .delete(synchronize_session=False)
            )
            self.db.flush()
            return int(deleted)
        except SQLAlchemyError as e:
            self.logger.error(f"Error pruning exceptions: {str(e)}")
            raise RepositoryException(f"Failed to prune exceptions: {str(e)}")
