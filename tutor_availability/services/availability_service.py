# tutor_availability/services/availability_service.py
"""
Availability Service for the tutor availability engine.

Loads template/exception/booking snapshots through the repositories, runs the
pure resolver and reconciler on them, and owns the write paths that change a
tutor's availability (weekly template, calendar edits, legacy import).
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..core.broadcast import notify_availability_changed
from ..core.config import settings
from ..core.constants import MINUTES_PER_DAY
from ..core.enums import ACTIVE_BOOKING_STATUSES, DayOfWeek, ExceptionType
from ..core.exceptions import ParseError
from ..core.timezone_utils import Clock, get_tutor_now, to_wall_clock, utc_now
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import (
    AvailabilityChangedEvent,
    DayAvailability,
    ExceptionDiff,
    ExceptionEntry,
    GridCell,
    TimeRange,
    WeeklyTemplate,
)
from ..utils.time_grid import minutes_to_time, parse_legacy_slot_key, parse_slot_key
from .availability_resolver import DayResolution, resolve_day
from .base import BaseService
from .booking_reconciler import compute_bookable_slots, find_conflicts, resolve_day_slots
from .exception_diff import (
    build_editable_grid,
    compute_exception_diff,
    index_exceptions,
    week_dates,
)

# TYPE_CHECKING import to avoid circular dependencies
if TYPE_CHECKING:
    from ..repositories.availability_cache import AvailabilityCache
    from ..repositories.availability_repository import AvailabilityRepository
    from ..repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)

TemplateInput = Union[WeeklyTemplate, Mapping[str, Any]]


class AvailabilityService(BaseService):
    """
    Service layer for tutor availability.

    Read paths never write; every write path bumps the tutor's version,
    invalidates cached days and publishes an availability change event.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional["AvailabilityCache"] = None,
        repository: Optional["AvailabilityRepository"] = None,
        booking_repository: Optional["BookingRepository"] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize availability service with optional cache, repositories and clock."""
        super().__init__(db, cache=cache)
        self.repository = repository or RepositoryFactory.create_availability_repository(db)
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.clock: Clock = clock or utc_now

    # ----- time helpers -----

    def _tutor_timezone(self, tutor_id: str) -> Optional[str]:
        tutor = self.repository.get_tutor(tutor_id)
        return tutor.timezone if tutor is not None else None

    def tutor_now(self, tutor_id: str) -> datetime:
        """Naive wall-clock 'now' in the tutor's timezone."""
        return get_tutor_now(self._tutor_timezone(tutor_id), self.clock)

    def _to_tutor_wall_clock(self, tutor_id: str, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            return moment
        return to_wall_clock(moment, self._tutor_timezone(tutor_id))

    # ----- read paths -----

    def resolve_open_day(self, tutor_id: str, target_date: date) -> DayResolution:
        """Resolver output for one day: template + exceptions, past slots dropped."""
        template = self.repository.get_weekly_template(tutor_id)
        exceptions = self.repository.get_exceptions(tutor_id, target_date, target_date)
        return resolve_day(
            template,
            exceptions,
            target_date,
            now=self.tutor_now(tutor_id),
        )

    def get_open_slots(self, tutor_id: str, target_date: date) -> List[time]:
        return self.resolve_open_day(tutor_id, target_date).open_slots

    @BaseService.measure_operation("get_bookable_slots")
    def get_bookable_slots(
        self,
        tutor_id: str,
        target_date: date,
        lesson_duration_minutes: Optional[int] = None,
    ) -> List[time]:
        """
        Start times a student can book with this tutor on ``target_date``.

        Uses the cache-aside pattern when an AvailabilityCache is attached.

        Args:
            tutor_id: The tutor ID
            target_date: Date in the tutor's timezone
            lesson_duration_minutes: Lesson length (defaults to settings)

        Returns:
            Ordered bookable start times
        """
        duration = lesson_duration_minutes or settings.default_lesson_duration_minutes
        if self.cache is not None:
            cached = self.cache.get(tutor_id, target_date, duration)
            if cached is not None:
                return list(cached)

        day = self.resolve_open_day(tutor_id, target_date)
        bookings = self.booking_repository.get_active_bookings_around(tutor_id, target_date)
        bookable = compute_bookable_slots(
            day.open_slots,
            bookings,
            target_date,
            duration,
            add_starts=day.add_starts,
            closed_slots=day.closed_slots,
        )

        if self.cache is not None:
            self.cache.set(tutor_id, target_date, duration, tuple(bookable))
        return bookable

    @BaseService.measure_operation("get_day_slots")
    def get_day_slots(
        self,
        tutor_id: str,
        target_date: date,
        lesson_duration_minutes: Optional[int] = None,
    ) -> DayAvailability:
        """Full 48-slot view of one day plus its bookable start times."""
        duration = lesson_duration_minutes or settings.default_lesson_duration_minutes
        now = self.tutor_now(tutor_id)
        day = self.resolve_open_day(tutor_id, target_date)
        bookings = self.booking_repository.get_active_bookings_around(tutor_id, target_date)

        return DayAvailability(
            tutor_id=tutor_id,
            date=target_date,
            slots=resolve_day_slots(day.open_slots, bookings, target_date, now=now),
            bookable_start_times=compute_bookable_slots(
                day.open_slots,
                bookings,
                target_date,
                duration,
                add_starts=day.add_starts,
                closed_slots=day.closed_slots,
            ),
            lesson_duration_minutes=duration,
        )

    @BaseService.measure_operation("get_week_overview")
    def get_week_overview(
        self,
        tutor_id: str,
        week_start: date,
        lesson_duration_minutes: Optional[int] = None,
    ) -> Dict[date, int]:
        """Bookable start count per day of the week (0 means no available times)."""
        return {
            day: len(self.get_bookable_slots(tutor_id, day, lesson_duration_minutes))
            for day in week_dates(week_start)
        }

    def _cell_times(self) -> List[time]:
        span = settings.exception_span_minutes
        return [minutes_to_time(m) for m in range(0, MINUTES_PER_DAY, span)]

    @BaseService.measure_operation("get_editable_week")
    def get_editable_week(self, tutor_id: str, week_start: date) -> List[GridCell]:
        """The tutor's own calendar cells for one week, as they should be displayed."""
        days = week_dates(week_start)
        return build_editable_grid(
            self.repository.get_weekly_template(tutor_id),
            self.repository.get_exceptions(tutor_id, days[0], days[-1]),
            days,
            self._cell_times(),
        )

    @BaseService.measure_operation("is_tutor_available_at_time")
    def is_tutor_available_at_time(
        self,
        tutor_id: str,
        at: datetime,
        lesson_duration_minutes: Optional[int] = None,
        exclude_lesson_id: Optional[str] = None,
    ) -> bool:
        """
        Whether no active lesson overlaps ``[at, at + duration)``.

        Only same-day bookings that start within the search window around the
        request (widened by the longest booking) are examined.
        """
        start = self._to_tutor_wall_clock(tutor_id, at)
        duration = lesson_duration_minutes or settings.default_lesson_duration_minutes
        bookings = self.booking_repository.get_bookings_in_range(
            tutor_id, start.date(), start.date(), statuses=ACTIVE_BOOKING_STATUSES
        )
        longest = max((b.duration_minutes for b in bookings), default=0)
        window = timedelta(minutes=settings.tutor_search_window_minutes)
        lower = start - window - timedelta(minutes=longest)
        upper = start + timedelta(minutes=duration) + window

        nearby = [
            b for b in bookings if lower <= datetime.combine(b.booking_date, b.start_time) < upper
        ]
        return not find_conflicts(nearby, start, duration, exclude_booking_id=exclude_lesson_id)

    @BaseService.measure_operation("find_available_tutors")
    def find_available_tutors(
        self,
        at: datetime,
        lesson_duration_minutes: Optional[int] = None,
        tutor_ids: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """
        Tutors who could take a lesson starting at ``at``.

        A naive ``at`` is read as each tutor's wall-clock time; an aware one is
        converted into each tutor's timezone.
        """
        candidates = list(tutor_ids) if tutor_ids is not None else self.repository.list_tutor_ids()
        available = []
        for tutor_id in candidates:
            start = self._to_tutor_wall_clock(tutor_id, at)
            bookable = self.get_bookable_slots(tutor_id, start.date(), lesson_duration_minutes)
            if start.time() in bookable:
                available.append(tutor_id)
        return available

    # ----- write paths -----

    def _publish(self, tutor_id: str, reason: str, dates: Iterable[date] = ()) -> None:
        affected = sorted(set(dates))
        self.invalidate_availability(tutor_id, affected or None)
        notify_availability_changed(
            AvailabilityChangedEvent(tutor_id=tutor_id, reason=reason, dates=affected)
        )

    @BaseService.measure_operation("save_weekly_template")
    def save_weekly_template(
        self,
        tutor_id: str,
        template: TemplateInput,
        timezone: Optional[str] = None,
    ) -> WeeklyTemplate:
        """
        Replace the tutor's weekly template.

        Args:
            tutor_id: The tutor ID
            template: WeeklyTemplate or stored-document shape
                (``{"Monday": [{"startTime": "9 am", "endTime": "5 pm"}]}``)
            timezone: Optional IANA timezone to record for the tutor

        Returns:
            The template as saved
        """
        if not isinstance(template, WeeklyTemplate):
            template = WeeklyTemplate.from_document(template)

        with self.transaction():
            self.repository.ensure_tutor(tutor_id, timezone)
            written = self.repository.replace_weekly_template(tutor_id, template)
            version = self.repository.bump_version(tutor_id)

        self.log_operation(
            "save_weekly_template", tutor_id=tutor_id, ranges=written, version=version
        )
        self._publish(tutor_id, "weekly_template_saved")
        return template

    @BaseService.measure_operation("save_calendar_edits")
    def save_calendar_edits(self, tutor_id: str, displayed: Iterable[GridCell]) -> ExceptionDiff:
        """
        Persist the tutor's edited calendar as exception changes.

        The diff is computed here against the stored state, so a grid
        submitted unchanged writes nothing and publishes nothing.
        """
        cells = list(displayed)
        if not cells:
            return ExceptionDiff()

        dates = [cell.date for cell in cells]
        template = self.repository.get_weekly_template(tutor_id)
        exceptions = self.repository.get_exceptions(tutor_id, min(dates), max(dates))
        diff = compute_exception_diff(template, exceptions, cells, now=self.tutor_now(tutor_id))
        if diff.is_empty:
            self.logger.debug(f"No calendar changes for tutor {tutor_id}")
            return diff

        with self.transaction():
            changed = self.repository.apply_exception_diff(tutor_id, diff)
            version = self.repository.bump_version(tutor_id)

        self.log_operation(
            "save_calendar_edits",
            tutor_id=tutor_id,
            added=len(diff.to_add),
            removed=len(diff.to_remove),
            rows=changed,
            version=version,
        )
        self._publish(tutor_id, "calendar_edited", diff.affected_dates())
        return diff

    @BaseService.measure_operation("import_legacy_availability")
    def import_legacy_availability(
        self,
        tutor_id: str,
        weekly_document: Optional[Mapping[str, Any]],
        legacy_exceptions: Iterable[Union[str, Mapping[str, Any]]],
        timezone: Optional[str] = None,
    ) -> int:
        """
        Migrate a stored availability document onto full-date exceptions.

        Accepts ``{"slotKey": ..., "type": ...}`` entries and bare slot-key
        strings (the older format, meaning Remove). Keys may be full-date or
        month/day. Malformed ranges and keys are logged and skipped; the slots
        they named stay unavailable. Entries dated before today are dropped.

        Returns:
            Number of exceptions written
        """
        with self.transaction():
            self.repository.ensure_tutor(tutor_id, timezone)

        now = self.tutor_now(tutor_id)
        template = self._parse_legacy_template(tutor_id, weekly_document)
        parsed = (self._parse_legacy_exception(tutor_id, raw, now) for raw in legacy_exceptions)
        entries = [e for e in parsed if e is not None and e.date >= now.date()]
        incoming = list(index_exceptions(entries).values())
        incoming_keys = {entry.key for entry in incoming}
        existing = [e for e in self.repository.get_exceptions(tutor_id) if e.key in incoming_keys]

        with self.transaction():
            self.repository.replace_weekly_template(tutor_id, template)
            self.repository.apply_exception_diff(
                tutor_id, ExceptionDiff(to_add=incoming, to_remove=existing)
            )
            version = self.repository.bump_version(tutor_id)

        self.log_operation(
            "import_legacy_availability",
            tutor_id=tutor_id,
            exceptions=len(incoming),
            version=version,
        )
        self._publish(tutor_id, "legacy_import")
        return len(incoming)

    def _parse_legacy_template(
        self, tutor_id: str, document: Optional[Mapping[str, Any]]
    ) -> WeeklyTemplate:
        days: Dict[DayOfWeek, List[TimeRange]] = {}
        for day_name, ranges in (document or {}).items():
            try:
                day = DayOfWeek(day_name)
            except ValueError:
                logger.warning(
                    "Skipping unknown weekday in template",
                    extra={"tutor_id": tutor_id, "day": day_name},
                )
                continue
            for item in ranges or []:
                try:
                    time_range = TimeRange(
                        start_time=item.get("startTime", item.get("start_time")),
                        end_time=item.get("endTime", item.get("end_time")),
                    )
                except (ParseError, ValueError) as exc:
                    logger.warning(
                        "Skipping malformed template range",
                        extra={"tutor_id": tutor_id, "day": day_name, "error": str(exc)},
                    )
                    continue
                days.setdefault(day, []).append(time_range)
        return WeeklyTemplate(days=days)

    def _parse_legacy_exception(
        self, tutor_id: str, raw: Union[str, Mapping[str, Any]], now: datetime
    ) -> Optional[ExceptionEntry]:
        if isinstance(raw, str):
            slot_key, raw_type = raw, ExceptionType.REMOVE.value
        else:
            slot_key, raw_type = raw.get("slotKey", ""), raw.get("type", ExceptionType.REMOVE.value)

        try:
            exception_type = ExceptionType(str(raw_type).lower())
            try:
                parsed = parse_slot_key(slot_key)
            except ParseError:
                parsed = parse_legacy_slot_key(slot_key, now)
            return ExceptionEntry(
                date=parsed.date, time_of_day=parsed.time_of_day, type=exception_type
            )
        except (ParseError, ValueError) as exc:
            logger.warning(
                "Skipping malformed availability exception",
                extra={"tutor_id": tutor_id, "slot_key": slot_key, "error": str(exc)},
            )
            return None
