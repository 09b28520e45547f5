"""
Unit tests for the slot-booking reconciler.

Bookings are half-open intervals; a lesson start is bookable when the whole
lesson sits in open slots and intersects no active booking.
"""

from datetime import date, datetime, time

import pytest

from tutor_availability.core.enums import BookingStatus
from tutor_availability.schemas.availability import WeeklyTemplate
from tutor_availability.services.availability_resolver import resolve_day, resolve_day_availability
from tutor_availability.services.booking_reconciler import (
    active_intervals_for_day,
    booking_dates,
    compute_bookable_slots,
    find_conflicts,
    intervals_overlap,
    is_exact_slot_booked,
    lesson_fits_open_slots,
    resolve_day_slots,
    slots_needed,
)

from ..helpers import MONDAY, FakeBooking, add, at, remove, times

SUNDAY = date(2030, 1, 6)


@pytest.fixture
def open_nine_to_five(nine_to_five_monday):
    return resolve_day_availability(nine_to_five_monday, [], MONDAY)


class TestOverlap:
    def test_touching_intervals_do_not_overlap(self):
        assert not intervals_overlap(at(MONDAY, 13), at(MONDAY, 14), at(MONDAY, 14), at(MONDAY, 15))
        assert not intervals_overlap(at(MONDAY, 15), at(MONDAY, 16), at(MONDAY, 14), at(MONDAY, 15))

    def test_partial_overlap(self):
        assert intervals_overlap(
            at(MONDAY, 13, 30), at(MONDAY, 14, 30), at(MONDAY, 14), at(MONDAY, 15)
        )

    def test_slots_needed_rounds_up(self):
        assert slots_needed(30) == 1
        assert slots_needed(45) == 2
        assert slots_needed(60) == 2
        assert slots_needed(90) == 3

    def test_slots_needed_rejects_non_positive(self):
        with pytest.raises(ValueError):
            slots_needed(0)

    def test_lesson_must_fit_inside_day(self):
        assert lesson_fits_open_slots({46, 47}, 46, 60)
        assert not lesson_fits_open_slots({47}, 47, 60)
        assert not lesson_fits_open_slots({47}, 47, 60, add_indexes={47})

    def test_add_start_runs_past_open_slots(self):
        assert lesson_fits_open_slots({28}, 28, 60, add_indexes={28})
        assert not lesson_fits_open_slots({28}, 28, 60, add_indexes={28}, closed_indexes={29})
        assert not lesson_fits_open_slots({29}, 28, 60, add_indexes={28})


class TestBookableSlots:
    def test_nine_to_five_has_fifteen_starts(self, open_nine_to_five):
        bookable = compute_bookable_slots(open_nine_to_five, [], MONDAY, 60)
        assert len(bookable) == 15
        assert bookable[0] == time(9, 0)
        assert bookable[-1] == time(16, 0)

    def test_booking_blocks_overlapping_starts(self, open_nine_to_five):
        booking = FakeBooking(MONDAY, time(11, 0), 60)
        bookable = compute_bookable_slots(open_nine_to_five, [booking], MONDAY, 60)
        for blocked in times("10:30", "11:00", "11:30"):
            assert blocked not in bookable
        assert time(10, 0) in bookable
        assert time(12, 0) in bookable
        assert len(bookable) == 12

    def test_afternoon_booking_uses_half_open_intervals(self, open_nine_to_five):
        """A 14:00 lesson blocks 13:30, 14:00 and 14:30 but not 13:00 or 15:00."""
        booking = FakeBooking(MONDAY, time(14, 0), 60)
        bookable = compute_bookable_slots(open_nine_to_five, [booking], MONDAY, 60)
        assert time(13, 0) in bookable
        assert time(15, 0) in bookable
        for blocked in times("13:30", "14:00", "14:30"):
            assert blocked not in bookable

    def test_short_lessons_fit_around_booking(self, open_nine_to_five):
        booking = FakeBooking(MONDAY, time(14, 0), 60)
        bookable = compute_bookable_slots(open_nine_to_five, [booking], MONDAY, 30)
        assert time(13, 30) in bookable
        assert time(14, 0) not in bookable
        assert time(14, 30) not in bookable
        assert time(15, 0) in bookable

    def test_duration_comes_from_booking(self, open_nine_to_five):
        booking = FakeBooking(MONDAY, time(14, 0), 90)
        bookable = compute_bookable_slots(open_nine_to_five, [booking], MONDAY, 30)
        assert time(15, 0) not in bookable
        assert time(15, 30) in bookable

    @pytest.mark.parametrize("duration", [30, 60])
    def test_single_add_is_only_start(self, duration):
        day = resolve_day(WeeklyTemplate(), [add(MONDAY, "2 pm")], MONDAY)
        bookable = compute_bookable_slots(
            day.open_slots, [], MONDAY, duration, add_starts=day.add_starts
        )
        assert bookable == times("14:00")

    def test_add_start_needs_add_context_to_run_past_its_slot(self):
        day = resolve_day(WeeklyTemplate(), [add(MONDAY, "2 pm")], MONDAY)
        assert compute_bookable_slots(day.open_slots, [], MONDAY, 60) == []

    def test_lesson_from_add_stops_at_remove_cell(self):
        day = resolve_day(None, [add(MONDAY, "2 pm"), remove(MONDAY, "2:30 pm")], MONDAY)
        kwargs = {"add_starts": day.add_starts, "closed_slots": day.closed_slots}
        assert compute_bookable_slots(day.open_slots, [], MONDAY, 30, **kwargs) == times("14:00")
        assert compute_bookable_slots(day.open_slots, [], MONDAY, 60, **kwargs) == []

    def test_bridged_adds_offer_every_start(self):
        day = resolve_day(None, [add(MONDAY, "10 am"), add(MONDAY, "11 am")], MONDAY)
        bookable = compute_bookable_slots(
            day.open_slots, [], MONDAY, 60, add_starts=day.add_starts
        )
        assert bookable == times("10:00", "10:30", "11:00")

    def test_remove_suppresses_lessons_across_it(self):
        template = WeeklyTemplate.from_document(
            {"Monday": [{"startTime": "9 am", "endTime": "12 pm"}]}
        )
        open_slots = resolve_day_availability(template, [remove(MONDAY, "10 am")], MONDAY)
        assert compute_bookable_slots(open_slots, [], MONDAY, 60) == times("9:00", "11:00")
        assert compute_bookable_slots(open_slots, [], MONDAY, 30) == times(
            "9:00", "9:30", "11:00", "11:30"
        )

    @pytest.mark.parametrize(
        "status",
        [BookingStatus.PENDING_PAYMENT, BookingStatus.CANCELLED, BookingStatus.COMPLETED],
    )
    def test_inactive_bookings_do_not_block(self, open_nine_to_five, status):
        booking = FakeBooking(MONDAY, time(11, 0), 60, status=status)
        assert len(compute_bookable_slots(open_nine_to_five, [booking], MONDAY, 60)) == 15

    def test_rescheduled_bookings_block(self, open_nine_to_five):
        booking = FakeBooking(MONDAY, time(11, 0), 60, status=BookingStatus.RESCHEDULED)
        assert time(11, 0) not in compute_bookable_slots(open_nine_to_five, [booking], MONDAY, 60)

    def test_status_strings_are_accepted(self, open_nine_to_five):
        booking = FakeBooking(MONDAY, time(11, 0), 60, status="scheduled")
        assert time(11, 0) not in compute_bookable_slots(open_nine_to_five, [booking], MONDAY, 60)

    def test_booking_crossing_midnight_blocks_next_morning(self):
        template = WeeklyTemplate.from_document(
            {"Monday": [{"startTime": "12 am", "endTime": "2 am"}]}
        )
        open_slots = resolve_day_availability(template, [], MONDAY)
        late = FakeBooking(SUNDAY, time(23, 30), 60)
        assert compute_bookable_slots(open_slots, [late], MONDAY, 60) == times("0:30", "1:00")

    def test_lessons_do_not_run_past_midnight(self):
        template = WeeklyTemplate.from_document(
            {"Monday": [{"startTime": "10 pm", "endTime": "12 am"}]}
        )
        open_slots = resolve_day_availability(template, [], MONDAY)
        assert compute_bookable_slots(open_slots, [], MONDAY, 60) == times(
            "22:00", "22:30", "23:00"
        )


class TestPredicates:
    def test_exact_slot_booked(self):
        bookings = [
            FakeBooking(MONDAY, time(11, 0)),
            FakeBooking(MONDAY, time(15, 0), status=BookingStatus.CANCELLED),
        ]
        assert is_exact_slot_booked(bookings, MONDAY, time(11, 0))
        assert not is_exact_slot_booked(bookings, MONDAY, time(11, 30))
        assert not is_exact_slot_booked(bookings, MONDAY, time(15, 0))
        assert not is_exact_slot_booked(bookings, SUNDAY, time(11, 0))

    def test_find_conflicts_with_exclusion(self):
        mine = FakeBooking(MONDAY, time(11, 0), id="mine")
        other = FakeBooking(MONDAY, time(12, 0), id="other")
        start = datetime.combine(MONDAY, time(11, 30))
        assert find_conflicts([mine, other], start, 60) == [mine, other]
        assert find_conflicts([mine, other], start, 60, exclude_booking_id="mine") == [other]
        assert find_conflicts([mine, other], start, 30, exclude_booking_id="mine") == []

    def test_active_intervals_for_day(self):
        bookings = [
            FakeBooking(SUNDAY, time(22, 0), 60),
            FakeBooking(SUNDAY, time(23, 30), 60),
            FakeBooking(MONDAY, time(9, 0), 60, status=BookingStatus.CANCELLED),
        ]
        assert active_intervals_for_day(bookings, MONDAY) == [
            (at(SUNDAY, 23, 30), at(MONDAY, 0, 30))
        ]


class TestResolvedSlots:
    def test_one_row_per_half_hour(self, open_nine_to_five):
        rows = resolve_day_slots(open_nine_to_five, [], MONDAY)
        assert len(rows) == 48
        assert rows[0].time_of_day == time(0, 0)
        assert rows[18].is_available
        assert not rows[17].is_available

    def test_rows_flag_booked_and_past(self, open_nine_to_five):
        booking = FakeBooking(MONDAY, time(14, 0), 60)
        rows = resolve_day_slots(open_nine_to_five, [booking], MONDAY, now=at(MONDAY, 10, 0))
        by_time = {row.time_of_day: row for row in rows}

        assert by_time[time(14, 0)].is_booked
        assert by_time[time(14, 30)].is_booked
        assert not by_time[time(15, 0)].is_booked
        assert not by_time[time(14, 0)].is_bookable_start

        assert by_time[time(9, 30)].is_past
        assert not by_time[time(9, 30)].is_available
        assert by_time[time(10, 0)].is_bookable_start
        assert by_time[time(10, 0)].label == "10 am"


class TestBookingDates:
    def test_lesson_within_day(self):
        assert booking_dates(FakeBooking(MONDAY, time(23, 0), 60)) == [MONDAY]

    def test_lesson_past_midnight_touches_next_day(self):
        late = FakeBooking(SUNDAY, time(23, 30), 60)
        assert booking_dates(late) == [SUNDAY, MONDAY]

    def test_lesson_ending_at_midnight_stays_on_its_day(self):
        assert booking_dates(FakeBooking(SUNDAY, time(23, 30), 30)) == [SUNDAY]
        assert booking_dates(FakeBooking(SUNDAY, time(22, 30), 90)) == [SUNDAY]
