"""
Unit tests for the availability resolver.

The resolver is pure: template + exceptions + date (+ optional now) in,
open half-hour slot start times out.
"""

import logging
from datetime import date, time

import pytest

from tutor_availability.core.enums import DayOfWeek
from tutor_availability.schemas.availability import WeeklyTemplate
from tutor_availability.services.availability_resolver import (
    partition_exceptions,
    resolve_day,
    resolve_day_availability,
    resolve_day_bits,
    resolve_day_indexes,
    template_covers,
    template_slot_indexes,
)
from tutor_availability.utils.bitset import times_from_bits

from ..helpers import MONDAY, add, at, remove, times

TUESDAY = date(2030, 1, 8)


def _half_hours(start_hour: int, end_hour: int) -> list:
    return [time(h, m) for h in range(start_hour, end_hour) for m in (0, 30)]


class TestTemplateCoverage:
    def test_range_covers_every_half_hour_inside(self, nine_to_five_monday):
        """Slots inside the range are open and nothing outside is."""
        slots = resolve_day_availability(nine_to_five_monday, [], MONDAY)
        assert slots == _half_hours(9, 17)

    def test_other_weekdays_are_closed(self, nine_to_five_monday):
        assert resolve_day_availability(nine_to_five_monday, [], TUESDAY) == []

    def test_missing_template_is_empty(self):
        assert resolve_day_availability(None, [], MONDAY) == []
        assert resolve_day_availability(WeeklyTemplate(), [], MONDAY) == []

    def test_overlapping_ranges_union(self):
        template = WeeklyTemplate.from_document(
            {
                "Monday": [
                    {"startTime": "9 am", "endTime": "11 am"},
                    {"startTime": "10 am", "endTime": "12 pm"},
                ]
            }
        )
        assert resolve_day_availability(template, [], MONDAY) == _half_hours(9, 12)

    def test_partial_slots_are_not_covered(self):
        template = WeeklyTemplate.from_document(
            {"Monday": [{"startTime": "9:00", "endTime": "10:15"}]}
        )
        assert resolve_day_availability(template, [], MONDAY) == times("9:00", "9:30")

    def test_range_to_midnight_covers_last_slot(self):
        template = WeeklyTemplate.from_document(
            {"Monday": [{"startTime": "10 pm", "endTime": "12 am"}]}
        )
        assert resolve_day_availability(template, [], MONDAY) == times(
            "22:00", "22:30", "23:00", "23:30"
        )

    def test_template_slot_indexes(self, nine_to_five_monday):
        assert template_slot_indexes(nine_to_five_monday, DayOfWeek.MONDAY) == set(range(18, 34))
        assert template_slot_indexes(nine_to_five_monday, DayOfWeek.SUNDAY) == set()

    def test_template_covers(self, nine_to_five_monday):
        assert template_covers(nine_to_five_monday, DayOfWeek.MONDAY, time(9), time(17))
        assert template_covers(nine_to_five_monday, DayOfWeek.MONDAY, time(16, 30), time(17))
        assert not template_covers(
            nine_to_five_monday, DayOfWeek.MONDAY, time(16, 30), time(17, 30)
        )
        assert not template_covers(nine_to_five_monday, DayOfWeek.TUESDAY, time(9), time(10))
        assert not template_covers(nine_to_five_monday, DayOfWeek.MONDAY, time(10), time(10))


class TestExceptions:
    def test_add_opens_only_its_slot(self):
        """An Add on an empty template opens the slot it names and nothing after it."""
        slots = resolve_day_availability(None, [add(MONDAY, "2 pm")], MONDAY)
        assert slots == times("14:00")

    def test_remove_span_is_configurable(self):
        template = WeeklyTemplate.from_document(
            {"Monday": [{"startTime": "9 am", "endTime": "12 pm"}]}
        )
        slots = resolve_day_availability(
            template, [remove(MONDAY, "10 am")], MONDAY, exception_span_minutes=30
        )
        assert slots == times("9:00", "9:30", "10:30", "11:00", "11:30")

    def test_exceptions_on_other_dates_are_ignored(self, nine_to_five_monday):
        slots = resolve_day_availability(
            nine_to_five_monday,
            [remove(TUESDAY, "10 am"), add(TUESDAY, "7 pm")],
            MONDAY,
        )
        assert slots == _half_hours(9, 17)

    def test_remove_closes_its_hour_cell(self):
        template = WeeklyTemplate.from_document(
            {"Monday": [{"startTime": "9 am", "endTime": "12 pm"}]}
        )
        slots = resolve_day_availability(template, [remove(MONDAY, "10 am")], MONDAY)
        assert slots == times("9:00", "9:30", "11:00", "11:30")

    def test_remove_wins_over_template(self, nine_to_five_monday):
        slots = resolve_day_availability(nine_to_five_monday, [remove(MONDAY, "1 pm")], MONDAY)
        assert time(13, 0) not in slots
        assert time(13, 30) not in slots
        assert time(12, 30) in slots
        assert time(14, 0) in slots

    def test_remove_cell_closes_later_add(self):
        slots = resolve_day_availability(
            None, [add(MONDAY, "2 pm"), remove(MONDAY, "1:30 pm")], MONDAY
        )
        assert slots == []

    def test_remove_wins_over_bridge(self):
        exceptions = [
            add(MONDAY, "10 am"),
            add(MONDAY, "11 am"),
            remove(MONDAY, "10:30 am"),
        ]
        slots = resolve_day_availability(None, exceptions, MONDAY, exception_span_minutes=30)
        assert slots == times("10:00", "11:00")

    def test_add_and_remove_on_same_key_logs_and_removes(self, caplog):
        exceptions = [add(MONDAY, "2 pm"), remove(MONDAY, "2 pm")]
        with caplog.at_level(logging.WARNING):
            slots = resolve_day_availability(None, exceptions, MONDAY)
        assert slots == []
        assert "Remove wins" in caplog.text

    def test_partition_exceptions(self):
        adds, removes = partition_exceptions(
            [add(MONDAY, "9 am"), remove(MONDAY, "1 pm"), add(TUESDAY, "9 am")], MONDAY
        )
        assert adds == {18}
        assert removes == {26}


class TestAddBridging:
    def test_adds_an_hour_apart_bridge(self):
        slots = resolve_day_availability(
            None, [add(MONDAY, "10 am"), add(MONDAY, "11 am")], MONDAY
        )
        assert slots == times("10:00", "10:30", "11:00")

    def test_adds_two_hours_apart_do_not_bridge(self):
        slots = resolve_day_availability(
            None, [add(MONDAY, "10 am"), add(MONDAY, "12 pm")], MONDAY
        )
        assert time(11, 0) not in slots
        assert time(11, 30) not in slots
        assert slots == times("10:00", "12:00")

    def test_adds_ninety_minutes_apart_do_not_bridge(self):
        slots = resolve_day_availability(
            None, [add(MONDAY, "10 am"), add(MONDAY, "11:30 am")], MONDAY
        )
        assert slots == times("10:00", "11:30")


class TestDayResolution:
    def test_add_starts_and_closed_cells_are_reported(self, nine_to_five_monday):
        day = resolve_day(
            nine_to_five_monday,
            [add(MONDAY, "7 pm"), remove(MONDAY, "10 am")],
            MONDAY,
        )
        assert day.add_starts == times("19:00")
        assert day.closed_slots == times("10:00", "10:30")
        assert day.open_slots == resolve_day_availability(
            nine_to_five_monday, [add(MONDAY, "7 pm"), remove(MONDAY, "10 am")], MONDAY
        )

    def test_removed_or_past_adds_are_not_starts(self):
        exceptions = [add(MONDAY, "9 am"), add(MONDAY, "2 pm"), remove(MONDAY, "1:30 pm")]
        day = resolve_day(None, exceptions, MONDAY, now=at(MONDAY, 9, 10))
        assert day.open_slots == []
        assert day.add_starts == []


class TestPastExclusion:
    def test_slots_before_now_are_dropped(self, nine_to_five_monday):
        slots = resolve_day_availability(nine_to_five_monday, [], MONDAY, now=at(MONDAY, 12, 10))
        assert slots == [time(12, 30)] + _half_hours(13, 17)

    def test_slot_starting_exactly_now_is_kept(self, nine_to_five_monday):
        slots = resolve_day_availability(nine_to_five_monday, [], MONDAY, now=at(MONDAY, 16, 30))
        assert slots == times("16:30")

    def test_past_day_is_empty(self, nine_to_five_monday):
        now = at(date(2030, 1, 8), 8, 0)
        assert resolve_day_availability(nine_to_five_monday, [], MONDAY, now=now) == []

    def test_future_day_unaffected(self, nine_to_five_monday):
        now = at(date(2030, 1, 6), 23, 0)
        assert resolve_day_availability(nine_to_five_monday, [], MONDAY, now=now) == _half_hours(
            9, 17
        )


class TestWorkedExamples:
    def test_weekday_template_open_slots(self, nine_to_five_monday):
        assert len(resolve_day_availability(nine_to_five_monday, [], MONDAY)) == 16

    def test_single_add_on_empty_template(self):
        assert resolve_day_availability(WeeklyTemplate(), [add(MONDAY, "2 pm")], MONDAY) == times(
            "14:00"
        )

    def test_remove_closes_hour_cell(self):
        template = WeeklyTemplate.from_document(
            {"Monday": [{"startTime": "9 am", "endTime": "12 pm"}]}
        )
        slots = resolve_day_availability(template, [remove(MONDAY, "10 am")], MONDAY)
        assert slots == times("9:00", "9:30", "11:00", "11:30")


class TestBits:
    def test_bits_match_times(self, nine_to_five_monday):
        bits = resolve_day_bits(nine_to_five_monday, [remove(MONDAY, "1 pm")], MONDAY)
        assert len(bits) == 6
        assert times_from_bits(bits) == resolve_day_availability(
            nine_to_five_monday, [remove(MONDAY, "1 pm")], MONDAY
        )

    def test_invalid_span_rejected(self):
        with pytest.raises(ValueError):
            resolve_day_indexes(None, [], MONDAY, exception_span_minutes=45)
