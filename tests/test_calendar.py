"""
Tests for working-day arithmetic, worked hours and public holidays.
"""
from datetime import date, datetime, time

import pytest

from planning.calendar import (
    add_public_holidays, add_working_duration, add_working_hours, align_to_working_day, count_working_duration,
    estimate_planned_hours, is_worked_day, public_holidays, resolve_calendar, round_duration, shift_working_days,
    subtract_working_duration, worked_hours
)
from planning.models import Calendar, CalendarException, ExceptionType, WorkingTimeMode

# 2024-01-01 is a Monday
MONDAY = date(2024, 1, 1)
FRIDAY = date(2024, 1, 5)
SATURDAY = date(2024, 1, 6)
NEXT_MONDAY = date(2024, 1, 8)


class TestWorkingDuration:
    """Working-day walks without a calendar (Monday to Friday)."""

    def test_monday_plus_five_is_friday(self):
        assert add_working_duration(MONDAY, 5) == FRIDAY

    def test_single_day_ends_on_start(self):
        assert add_working_duration(MONDAY, 1) == MONDAY

    def test_walk_skips_weekend(self):
        assert add_working_duration(FRIDAY, 2) == NEXT_MONDAY
        assert add_working_duration(SATURDAY, 1) == NEXT_MONDAY

    def test_fraction_rounds_up_to_whole_day(self):
        assert add_working_duration(MONDAY, 2.5) == date(2024, 1, 3)
        assert add_working_duration(MONDAY, 2.006) == date(2024, 1, 3)
        # 2.004 rounds to 2.0 before taking the ceiling
        assert add_working_duration(MONDAY, 2.004) == date(2024, 1, 2)

    def test_datetime_keeps_type(self):
        result = add_working_duration(datetime(2024, 1, 1, 8, 0), 3)
        assert result == datetime(2024, 1, 3, 8, 0)

    def test_non_positive_duration_returns_start(self):
        assert add_working_duration(MONDAY, 0) == MONDAY
        assert add_working_duration(MONDAY, -2) == MONDAY
        assert add_working_duration(MONDAY, None) == MONDAY

    def test_continuous_mode_counts_every_day(self):
        assert add_working_duration(FRIDAY, 3, WorkingTimeMode.CONTINUOUS) == date(2024, 1, 7)
        assert add_working_duration(FRIDAY, 3, 'accelerated') == date(2024, 1, 7)

    @pytest.mark.parametrize("start_day", range(1, 8))
    @pytest.mark.parametrize("mode", [WorkingTimeMode.STANDARD, WorkingTimeMode.NIGHT, WorkingTimeMode.CONTINUOUS])
    def test_count_and_add_are_inverse(self, start_day, mode):
        # Every weekday start, weekends included
        start = date(2024, 1, start_day)
        for units in range(1, 25):
            end = add_working_duration(start, units, mode)
            assert count_working_duration(start, end, mode) == units

    def test_count_and_add_are_inverse_with_calendar(self, office_calendar):
        office_calendar.exceptions[date(2024, 1, 3)] = CalendarException(
            day=date(2024, 1, 3), kind=ExceptionType.PUBLIC_HOLIDAY
        )
        office_calendar.exceptions[date(2024, 1, 13)] = CalendarException(
            day=date(2024, 1, 13), kind=ExceptionType.WORKED
        )
        for start_day in range(1, 15):
            start = datetime(2024, 1, start_day)
            for units in range(1, 25):
                end = add_working_duration(start, units, calendar=office_calendar)
                assert count_working_duration(start, end, calendar=office_calendar) == units

    def test_fractional_units_count_as_whole_days(self):
        for start_day in range(1, 8):
            start = date(2024, 1, start_day)
            end = add_working_duration(start, 3.5)
            assert count_working_duration(start, end) == 4

    def test_subtract_mirrors_add(self):
        assert subtract_working_duration(FRIDAY, 5) == MONDAY
        assert subtract_working_duration(NEXT_MONDAY, 2) == FRIDAY

    def test_count_with_end_before_start_is_zero(self):
        assert count_working_duration(FRIDAY, MONDAY) == 0

    def test_count_continuous_mode(self):
        assert count_working_duration(MONDAY, NEXT_MONDAY, WorkingTimeMode.CONTINUOUS) == 8
        assert count_working_duration(MONDAY, NEXT_MONDAY) == 6


class TestWorkingDayShift:

    def test_friday_plus_one_is_monday(self):
        assert shift_working_days(FRIDAY, 1) == NEXT_MONDAY

    def test_negative_shift(self):
        assert shift_working_days(NEXT_MONDAY, -1) == FRIDAY

    def test_align_to_working_day(self):
        assert align_to_working_day(SATURDAY) == datetime(2024, 1, 8, 8, 0)
        assert align_to_working_day(SATURDAY, backwards=True) == datetime(2024, 1, 5, 8, 0)
        assert align_to_working_day(MONDAY, start_hour=9) == datetime(2024, 1, 1, 9, 0)


class TestCalendarRules:
    """Weekly template and date exceptions."""

    def test_exception_wins_over_template(self, office_calendar):
        office_calendar.exceptions[MONDAY] = CalendarException(day=MONDAY, kind=ExceptionType.PUBLIC_HOLIDAY)
        office_calendar.exceptions[SATURDAY] = CalendarException(day=SATURDAY, kind=ExceptionType.WORKED)

        assert not is_worked_day(MONDAY, office_calendar)
        assert is_worked_day(SATURDAY, office_calendar)
        assert add_working_duration(MONDAY, 1, calendar=office_calendar) == date(2024, 1, 2)

    def test_date_without_entry_is_not_worked(self):
        calendar = Calendar(id=5)
        assert not is_worked_day(MONDAY, calendar)

    def test_calendar_without_worked_days_stops(self):
        calendar = Calendar(id=5)
        result = add_working_duration(MONDAY, 1, calendar=calendar)
        assert result > MONDAY

    def test_worked_hours_subtract_lunch(self, office_calendar):
        assert worked_hours(MONDAY, date(2024, 1, 7), office_calendar) == 40.0

    def test_reduced_hours_exception(self, office_calendar):
        tuesday = date(2024, 1, 2)
        office_calendar.exceptions[tuesday] = CalendarException(
            day=tuesday, kind=ExceptionType.REDUCED_HOURS, start_time=time(8, 0), end_time=time(12, 0)
        )
        assert worked_hours(MONDAY, FRIDAY, office_calendar) == 36.0

    def test_worked_hours_without_calendar(self):
        assert worked_hours(MONDAY, FRIDAY) == 0.0

    def test_estimate_planned_hours(self, office_calendar):
        assert estimate_planned_hours(MONDAY, FRIDAY, office_calendar) == 40.0
        assert estimate_planned_hours(MONDAY, FRIDAY, duration_units=2.5) == 20.0
        assert estimate_planned_hours(MONDAY, date(2024, 1, 7)) == 40.0


class TestWorkingHours:

    def test_hours_spill_over_to_next_day(self, office_calendar):
        end = add_working_hours(datetime(2024, 1, 1, 8, 0), 10, office_calendar)
        assert end == datetime(2024, 1, 2, 10, 0)

    def test_first_day_counts_after_start_time(self, office_calendar):
        end = add_working_hours(datetime(2024, 1, 1, 14, 0), 4, office_calendar)
        assert end == datetime(2024, 1, 2, 9, 0)

    def test_lunch_break_is_skipped(self, office_calendar):
        end = add_working_hours(datetime(2024, 1, 1, 8, 0), 5, office_calendar)
        assert end == datetime(2024, 1, 1, 14, 0)

    def test_friday_afternoon_continues_on_monday(self, office_calendar):
        end = add_working_hours(datetime(2024, 1, 5, 16, 0), 2, office_calendar)
        assert end == datetime(2024, 1, 8, 9, 0)

    def test_start_on_non_worked_day_raises(self, office_calendar):
        with pytest.raises(ValueError):
            add_working_hours(datetime(2024, 1, 6, 8, 0), 4, office_calendar)

    def test_calendar_is_required(self):
        with pytest.raises(ValueError):
            add_working_hours(datetime(2024, 1, 1, 8, 0), 4, None)

    def test_non_positive_hours_return_start(self, office_calendar):
        start = datetime(2024, 1, 1, 8, 0)
        assert add_working_hours(start, 0, office_calendar) == start


class TestPublicHolidays:

    def test_easter_based_holidays(self):
        holidays = public_holidays(2024)
        assert len(holidays) == 11
        assert date(2024, 4, 1) in holidays   # Lundi de Pâques
        assert date(2024, 5, 9) in holidays   # Ascension
        assert date(2024, 5, 20) in holidays  # Lundi de Pentecôte
        assert date(2024, 7, 14) in holidays

    def test_existing_exception_is_kept(self, office_calendar):
        office_calendar.exceptions[MONDAY] = CalendarException(day=MONDAY, kind=ExceptionType.WORKED)

        added = add_public_holidays(office_calendar, 2024, 2025)

        assert len(added) == 21
        assert office_calendar.exceptions[MONDAY].kind == ExceptionType.WORKED
        assert office_calendar.exceptions[date(2025, 4, 21)].kind == ExceptionType.PUBLIC_HOLIDAY
        assert not is_worked_day(date(2024, 4, 1), office_calendar)

    def test_invalid_year_range(self, office_calendar):
        with pytest.raises(ValueError):
            add_public_holidays(office_calendar, 2025, 2024)


class TestHelpers:

    def test_round_duration_half_away_from_zero(self):
        assert round_duration(2.345) == 2.35
        assert round_duration(-2.345) == -2.35
        assert round_duration(1.004) == 1.0

    def test_resolve_calendar_order(self):
        global_calendar = Calendar(id=1)
        site_calendar = Calendar(id=2, site_id=7)
        inactive = Calendar(id=3, site_id=8, active=False)
        calendars = [global_calendar, site_calendar, inactive]

        assert resolve_calendar(calendars, calendar_id=3) is inactive
        assert resolve_calendar(calendars, site_id=7) is site_calendar
        assert resolve_calendar(calendars, site_id=8) is global_calendar
        assert resolve_calendar([site_calendar]) is None
