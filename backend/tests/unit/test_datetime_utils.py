"""
Unit tests for datetime utilities.

Tests clinic timezone handling and minute-of-day conversions.
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from utils.datetime_utils import (
    CLINIC_TZ, add_minutes, appointment_start_datetime, clinic_now, ensure_clinic_tz, format_minutes,
    parse_date_string, parse_time_to_minutes, schedule_day_of_week,
)


class TestClinicTimezone:

    def test_clinic_now_is_timezone_aware(self):
        now = clinic_now()
        assert now.tzinfo == CLINIC_TZ

    def test_clinic_tz_is_ist_by_default(self):
        assert CLINIC_TZ.utcoffset(None) == timedelta(hours=5, minutes=30)

    def test_ensure_clinic_tz_naive(self):
        naive = datetime(2026, 1, 1, 9, 0)
        assert ensure_clinic_tz(naive) == naive.replace(tzinfo=CLINIC_TZ)

    def test_ensure_clinic_tz_converts_utc(self):
        utc = datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc)
        assert ensure_clinic_tz(utc).hour == 5

    def test_ensure_clinic_tz_none(self):
        assert ensure_clinic_tz(None) is None


class TestTimeParsing:

    @pytest.mark.parametrize("text,minutes", [("00:00", 0), ("09:30", 570), ("23:59", 1439), ("9:05", 545)])
    def test_parse(self, text, minutes):
        assert parse_time_to_minutes(text) == minutes

    @pytest.mark.parametrize("text", ["", "0930", "24:00", "12:60", "ab:cd"])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError):
            parse_time_to_minutes(text)

    def test_format(self):
        assert format_minutes(570) == "09:30"
        assert format_minutes(1440) == "24:00"

    def test_format_out_of_range(self):
        with pytest.raises(ValueError):
            format_minutes(-1)

    def test_add_minutes(self):
        assert add_minutes("12:30", 45) == "13:15"


class TestDates:

    def test_parse_date_string_formats(self):
        assert parse_date_string("2026-03-02") == date(2026, 3, 2)
        assert parse_date_string("2026/3/2") == date(2026, 3, 2)

    def test_parse_date_string_invalid(self):
        with pytest.raises(ValueError):
            parse_date_string("02-2026")

    def test_schedule_day_of_week_starts_on_sunday(self):
        assert schedule_day_of_week(date(2026, 3, 1)) == 0  # Sunday
        assert schedule_day_of_week(date(2026, 3, 2)) == 1  # Monday
        assert schedule_day_of_week(date(2026, 3, 7)) == 6  # Saturday

    def test_appointment_start_datetime(self):
        start = appointment_start_datetime(date(2026, 3, 2), "10:30")
        assert start == datetime(2026, 3, 2, 10, 30, tzinfo=CLINIC_TZ)
