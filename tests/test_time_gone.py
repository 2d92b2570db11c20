from __future__ import annotations

from datetime import date, datetime

import pytest

from evpm.time_gone import compute_time_gone, format_date_label, next_working_day, to_date


def test_june_2024_has_26_working_days_with_friday_off():
    tg = compute_time_gone("2024-06-10")
    assert tg.total_days == 26
    # 10 days minus Friday the 7th
    assert tg.passed_days == 9
    assert tg.percentage == pytest.approx(9 / 26 * 100)


def test_first_day_is_smallest_and_last_day_is_full():
    first = compute_time_gone(date(2024, 6, 1))
    last = compute_time_gone(date(2024, 6, 30))
    assert first.percentage == pytest.approx(100 / 26)
    assert last.percentage == 100.0
    for day in range(1, 31):
        pct = compute_time_gone(date(2024, 6, day)).percentage
        assert first.percentage <= pct <= 100.0


def test_off_day_does_not_advance_progress():
    thursday = compute_time_gone("2024-06-06")
    friday = compute_time_gone("2024-06-07")
    assert thursday.passed_days == friday.passed_days


def test_configurable_off_weekday():
    # June 2024 has five Sundays
    assert compute_time_gone("2024-06-15", off_weekday=6).total_days == 25


def test_reference_accepts_datetime_and_iso_timestamp():
    assert compute_time_gone(datetime(2024, 6, 10, 15, 30)) == compute_time_gone("2024-06-10T00:00:00.000Z")
    assert to_date(None) == date.today()


def test_date_label():
    assert compute_time_gone("2024-06-10").date_label == "Monday, 10 June 2024"
    assert format_date_label(date(2024, 2, 29)) == "Thursday, 29 February 2024"


def test_next_working_day_skips_off_day_and_stops_at_month_end():
    assert next_working_day("2024-06-06") == date(2024, 6, 8)
    assert next_working_day("2024-06-09") == date(2024, 6, 10)
    assert next_working_day("2024-06-30") is None
