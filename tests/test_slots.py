"""Tests for slot arithmetic and the weekday calendar."""

from datetime import date

import pytest

from app.services.scheduling.slots import (
    adjust_to_weekday,
    calculate_slot_time,
    format_clock,
    format_wait,
    is_weekend,
    iter_weekdays_after,
    next_weekday,
    parse_clock,
    shift_capacity,
)


@pytest.mark.parametrize(
    ("queue_number", "expected"),
    [(1, "08:00"), (2, "08:25"), (3, "08:50"), (4, "09:15"), (19, "15:30")],
)
def test_default_shift_slot_times(queue_number: int, expected: str) -> None:
    assert calculate_slot_time(queue_number) == expected


def test_first_slot_is_shift_start() -> None:
    assert calculate_slot_time(1, "13:40", 15) == "13:40"


def test_consecutive_slots_differ_by_duration() -> None:
    for n in range(1, 30):
        current = parse_clock(calculate_slot_time(n, "09:10", 20))
        following = parse_clock(calculate_slot_time(n + 1, "09:10", 20))
        assert following - current == 20


def test_slot_time_wraps_past_midnight() -> None:
    assert calculate_slot_time(3, "23:30", 30) == "00:30"


def test_format_clock_pads_hours_and_minutes() -> None:
    assert format_clock(5) == "00:05"
    assert format_clock(9 * 60 + 7) == "09:07"


def test_shift_capacity() -> None:
    assert shift_capacity("08:00", "16:00", 25) == 19
    assert shift_capacity("09:00", "13:00", 25) == 9
    assert shift_capacity("08:00", "08:50", 25) == 2


def test_shift_capacity_empty_window() -> None:
    assert shift_capacity("12:00", "12:00", 25) == 0
    assert shift_capacity("14:00", "09:00", 25) == 0
    assert shift_capacity("08:00", "16:00", 0) == 0


def test_weekend_detection() -> None:
    assert is_weekend(date(2025, 5, 31))  # Saturday
    assert is_weekend(date(2025, 6, 1))  # Sunday
    assert not is_weekend(date(2025, 6, 2))  # Monday


def test_adjust_to_weekday_moves_weekend_to_monday() -> None:
    assert adjust_to_weekday(date(2025, 5, 31)) == date(2025, 6, 2)
    assert adjust_to_weekday(date(2025, 6, 1)) == date(2025, 6, 2)
    assert adjust_to_weekday(date(2025, 6, 3)) == date(2025, 6, 3)


def test_next_weekday_is_strictly_after() -> None:
    assert next_weekday(date(2025, 6, 2)) == date(2025, 6, 3)
    assert next_weekday(date(2025, 5, 30)) == date(2025, 6, 2)


def test_iter_weekdays_after_skips_weekends_and_start_day() -> None:
    days = list(iter_weekdays_after(date(2025, 5, 29), 5))
    assert days == [date(2025, 5, 30), date(2025, 6, 2), date(2025, 6, 3)]


def test_iter_weekdays_after_respects_horizon() -> None:
    days = list(iter_weekdays_after(date(2025, 6, 2), 30))
    assert days[-1] <= date(2025, 7, 2)
    assert all(day.weekday() < 5 for day in days)
    assert len(days) == 22


@pytest.mark.parametrize(
    ("minutes", "expected"),
    [
        (0, "0 minutes"),
        (50, "50 minutes"),
        (60, "1 hour"),
        (75, "1h 15m"),
        (120, "2 hours"),
    ],
)
def test_format_wait(minutes, expected):
    assert format_wait(minutes) == expected
