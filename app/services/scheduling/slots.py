"""Slot arithmetic and the weekday calendar used by the queue scheduler."""

from collections.abc import Iterator
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import settings

MINUTES_PER_DAY = 24 * 60
SATURDAY = 5


def parse_clock(value: str) -> int:
    """Convert ``HH:MM`` to minutes after midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_clock(total_minutes: int) -> str:
    """Convert minutes after midnight to ``HH:MM``."""
    hours, minutes = divmod(total_minutes % MINUTES_PER_DAY, 60)
    return f"{hours:02d}:{minutes:02d}"


def calculate_slot_time(
    queue_number: int,
    shift_start: str = "08:00",
    duration_minutes: int = 25,
) -> str:
    """
    Wall-clock time of a queue position.

    Args:
        queue_number: 1-based queue position
        shift_start: Shift start as ``HH:MM``
        duration_minutes: Fixed consultation length

    Returns:
        ``HH:MM`` of ``shift_start + (queue_number - 1) * duration_minutes``
    """
    return format_clock(parse_clock(shift_start) + (queue_number - 1) * duration_minutes)


def shift_capacity(shift_start: str, shift_end: str, duration_minutes: int) -> int:
    """Number of whole consultations that fit between start and end."""
    length = parse_clock(shift_end) - parse_clock(shift_start)
    if length <= 0 or duration_minutes <= 0:
        return 0
    return length // duration_minutes


def is_weekend(day: date) -> bool:
    return day.weekday() >= SATURDAY


def adjust_to_weekday(day: date) -> date:
    """Move Saturday and Sunday to the following Monday."""
    while is_weekend(day):
        day += timedelta(days=1)
    return day


def next_weekday(day: date) -> date:
    """First weekday strictly after ``day``."""
    return adjust_to_weekday(day + timedelta(days=1))


def iter_weekdays_after(day: date, horizon_days: int) -> Iterator[date]:
    """Yield weekdays in ``day+1 .. day+horizon_days``."""
    for offset in range(1, horizon_days + 1):
        candidate = day + timedelta(days=offset)
        if not is_weekend(candidate):
            yield candidate


def format_wait(minutes: int) -> str:
    """Human readable wait, e.g. ``"45 minutes"``, ``"1h 15m"`` or ``"2 hours"``."""
    if minutes < 60:
        return f"{minutes} minutes"
    hours, rest = divmod(minutes, 60)
    if rest:
        return f"{hours}h {rest}m"
    return f"{hours} hour" if hours == 1 else f"{hours} hours"


def clinic_today() -> date:
    """Today's date in the clinic's timezone."""
    return datetime.now(ZoneInfo(settings.clinic_timezone)).date()
