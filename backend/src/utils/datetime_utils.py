"""
Datetime utilities for consistent timezone handling across the application.

All business logic runs on the clinic wall clock (IST, UTC+5:30 by default).
Appointment documents store the calendar date separately from minute-of-day
times rendered as ``HH:MM`` strings; the helpers here convert between them.
"""

import logging
from datetime import datetime, timezone, timedelta, date
from typing import Optional

from core.config import CLINIC_UTC_OFFSET_MINUTES
from core.constants import MINUTES_PER_DAY

logger = logging.getLogger(__name__)

# Clinic timezone constant
CLINIC_TZ = timezone(timedelta(minutes=CLINIC_UTC_OFFSET_MINUTES))


def clinic_now() -> datetime:
    """
    Get current clinic datetime.

    Returns:
        Current datetime with the clinic timezone
    """
    return datetime.now(CLINIC_TZ)


def ensure_clinic_tz(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in the clinic timezone.

    Naive datetimes are assumed to already be clinic wall-clock time.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=CLINIC_TZ)
    return dt.astimezone(CLINIC_TZ)


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD or YYYY/MM/DD format.

    Automatically normalizes single-digit months/days.

    Raises:
        ValueError: If date string cannot be parsed
    """
    if not date_str or not date_str.strip():
        raise ValueError("Date string cannot be empty")

    date_str = date_str.strip()

    if '/' in date_str:
        parts = date_str.split('/')
    elif '-' in date_str:
        parts = date_str.split('-')
    else:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    if len(parts) != 3:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    normalized = f"{parts[0].zfill(4)}-{parts[1].zfill(2)}-{parts[2].zfill(2)}"

    try:
        return datetime.strptime(normalized, '%Y-%m-%d').date()
    except ValueError as e:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}") from e


def parse_time_to_minutes(time_str: str) -> int:
    """
    Parse an ``HH:MM`` string into minute-of-day.

    Raises:
        ValueError: If the string is not a valid time between 00:00 and 23:59
    """
    if not time_str or ':' not in time_str:
        raise ValueError(f"Invalid time format (expected HH:MM): {time_str!r}")

    hour_str, minute_str = time_str.strip().split(':', 1)
    try:
        hours, minutes = int(hour_str), int(minute_str)
    except ValueError as e:
        raise ValueError(f"Invalid time format (expected HH:MM): {time_str!r}") from e

    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Time out of range (expected 00:00-23:59): {time_str!r}")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    """Format minute-of-day as ``HH:MM``. 1440 renders as ``24:00`` (end of day)."""
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValueError(f"Minute-of-day out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(time_str: str, minutes: int) -> str:
    """Return ``time_str`` shifted by ``minutes`` as ``HH:MM``."""
    return format_minutes(parse_time_to_minutes(time_str) + minutes)


def schedule_day_of_week(day: date) -> int:
    """
    Weekday index used by provider schedules: 0=Sunday, 1=Monday, ..., 6=Saturday.

    Python's weekday() is 0=Monday, so shift by one.
    """
    return (day.weekday() + 1) % 7


def appointment_start_datetime(day: date, start_time: str) -> datetime:
    """Combine an appointment date and ``HH:MM`` start into a clinic-aware datetime."""
    minutes = parse_time_to_minutes(start_time)
    naive = datetime.combine(day, datetime.min.time()) + timedelta(minutes=minutes)
    return naive.replace(tzinfo=CLINIC_TZ)
