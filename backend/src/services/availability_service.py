"""
Availability service for slot listing and conflict checks.

Combines the provider's schedule template (via SlotGenerator) with the
appointments already occupying the provider's day. Every call reads fresh;
the result is a point-in-time snapshot and holds no lock. Bookings close the
read-then-write gap by re-checking under the provider-day lock (see
AppointmentService and RescheduleService).
"""

import logging
from datetime import date as date_type, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import SchedulingError, TransientRepositoryError
from services.slot_generator import SlotGenerator, intervals_overlap
from utils.appointment_queries import blocking_appointments_for_day
from utils.datetime_utils import clinic_now, format_minutes, parse_time_to_minutes
from utils.provider_queries import get_schedule_template
from utils.retry import is_transient

logger = logging.getLogger(__name__)

Interval = Tuple[int, int]


def _to_minutes(start_time: Union[str, int]) -> int:
    if isinstance(start_time, int):
        return start_time
    return parse_time_to_minutes(start_time)


class AvailabilityService:
    """
    Service class for availability operations.

    All methods fail closed: an unreadable or malformed schedule template means
    "no slots", never "any slot". Transient repository failures propagate so the
    caller can retry; they are never reported as unavailability.
    """

    @staticmethod
    def has_conflict(intervals: Iterable[Interval], start: int, end: int) -> bool:
        """
        Check if ``[start, end)`` overlaps any of the given booked intervals.

        Pure function - no database queries.
        """
        return any(intervals_overlap(start, end, booked_start, booked_end)
                   for booked_start, booked_end in intervals)

    @staticmethod
    def candidate_slots(
        db: Session,
        provider_id: str,
        day: date_type,
        duration: int,
    ) -> Tuple[int, ...]:
        """
        Generate the day's candidate start times from the provider's template.

        Returns an empty tuple when the template cannot be read or is malformed.
        """
        try:
            template = get_schedule_template(db, provider_id, day)
            return SlotGenerator.generate_slots(template, duration)
        except TransientRepositoryError:
            raise
        except SQLAlchemyError as e:
            if is_transient(e):
                raise
            logger.warning(f"Could not read schedule template for provider {provider_id} on {day}: {e}")
            return ()
        except (SchedulingError, ValueError) as e:
            logger.warning(f"Malformed schedule template for provider {provider_id} on {day}: {e}")
            return ()

    @staticmethod
    def booked_intervals(
        db: Session,
        provider_id: str,
        day: date_type,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[Interval]:
        """
        Intervals of the provider's pending and confirmed appointments on ``day``.

        Completed, cancelled and no-show appointments never block a slot.
        """
        appointments = blocking_appointments_for_day(db, provider_id, day, exclude_id=exclude_appointment_id)
        return [(appointment.start_minutes, appointment.end_minutes) for appointment in appointments]

    @staticmethod
    def is_available(
        db: Session,
        provider_id: str,
        day: date_type,
        start_time: Union[str, int],
        duration: int,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        """
        Check whether one candidate interval can be booked.

        The start must be one of the generated slots for the provider's template
        on that date, and ``[start, start + duration)`` must not overlap any
        pending or confirmed appointment.

        Args:
            db: Database session
            provider_id: Provider ID
            day: Appointment date
            start_time: Candidate start (``HH:MM`` or minute-of-day)
            duration: Appointment length in minutes
            exclude_appointment_id: Appointment to ignore (the one being moved)

        Returns:
            True if the slot is free, False otherwise
        """
        try:
            start = _to_minutes(start_time)
        except ValueError as e:
            logger.info(f"Rejected unparseable start time {start_time!r}: {e}")
            return False

        if start not in AvailabilityService.candidate_slots(db, provider_id, day, duration):
            return False

        intervals = AvailabilityService.booked_intervals(db, provider_id, day, exclude_appointment_id)
        return not AvailabilityService.has_conflict(intervals, start, start + duration)

    @staticmethod
    def list_available_slots(
        db: Session,
        provider_id: str,
        day: date_type,
        duration: int,
        exclude_appointment_id: Optional[str] = None,
    ) -> Tuple[int, ...]:
        """
        List the bookable start times for a provider on a date.

        Reads the template and the day's appointments once and filters every
        candidate in memory; the result equals checking each candidate with
        ``is_available`` when nothing is written in between.

        Returns:
            Ordered tuple of minute-of-day start times
        """
        candidates = AvailabilityService.candidate_slots(db, provider_id, day, duration)
        if not candidates:
            return ()

        intervals = AvailabilityService.booked_intervals(db, provider_id, day, exclude_appointment_id)
        return tuple(
            start for start in candidates
            if not AvailabilityService.has_conflict(intervals, start, start + duration)
        )

    @staticmethod
    def format_slots(
        slots: Sequence[int],
        day: date_type,
        duration: int,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Render start times as ``{"start_time", "end_time"}`` dicts.

        Slots on today's date that have already started are dropped.
        """
        current = now or clinic_now()
        if day < current.date():
            return []
        cutoff = current.hour * 60 + current.minute if day == current.date() else None

        return [
            {"start_time": format_minutes(start), "end_time": format_minutes(start + duration)}
            for start in slots
            if cutoff is None or start > cutoff
        ]

    @staticmethod
    def get_available_slots(
        db: Session,
        provider_id: str,
        day: date_type,
        duration: int,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """List available slots for display, with past slots on today pruned."""
        slots = AvailabilityService.list_available_slots(db, provider_id, day, duration)
        return AvailabilityService.format_slots(slots, day, duration, now=now)
