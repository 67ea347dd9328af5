"""
Slot generation from a provider's weekly schedule template.

Pure functions only: no database access. Candidate start times are
minute-of-day integers, advancing by a fixed step from the opening time.
"""

from typing import Optional, Tuple

from core.config import SLOT_STEP_MINUTES
from models import ProviderSchedule


def intervals_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """
    Check if two half-open intervals ``[start1, end1)`` and ``[start2, end2)`` overlap.

    Touching endpoints do not overlap: 09:30-10:00 and 10:00-10:30 are compatible.
    """
    return start1 < end2 and start2 < end1


class SlotGenerator:
    """Turns a schedule template and a service duration into candidate start times."""

    @staticmethod
    def generate_slots(
        template: Optional[ProviderSchedule],
        service_duration: int,
        step_minutes: Optional[int] = None,
    ) -> Tuple[int, ...]:
        """
        Generate candidate start times for one day.

        A start time ``t`` is emitted iff ``t + service_duration <= close`` and
        ``[t, t + service_duration)`` does not touch the break window at all.
        A slot running into the break is excluded, never shortened.

        Args:
            template: Template row for the target weekday, or None if none exists
            service_duration: Appointment length in minutes
            step_minutes: Scheduling granularity (defaults to SLOT_STEP_MINUTES)

        Returns:
            Ordered tuple of minute-of-day start times; empty if the day is
            closed, no template exists, or the service does not fit

        Raises:
            ValueError: If the duration or step is not positive, or the template
                holds unparseable times or an inverted break
        """
        step = SLOT_STEP_MINUTES if step_minutes is None else step_minutes
        if service_duration <= 0:
            raise ValueError(f"Service duration must be positive: {service_duration}")
        if step <= 0:
            raise ValueError(f"Slot step must be positive: {step}")

        if template is None or not template.is_available:
            return ()

        open_minutes = template.open_minutes
        close_minutes = template.close_minutes

        break_window: Optional[Tuple[int, int]] = None
        break_start = template.break_start_minutes
        break_end = template.break_end_minutes
        if break_start is not None and break_end is not None:
            if break_end <= break_start:
                raise ValueError(
                    f"Break end must be after break start: {template.break_start}-{template.break_end}"
                )
            break_window = (break_start, break_end)

        slots = []
        start = open_minutes
        while start + service_duration <= close_minutes:
            end = start + service_duration
            if break_window is None or not intervals_overlap(start, end, *break_window):
                slots.append(start)
            start += step

        return tuple(slots)
