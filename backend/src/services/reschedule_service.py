"""
Reschedule coordinator: moves a pending or confirmed appointment to a new slot.

A reschedule is one transaction: take the provider-day lock for the target
date, re-check the slot, move the appointment with a conditional UPDATE that
also bumps the reschedule count, and append the history entry. Any failure
rolls all of it back, leaving the original booking untouched.
"""

import logging
from datetime import date as date_type
from typing import Optional

from sqlalchemy.orm import Session

from core.exceptions import NotReschedulable, RescheduleLimitExceeded, SlotUnavailable
from models import Appointment
from models.enums import ActorRole, AppointmentStatus, BLOCKING_STATUSES
from services.appointment_service import fetch_appointment, validate_booking_date
from services.appointment_state_machine import AppointmentStateMachine
from services.availability_service import AvailabilityService
from services.notification_service import NotificationEvent, NotificationService
from utils.appointment_queries import (
    append_reschedule_entry, get_appointment_or_404, reschedule_history, update_appointment_document,
)
from utils.datetime_utils import appointment_start_datetime, clinic_now, format_minutes, parse_time_to_minutes
from utils.provider_queries import lock_provider_day
from utils.retry import run_with_retry

logger = logging.getLogger(__name__)


def check_reschedulable(appointment: Appointment) -> None:
    """
    Raise if the appointment cannot be moved at all, whatever the target slot.

    Raises:
        NotReschedulable: If the status is not pending or confirmed
        RescheduleLimitExceeded: If the reschedule allowance is used up
    """
    if appointment.status not in BLOCKING_STATUSES:
        raise NotReschedulable(status=appointment.status.value)
    if appointment.reschedule_count >= appointment.max_reschedules:
        raise RescheduleLimitExceeded(appointment.max_reschedules)


class RescheduleService:
    """Service class for moving appointments between slots."""

    @staticmethod
    def reschedule(
        db: Session,
        appointment_id: str,
        new_date: date_type,
        new_start_time: str,
        actor_id: str,
        actor_role: ActorRole,
        reason: Optional[str] = None,
    ) -> Appointment:
        """
        Move an appointment to a new date and start time.

        Preconditions are checked in order, each with its own error: the
        appointment is pending or confirmed, it has reschedules left, and the
        new slot is available for the same duration. A pending appointment is
        confirmed by the move.

        Args:
            db: Database session
            appointment_id: Appointment to move
            new_date: Target date
            new_start_time: Target start (HH:MM)
            actor_id: Who is moving the appointment
            actor_role: Role of the caller
            reason: Optional reason recorded in the history entry

        Returns:
            The updated appointment

        Raises:
            NotFound: If the appointment does not exist
            NotReschedulable: If the appointment is completed, cancelled or no-show
            RescheduleLimitExceeded: If reschedule_count has reached max_reschedules
            SlotUnavailable: If the new slot is not offered, already taken, or is the
                appointment's current slot
            BookingWindowError: If the new date is not bookable
        """
        def _write() -> None:
            appointment = get_appointment_or_404(db, appointment_id)
            check_reschedulable(appointment)

            validate_booking_date(new_date, actor_role)
            try:
                start_minutes = parse_time_to_minutes(new_start_time)
            except ValueError as e:
                raise SlotUnavailable(f"Invalid start time: {new_start_time}") from e
            duration = appointment.duration_minutes
            if new_date == appointment.appointment_date and start_minutes == appointment.start_minutes:
                raise SlotUnavailable(
                    "The appointment is already booked for this time. Please choose a different time.",
                    start_time=new_start_time, date=new_date,
                )

            lock_provider_day(db, appointment.provider_id, new_date)
            if not AvailabilityService.is_available(
                db, appointment.provider_id, new_date, start_minutes, duration,
                exclude_appointment_id=appointment.id,
            ):
                raise SlotUnavailable(start_time=new_start_time, date=new_date)

            new_start = format_minutes(start_minutes)
            new_end = format_minutes(start_minutes + duration)
            if appointment_start_datetime(new_date, new_start) <= clinic_now():
                raise SlotUnavailable("This time has already passed. Please choose another time.")

            sequence = appointment.reschedule_count + 1
            values = {
                "appointment_date": new_date,
                "start_time": new_start,
                "end_time": new_end,
                "reschedule_count": sequence,
            }
            if AppointmentStateMachine.can_transition(
                "status", appointment.status, AppointmentStatus.CONFIRMED
            ):
                values["status"] = AppointmentStatus.CONFIRMED

            moved = update_appointment_document(
                db, appointment.id, values,
                expected={
                    "status": appointment.status,
                    "reschedule_count": appointment.reschedule_count,
                    "appointment_date": appointment.appointment_date,
                    "start_time": appointment.start_time,
                },
                allow_state_fields=True,
            )
            if not moved:
                # Changed underneath us; report what is wrong with it now
                check_reschedulable(get_appointment_or_404(db, appointment_id))
                raise SlotUnavailable("The appointment was changed by someone else. Please try again.")

            append_reschedule_entry(db, {
                "appointment_id": appointment.id,
                "sequence": sequence,
                "from_date": appointment.appointment_date,
                "from_start_time": appointment.start_time,
                "from_end_time": appointment.end_time,
                "to_date": new_date,
                "to_start_time": new_start,
                "to_end_time": new_end,
                "reason": reason,
                "rescheduled_by": actor_id,
                "rescheduled_by_role": actor_role,
                "rescheduled_at": clinic_now(),
            })
            db.commit()

        run_with_retry(_write, db=db, description=f"reschedule appointment {appointment_id}")
        appointment = fetch_appointment(db, appointment_id)
        previous = reschedule_history(db, appointment_id)[-1]

        logger.info(
            f"Rescheduled appointment {appointment_id} from {previous.from_date} {previous.from_start_time} "
            f"to {previous.to_date} {previous.to_start_time} by {actor_role.value} {actor_id} "
            f"({appointment.reschedule_count}/{appointment.max_reschedules})"
        )
        NotificationService.dispatch(
            NotificationEvent.APPOINTMENT_RESCHEDULED,
            appointment,
            {
                "from": {
                    "date": previous.from_date.isoformat(),
                    "start_time": previous.from_start_time,
                    "end_time": previous.from_end_time,
                },
                "reason": reason,
                "rescheduled_by_role": actor_role.value,
            },
        )
        return appointment
