"""
Appointment service for booking creation and lifecycle operations.

This module contains the appointment business logic shared by the patient and
admin endpoints: creating a booking, moving it through its status edges,
cancellation with refund-eligibility evaluation, and refreshing the display
fields cached from provider records.
"""

import logging
from dataclasses import dataclass
from datetime import date as date_type, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core import config
from core.constants import PAYMENT_METHOD_ONLINE
from core.exceptions import BookingWindowError, PaymentVerificationFailed, SlotUnavailable
from models import Appointment
from models.enums import (
    ActorRole, AppointmentStatus, PaymentStatus, ServicePaymentStatus, BLOCKING_STATUSES,
)
from services.appointment_state_machine import AppointmentStateMachine
from services.availability_service import AvailabilityService
from services.notification_service import NotificationEvent, NotificationService
from services.payment_gateway import RazorpayGateway
from utils.appointment_queries import (
    create_appointment_document, find_appointment_by_payment, get_appointment_or_404, query_appointments,
    update_appointment_document,
)
from utils.datetime_utils import appointment_start_datetime, clinic_now, format_minutes, parse_time_to_minutes
from utils.id_utils import new_confirmation_number
from utils.pricing import payment_breakdown, to_paise
from utils.provider_queries import get_provider, get_service, lock_provider_day
from utils.retry import run_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentConfirmation:
    """Checkout result returned by the gateway to the patient's client."""
    order_id: str
    payment_id: str
    signature: str
    amount: Optional[Decimal] = None


@dataclass(frozen=True)
class RefundEligibility:
    """Outcome of evaluating a cancellation for a refund. Nothing is refunded here."""
    eligible: bool
    reason: str
    refundable_amount: Decimal
    hours_until_start: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eligible": self.eligible,
            "reason": self.reason,
            "refundable_amount": str(self.refundable_amount),
            "hours_until_start": round(self.hours_until_start, 2),
        }


def fetch_appointment(db: Session, appointment_id: str) -> Appointment:
    """Read one appointment through the retrying repository path."""
    return run_with_retry(
        lambda: get_appointment_or_404(db, appointment_id), db=db,
        description=f"load appointment {appointment_id}",
    )


def validate_booking_date(
    appointment_date: date_type,
    actor_role: ActorRole,
    today: Optional[date_type] = None,
) -> None:
    """
    Check that a date may receive a booking.

    Past dates are always rejected. Patients may book at most
    MAX_BOOKING_WINDOW_DAYS ahead; admins are not bound by the window.

    Raises:
        BookingWindowError: If the date is not bookable
    """
    current = today or clinic_now().date()
    if appointment_date < current:
        raise BookingWindowError("Appointments cannot be booked for a past date.", date=appointment_date)

    window_days = config.MAX_BOOKING_WINDOW_DAYS
    if actor_role != ActorRole.ADMIN and appointment_date > current + timedelta(days=window_days):
        raise BookingWindowError(
            f"Appointments can only be booked up to {window_days} days in advance.",
            date=appointment_date,
        )


class AppointmentService:
    """
    Service class for appointment operations.

    Every write runs as one unit of work (lock, re-check, write, commit) inside
    run_with_retry; notifications go out only after the commit.
    """

    @staticmethod
    def create_appointment(
        db: Session,
        patient_id: str,
        provider_id: str,
        service_id: str,
        appointment_date: date_type,
        start_time: str,
        actor_role: ActorRole = ActorRole.PATIENT,
        payment: Optional[PaymentConfirmation] = None,
        gateway: Optional[RazorpayGateway] = None,
        notes: Optional[str] = None,
        patient_name: Optional[str] = None,
        patient_email: Optional[str] = None,
        patient_phone: Optional[str] = None,
    ) -> Appointment:
        """
        Create a new appointment.

        Patients must present a verified reservation payment; the appointment is
        then created confirmed with the reservation fee paid. Admins may book
        without payment, which creates a pending appointment.

        Args:
            db: Database session
            patient_id: Patient the appointment is for
            provider_id: Provider to book
            service_id: Service to book (fixes the duration)
            appointment_date: Appointment date
            start_time: Start time (HH:MM); must be a generated slot
            actor_role: Role of the caller
            payment: Checkout result to verify before writing anything
            gateway: Payment gateway used for verification
            notes: Optional patient notes
            patient_name: Display name cached on the appointment
            patient_email: Contact email cached on the appointment
            patient_phone: Contact phone cached on the appointment

        Returns:
            The created appointment

        Raises:
            NotFound: If the provider or service does not exist
            BookingWindowError: If the date is not bookable
            SlotUnavailable: If the slot is not offered or already taken
            PaymentVerificationFailed: If the payment is missing, invalid, does not pay
                for this booking, or was already used for another appointment
            PaymentGatewayError: If the gateway cannot confirm the order
        """
        provider, service = run_with_retry(
            lambda: (get_provider(db, provider_id), get_service(db, service_id)),
            db=db, description="load booking references",
        )
        validate_booking_date(appointment_date, actor_role)

        try:
            start_minutes = parse_time_to_minutes(start_time)
        except ValueError as e:
            raise SlotUnavailable(f"Invalid start time: {start_time}") from e
        duration = service.duration_minutes
        end_time = format_minutes(start_minutes + duration)
        if appointment_start_datetime(appointment_date, format_minutes(start_minutes)) <= clinic_now():
            raise BookingWindowError("Appointments cannot be booked for a time that has already passed.")

        if not run_with_retry(
            lambda: AvailabilityService.is_available(db, provider_id, appointment_date, start_minutes, duration),
            db=db, description="check slot availability",
        ):
            raise SlotUnavailable(start_time=start_time, date=appointment_date)

        breakdown = payment_breakdown(service.price)

        if payment is not None:
            AppointmentService._verify_payment(
                payment, breakdown.amount_due_online, gateway, service_id=service.id, patient_id=patient_id,
            )
        elif actor_role != ActorRole.ADMIN:
            raise PaymentVerificationFailed("A verified reservation payment is required to book.")
        paid = payment is not None

        now = clinic_now()
        document: Dict[str, Any] = {
            "provider_id": provider.id,
            "patient_id": patient_id,
            "service_id": service.id,
            "patient_name": patient_name,
            "patient_email": patient_email,
            "patient_phone": patient_phone,
            "service_name": service.name,
            "provider_name": provider.name,
            "provider_image_url": provider.image_url,
            "appointment_date": appointment_date,
            "start_time": format_minutes(start_minutes),
            "end_time": end_time,
            "duration_minutes": duration,
            "status": AppointmentStatus.CONFIRMED if paid else AppointmentStatus.PENDING,
            "payment_status": PaymentStatus.RESERVATION_PAID if paid else PaymentStatus.PENDING,
            "service_payment_status": ServicePaymentStatus.PENDING,
            "service_payment_amount": breakdown.service_total,
            "reschedule_count": 0,
            "max_reschedules": config.DEFAULT_MAX_RESCHEDULES,
            "notes": notes,
        }
        if payment is not None:
            document.update({
                "payment_amount": breakdown.reservation_total,
                "payment_order_id": payment.order_id,
                "payment_transaction_id": payment.payment_id,
                "payment_method": PAYMENT_METHOD_ONLINE,
                "payment_date": now,
            })

        def _write() -> str:
            lock_provider_day(db, provider_id, appointment_date)
            if not AvailabilityService.is_available(db, provider_id, appointment_date, start_minutes, duration):
                raise SlotUnavailable(start_time=start_time, date=appointment_date)
            if payment is not None:
                AppointmentService._reject_reused_payment(db, payment)
            try:
                appointment = create_appointment_document(
                    db, {**document, "confirmation_number": new_confirmation_number()}
                )
                db.commit()
            except IntegrityError:
                # Same payment committed concurrently for another provider or day
                db.rollback()
                if payment is not None:
                    AppointmentService._reject_reused_payment(db, payment)
                raise
            return appointment.id

        appointment_id = run_with_retry(_write, db=db, description="create appointment")
        appointment = fetch_appointment(db, appointment_id)

        logger.info(
            f"Created appointment {appointment.id} ({appointment.confirmation_number}) for patient {patient_id} "
            f"with provider {provider_id} on {appointment_date} {appointment.start_time}-{appointment.end_time}"
        )
        NotificationService.dispatch(NotificationEvent.APPOINTMENT_CREATED, appointment)
        return appointment

    @staticmethod
    def _verify_payment(
        payment: PaymentConfirmation,
        expected_amount: Decimal,
        gateway: Optional[RazorpayGateway],
        service_id: str,
        patient_id: str,
    ) -> None:
        """
        Verify a checkout result against the booking it is meant to pay for.

        The signature proves the payment belongs to the order; the order as
        recorded by the gateway must then be paid, in the expected currency,
        for the amount due online on this service, and created for this
        service and patient. A client-supplied amount is only compared, never
        trusted.

        Raises:
            PaymentVerificationFailed: On any mismatch
            PaymentGatewayError: If the order cannot be fetched
        """
        verifier = gateway or RazorpayGateway()
        order_id = payment.order_id
        if not verifier.verify_payment(payment.payment_id, order_id, payment.signature):
            logger.warning(f"Payment signature mismatch for order {order_id}")
            raise PaymentVerificationFailed(order_id=order_id)

        mismatch = "Payment does not match this booking. No appointment was created."
        if payment.amount is not None and Decimal(payment.amount) != expected_amount:
            logger.warning(f"Payment amount mismatch for order {order_id}: {payment.amount} != {expected_amount}")
            raise PaymentVerificationFailed(mismatch, order_id=order_id)

        order = verifier.fetch_order(order_id)
        notes = order.get("notes") or {}
        problems = []
        if order.get("status") != "paid":
            problems.append(f"status {order.get('status')}")
        if order.get("amount") != to_paise(expected_amount):
            problems.append(f"amount {order.get('amount')} != {to_paise(expected_amount)}")
        if order.get("currency") != verifier.currency:
            problems.append(f"currency {order.get('currency')}")
        if notes.get("service_id") != service_id:
            problems.append(f"service {notes.get('service_id')}")
        if notes.get("patient_id") != patient_id:
            problems.append(f"patient {notes.get('patient_id')}")
        if problems:
            logger.warning(f"Order {order_id} does not pay for this booking: {', '.join(problems)}")
            raise PaymentVerificationFailed(mismatch, order_id=order_id)

    @staticmethod
    def _reject_reused_payment(db: Session, payment: PaymentConfirmation) -> None:
        existing = find_appointment_by_payment(db, payment.order_id, payment.payment_id)
        if existing is not None:
            logger.warning(
                f"Payment {payment.payment_id} (order {payment.order_id}) already used by appointment {existing.id}"
            )
            raise PaymentVerificationFailed(
                "This payment has already been used for another appointment. No appointment was created.",
                order_id=payment.order_id,
            )

    @staticmethod
    def get_appointment(db: Session, appointment_id: str) -> Appointment:
        """Get one appointment or raise NotFound."""
        return fetch_appointment(db, appointment_id)

    @staticmethod
    def list_appointments(
        db: Session,
        patient_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        appointment_date: Optional[date_type] = None,
        status: Optional[AppointmentStatus] = None,
    ) -> List[Appointment]:
        """List appointments, earliest first, filtered by patient, provider, date and status."""
        return run_with_retry(
            lambda: query_appointments(
                db,
                patient_id=patient_id,
                provider_id=provider_id,
                appointment_date=appointment_date,
                statuses=[status] if status is not None else None,
            ),
            db=db, description="list appointments",
        )

    @staticmethod
    def _change_status(
        db: Session,
        appointment_id: str,
        target: AppointmentStatus,
        actor_id: str,
        values: Optional[Dict[str, Any]] = None,
    ) -> Appointment:
        def _write() -> AppointmentStatus:
            previous = AppointmentStateMachine.transition_status(db, appointment_id, target, values)
            db.commit()
            return previous

        previous = run_with_retry(_write, db=db, description=f"set appointment {appointment_id} {target.value}")
        appointment = fetch_appointment(db, appointment_id)

        logger.info(f"Appointment {appointment_id} {previous.value} -> {target.value} by {actor_id}")
        NotificationService.dispatch(
            NotificationEvent.APPOINTMENT_STATUS_CHANGED,
            appointment,
            {"previous_status": previous.value, "changed_by": actor_id},
        )
        return appointment

    @staticmethod
    def confirm_appointment(db: Session, appointment_id: str, actor_id: str) -> Appointment:
        """Confirm a pending appointment."""
        return AppointmentService._change_status(db, appointment_id, AppointmentStatus.CONFIRMED, actor_id)

    @staticmethod
    def complete_appointment(db: Session, appointment_id: str, actor_id: str) -> Appointment:
        """Mark a confirmed appointment as completed."""
        return AppointmentService._change_status(db, appointment_id, AppointmentStatus.COMPLETED, actor_id)

    @staticmethod
    def mark_no_show(db: Session, appointment_id: str, actor_id: str) -> Appointment:
        """Mark a confirmed appointment as a no-show."""
        return AppointmentService._change_status(db, appointment_id, AppointmentStatus.NO_SHOW, actor_id)

    @staticmethod
    def cancel_appointment(
        db: Session,
        appointment_id: str,
        actor_id: str,
        actor_role: ActorRole,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RefundEligibility:
        """
        Cancel a pending or confirmed appointment.

        The freed slot becomes bookable immediately. The refund is only
        evaluated, not executed; an admin issues it through PaymentService.

        Args:
            db: Database session
            appointment_id: Appointment ID
            actor_id: Who is cancelling
            actor_role: Role of the caller (recorded on the appointment)
            reason: Optional cancellation reason
            now: Evaluation time (defaults to the clinic clock)

        Returns:
            RefundEligibility for the cancelled appointment

        Raises:
            NotFound: If the appointment does not exist
            InvalidTransition: If the appointment is already terminal
        """
        current_time = now or clinic_now()
        appointment = AppointmentService._change_status(
            db, appointment_id, AppointmentStatus.CANCELLED, actor_id,
            values={
                "cancelled_at": current_time,
                "cancelled_by_role": actor_role,
                "cancellation_reason": reason,
            },
        )
        eligibility = AppointmentService.evaluate_refund_eligibility(appointment, current_time)
        logger.info(
            f"Refund evaluation for cancelled appointment {appointment_id}: "
            f"eligible={eligibility.eligible} ({eligibility.reason})"
        )
        return eligibility

    @staticmethod
    def evaluate_refund_eligibility(appointment: Appointment, now: Optional[datetime] = None) -> RefundEligibility:
        """
        Decide whether a cancelled appointment's reservation payment is refundable.

        Eligible iff the reservation (or full) payment was made online and the
        cancellation happens at least CANCELLATION_REFUND_HOURS before the start.
        """
        current_time = now or clinic_now()
        start = appointment_start_datetime(appointment.appointment_date, appointment.start_time)
        hours_until_start = (start - current_time).total_seconds() / 3600
        notice_hours = config.CANCELLATION_REFUND_HOURS

        if appointment.payment_status not in (PaymentStatus.RESERVATION_PAID, PaymentStatus.FULLY_PAID):
            return RefundEligibility(False, "No online payment to refund.", Decimal("0"), hours_until_start)
        if hours_until_start < notice_hours:
            return RefundEligibility(
                False,
                f"Cancelled less than {notice_hours} hours before the appointment.",
                Decimal("0"),
                hours_until_start,
            )
        return RefundEligibility(
            True,
            f"Cancelled at least {notice_hours} hours before the appointment.",
            appointment.payment_amount or Decimal("0"),
            hours_until_start,
        )

    @staticmethod
    def refresh_display_fields(db: Session, provider_id: str) -> int:
        """
        Copy a provider's current name and image onto its upcoming appointments.

        One-directional (provider to appointment). Only pending and confirmed
        appointments are touched; completed history keeps what it showed.

        Returns:
            Number of appointments updated
        """
        def _write() -> int:
            provider = get_provider(db, provider_id, active_only=False)
            appointments = query_appointments(db, provider_id=provider_id, statuses=BLOCKING_STATUSES)
            updated = 0
            for appointment in appointments:
                if (appointment.provider_name == provider.name
                        and appointment.provider_image_url == provider.image_url):
                    continue
                if update_appointment_document(
                    db, appointment.id,
                    {"provider_name": provider.name, "provider_image_url": provider.image_url},
                ):
                    updated += 1
            db.commit()
            return updated

        updated = run_with_retry(_write, db=db, description=f"refresh display fields for provider {provider_id}")
        logger.info(f"Refreshed display fields on {updated} appointments for provider {provider_id}")
        return updated
