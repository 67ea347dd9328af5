"""
Payment service for checkout orders, refunds and in-clinic service payments.

Gateway calls happen outside the database transaction; the resulting state is
recorded afterwards through the appointment state machine. A refund is first
claimed on the appointment row, so money is sent at most once per appointment.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from core import config
from core.exceptions import RefundNotAllowed
from models import Appointment
from models.enums import PaymentStatus, ServicePaymentMethod, ServicePaymentStatus
from services.appointment_service import fetch_appointment
from services.appointment_state_machine import AppointmentStateMachine
from services.notification_service import NotificationEvent, NotificationService
from services.payment_gateway import RazorpayGateway
from utils.appointment_queries import update_appointment_document
from utils.datetime_utils import clinic_now
from utils.pricing import payment_breakdown
from utils.provider_queries import get_service
from utils.retry import run_with_retry

logger = logging.getLogger(__name__)

REFUNDABLE_PAYMENT_STATUSES = (PaymentStatus.RESERVATION_PAID, PaymentStatus.FULLY_PAID)


class PaymentService:
    """Service class for payment operations on appointments."""

    @staticmethod
    def start_checkout(
        db: Session,
        service_id: str,
        patient_id: str,
        gateway: Optional[RazorpayGateway] = None,
    ) -> Dict[str, Any]:
        """
        Create a gateway order for the amount due online when booking ``service_id``.

        Returns:
            Dict with order_id, amount, currency and the full breakdown
        """
        service = run_with_retry(lambda: get_service(db, service_id), db=db, description="load service")
        breakdown = payment_breakdown(service.price)
        client = gateway or RazorpayGateway()

        receipt = f"rcpt_{patient_id}_{int(clinic_now().timestamp())}"[:40]
        order_id = client.create_order(
            breakdown.amount_due_online,
            receipt,
            notes={"service_id": service.id, "patient_id": patient_id},
        )
        return {
            "order_id": order_id,
            "amount": breakdown.amount_due_online,
            "currency": config.PAYMENT_CURRENCY,
            "key_id": client.key_id,
            "breakdown": breakdown.to_dict(),
        }

    @staticmethod
    def _record_payment_change(
        db: Session,
        appointment_id: str,
        target: PaymentStatus,
        values: Dict[str, Any],
        actor_id: str,
    ) -> Appointment:
        def _write() -> PaymentStatus:
            previous = AppointmentStateMachine.transition_payment_status(db, appointment_id, target, values)
            db.commit()
            return previous

        previous = run_with_retry(_write, db=db, description=f"set payment {target.value} on {appointment_id}")
        appointment = fetch_appointment(db, appointment_id)
        logger.info(f"Appointment {appointment_id} payment {previous.value} -> {target.value} by {actor_id}")
        NotificationService.dispatch(
            NotificationEvent.PAYMENT_STATUS_CHANGED,
            appointment,
            {"previous_payment_status": previous.value},
        )
        return appointment

    @staticmethod
    def refund_appointment(
        db: Session,
        appointment_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        amount: Optional[Decimal] = None,
        gateway: Optional[RazorpayGateway] = None,
    ) -> Appointment:
        """
        Refund the online payment of an appointment.

        Args:
            db: Database session
            appointment_id: Appointment ID
            actor_id: Admin issuing the refund
            reason: Refund reason, sent to the gateway and recorded
            amount: Amount to refund (defaults to the full payment amount)
            gateway: Payment gateway used for the refund

        Returns:
            The appointment with payment_status refunded

        Raises:
            NotFound: If the appointment does not exist
            RefundNotAllowed: If nothing was paid online, it was already refunded or a
                refund is in progress, or ``amount`` is not between zero and the paid amount
            PaymentGatewayError: If the gateway refuses the refund
        """
        appointment = fetch_appointment(db, appointment_id)
        if appointment.payment_status not in REFUNDABLE_PAYMENT_STATUSES or not appointment.payment_transaction_id:
            raise RefundNotAllowed(payment_status=appointment.payment_status.value)

        paid_amount = appointment.payment_amount or Decimal("0")
        refund_amount = paid_amount if amount is None else Decimal(amount)
        if refund_amount <= 0 or refund_amount > paid_amount:
            raise RefundNotAllowed(
                f"Refund amount must be more than 0 and at most the paid amount ({paid_amount}).",
                amount=refund_amount,
            )

        payment_id = appointment.payment_transaction_id
        claimed_at = PaymentService._claim_refund(db, appointment_id, appointment.payment_status, payment_id)

        client = gateway or RazorpayGateway()
        try:
            refund_id = client.refund(payment_id, refund_amount, reason, receipt=f"refund_{appointment_id}"[:40])
        except Exception:
            PaymentService._release_refund_claim(db, appointment_id, claimed_at)
            raise

        try:
            return PaymentService._record_payment_change(
                db, appointment_id, PaymentStatus.REFUNDED,
                {
                    "refund_amount": refund_amount,
                    "refund_reason": reason,
                    "refund_id": refund_id,
                    "refunded_at": clinic_now(),
                },
                actor_id,
            )
        except Exception:
            # The claim stays in place so the refund cannot be issued again
            logger.error(
                f"Refund {refund_id} issued for appointment {appointment_id} but not recorded; "
                f"refund claim from {claimed_at} left in place"
            )
            raise

    @staticmethod
    def _claim_refund(
        db: Session,
        appointment_id: str,
        payment_status: PaymentStatus,
        payment_id: str,
    ) -> datetime:
        """
        Mark a refund as in progress before any money moves.

        The claim is a conditional update on an unclaimed row still holding the
        observed payment, so of two concurrent refunds only one gets to call
        the gateway.

        Raises:
            RefundNotAllowed: If a refund is already in progress or the payment changed
        """
        claimed_at = clinic_now()

        def _write() -> bool:
            claimed = update_appointment_document(
                db, appointment_id, {"refund_requested_at": claimed_at},
                expected={
                    "payment_status": payment_status,
                    "payment_transaction_id": payment_id,
                    "refund_requested_at": None,
                },
            )
            db.commit()
            return claimed

        if not run_with_retry(_write, db=db, description=f"claim refund on {appointment_id}"):
            raise RefundNotAllowed(
                "A refund for this appointment is already in progress or its payment has changed.",
                appointment_id=appointment_id,
            )
        return claimed_at

    @staticmethod
    def _release_refund_claim(db: Session, appointment_id: str, claimed_at: datetime) -> None:
        def _write() -> None:
            update_appointment_document(
                db, appointment_id, {"refund_requested_at": None},
                expected={"refund_requested_at": claimed_at},
            )
            db.commit()

        run_with_retry(_write, db=db, description=f"release refund claim on {appointment_id}")

    @staticmethod
    def record_full_payment(
        db: Session,
        appointment_id: str,
        actor_id: str,
        transaction_id: Optional[str] = None,
    ) -> Appointment:
        """Record that the remaining online balance was paid (reservation_paid -> fully_paid)."""
        values: Dict[str, Any] = {"payment_date": clinic_now()}
        if transaction_id:
            values["payment_transaction_id"] = transaction_id
        return PaymentService._record_payment_change(
            db, appointment_id, PaymentStatus.FULLY_PAID, values, actor_id
        )

    @staticmethod
    def _record_service_payment_change(
        db: Session,
        appointment_id: str,
        target: ServicePaymentStatus,
        values: Dict[str, Any],
        actor_id: str,
    ) -> Appointment:
        def _write() -> ServicePaymentStatus:
            previous = AppointmentStateMachine.transition_service_payment_status(
                db, appointment_id, target, values
            )
            db.commit()
            return previous

        previous = run_with_retry(
            _write, db=db, description=f"set service payment {target.value} on {appointment_id}"
        )
        appointment = fetch_appointment(db, appointment_id)
        logger.info(f"Appointment {appointment_id} service payment {previous.value} -> {target.value} by {actor_id}")
        NotificationService.dispatch(
            NotificationEvent.PAYMENT_STATUS_CHANGED,
            appointment,
            {"previous_service_payment_status": previous.value,
             "service_payment_status": target.value},
        )
        return appointment

    @staticmethod
    def record_service_payment(
        db: Session,
        appointment_id: str,
        actor_id: str,
        method: ServicePaymentMethod,
        amount: Decimal,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Record the treatment fee settled at the clinic (pending -> paid).

        Raises:
            ValueError: If ``amount`` is negative
            InvalidTransition: If the service payment is already paid or waived
        """
        if Decimal(amount) < 0:
            raise ValueError("Service payment amount cannot be negative")
        return PaymentService._record_service_payment_change(
            db, appointment_id, ServicePaymentStatus.PAID,
            {
                "service_payment_method": ServicePaymentMethod(method),
                "service_payment_amount": Decimal(amount),
                "service_payment_transaction_id": transaction_id,
                "service_payment_notes": notes,
                "service_payment_date": clinic_now(),
            },
            actor_id,
        )

    @staticmethod
    def waive_service_payment(
        db: Session,
        appointment_id: str,
        actor_id: str,
        notes: Optional[str] = None,
    ) -> Appointment:
        """Waive the treatment fee (pending -> waived)."""
        return PaymentService._record_service_payment_change(
            db, appointment_id, ServicePaymentStatus.WAIVED,
            {"service_payment_notes": notes, "service_payment_date": clinic_now()},
            actor_id,
        )
