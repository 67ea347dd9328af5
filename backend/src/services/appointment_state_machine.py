"""
Appointment state machine for status, reservation payment and service payment.

The three axes are independent. Each transition is one conditional UPDATE on
the appointment row whose WHERE clause pins the source state, so a stale or
concurrent caller cannot overwrite a state it did not observe. The machine
never commits; the calling service owns the transaction.
"""

import logging
from typing import Any, Dict, FrozenSet, Mapping, Optional, Type

from sqlalchemy.orm import Session

from core.exceptions import InvalidTransition, NotFound
from models.enums import AppointmentStatus, PaymentStatus, ServicePaymentStatus
from utils.appointment_queries import get_appointment, update_appointment_document

logger = logging.getLogger(__name__)


STATUS_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.RESERVATION_PAID, PaymentStatus.REFUNDED}),
    PaymentStatus.RESERVATION_PAID: frozenset({PaymentStatus.FULLY_PAID, PaymentStatus.REFUNDED}),
    PaymentStatus.FULLY_PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

SERVICE_PAYMENT_TRANSITIONS: Dict[ServicePaymentStatus, FrozenSet[ServicePaymentStatus]] = {
    ServicePaymentStatus.PENDING: frozenset({ServicePaymentStatus.PAID, ServicePaymentStatus.WAIVED}),
    ServicePaymentStatus.PAID: frozenset(),
    ServicePaymentStatus.WAIVED: frozenset(),
}

_GRAPHS: Dict[str, Dict[Any, FrozenSet[Any]]] = {
    "status": STATUS_TRANSITIONS,  # type: ignore[dict-item]
    "payment_status": PAYMENT_TRANSITIONS,  # type: ignore[dict-item]
    "service_payment_status": SERVICE_PAYMENT_TRANSITIONS,  # type: ignore[dict-item]
}

_ENUMS: Dict[str, Type[Any]] = {
    "status": AppointmentStatus,
    "payment_status": PaymentStatus,
    "service_payment_status": ServicePaymentStatus,
}


class AppointmentStateMachine:
    """Sole writer of an appointment's status and payment state fields."""

    @staticmethod
    def can_transition(field: str, current: Any, target: Any) -> bool:
        """Whether ``current -> target`` is an edge of the graph for ``field``."""
        graph = _GRAPHS[field]
        enum_cls = _ENUMS[field]
        return enum_cls(target) in graph[enum_cls(current)]

    @staticmethod
    def _transition(
        db: Session,
        appointment_id: str,
        field: str,
        target: Any,
        values: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        target = _ENUMS[field](target)

        appointment = get_appointment(db, appointment_id)
        if appointment is None:
            raise NotFound("Appointment", appointment_id)

        current = getattr(appointment, field)
        if not AppointmentStateMachine.can_transition(field, current, target):
            raise InvalidTransition(field, current, target)

        updated = update_appointment_document(
            db,
            appointment_id,
            {**dict(values or {}), field: target},
            expected={field: current},
            allow_state_fields=True,
        )
        if not updated:
            # Another writer moved the row between our read and our write
            latest = get_appointment(db, appointment_id)
            if latest is None:
                raise NotFound("Appointment", appointment_id)
            raise InvalidTransition(field, getattr(latest, field), target)

        logger.info(f"Appointment {appointment_id}: {field} {current.value} -> {target.value}")
        return current

    @staticmethod
    def transition_status(
        db: Session,
        appointment_id: str,
        target: AppointmentStatus,
        values: Optional[Mapping[str, Any]] = None,
    ) -> AppointmentStatus:
        """
        Move ``status`` to ``target`` if the graph allows it.

        Args:
            db: Database session (caller commits)
            appointment_id: Appointment ID
            target: Desired status
            values: Extra non-state fields written in the same UPDATE

        Returns:
            The source status that was replaced

        Raises:
            NotFound: If the appointment does not exist
            InvalidTransition: If the current status has no edge to ``target``
        """
        return AppointmentStateMachine._transition(db, appointment_id, "status", target, values)

    @staticmethod
    def transition_payment_status(
        db: Session,
        appointment_id: str,
        target: PaymentStatus,
        values: Optional[Mapping[str, Any]] = None,
    ) -> PaymentStatus:
        """Move the reservation ``payment_status`` to ``target``. See transition_status."""
        return AppointmentStateMachine._transition(db, appointment_id, "payment_status", target, values)

    @staticmethod
    def transition_service_payment_status(
        db: Session,
        appointment_id: str,
        target: ServicePaymentStatus,
        values: Optional[Mapping[str, Any]] = None,
    ) -> ServicePaymentStatus:
        """Move ``service_payment_status`` to ``target``. See transition_status."""
        return AppointmentStateMachine._transition(db, appointment_id, "service_payment_status", target, values)
