"""
Appointment repository: document-style access to the appointments collection.

Exposes get / query / create / update over the ``appointments`` table. Every
update is a single conditional ``UPDATE ... WHERE`` on one row, so a write
only lands when the expected source fields still match. Status strings are
normalized by the column type on read; callers only see enumerations. Status
conditions in SQL match every stored spelling of a state.
"""

import logging
from datetime import date as date_type
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import String, func, or_, type_coerce, update
from sqlalchemy.orm import Session

from core.exceptions import NotFound
from models import Appointment, RescheduleEntry
from models.enums import BLOCKING_STATUSES, AppointmentStatus, NormalizedEnum, normalize_enum_value, stored_spellings
from utils.datetime_utils import clinic_now

logger = logging.getLogger(__name__)

# Fields only the state machine and the reschedule coordinator may write
STATE_FIELDS = frozenset({
    "status",
    "payment_status",
    "service_payment_status",
    "reschedule_count",
    "appointment_date",
    "start_time",
    "end_time",
})

# Fields no update may ever write
IMMUTABLE_FIELDS = frozenset({"id", "confirmation_number", "created_at", "max_reschedules", "duration_minutes"})

_ORDERINGS = {
    "schedule": (Appointment.appointment_date, Appointment.start_time),
    "schedule_desc": (Appointment.appointment_date.desc(), Appointment.start_time.desc()),
    "created": (Appointment.created_at,),
}


def get_appointment(db: Session, appointment_id: str) -> Optional[Appointment]:
    """Fetch one appointment by id with fresh column values, or None."""
    return db.get(Appointment, appointment_id, populate_existing=True)


def get_appointment_or_404(db: Session, appointment_id: str) -> Appointment:
    """Fetch one appointment by id or raise NotFound."""
    appointment = get_appointment(db, appointment_id)
    if appointment is None:
        raise NotFound("Appointment", appointment_id)
    return appointment


def query_appointments(
    db: Session,
    provider_id: Optional[str] = None,
    patient_id: Optional[str] = None,
    appointment_date: Optional[date_type] = None,
    date_from: Optional[date_type] = None,
    date_to: Optional[date_type] = None,
    statuses: Optional[Iterable[AppointmentStatus]] = None,
    exclude_id: Optional[str] = None,
    order: str = "schedule",
    limit: Optional[int] = None,
) -> List[Appointment]:
    """
    Query appointments by provider, patient, date (range) and status.

    Args:
        db: Database session
        provider_id: Only this provider's appointments
        patient_id: Only this patient's appointments
        appointment_date: Exact date match
        date_from: Inclusive lower date bound
        date_to: Inclusive upper date bound
        statuses: Only these statuses
        exclude_id: Leave out this appointment (used when moving it)
        order: One of 'schedule', 'schedule_desc', 'created'
        limit: Maximum number of rows

    Returns:
        Matching appointments in the requested order
    """
    if order not in _ORDERINGS:
        raise ValueError(f"Unknown ordering: {order}")

    query = db.query(Appointment).populate_existing()
    if provider_id is not None:
        query = query.filter(Appointment.provider_id == provider_id)
    if patient_id is not None:
        query = query.filter(Appointment.patient_id == patient_id)
    if appointment_date is not None:
        query = query.filter(Appointment.appointment_date == appointment_date)
    if date_from is not None:
        query = query.filter(Appointment.appointment_date >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.appointment_date <= date_to)
    if statuses is not None:
        query = query.filter(_expected_condition(Appointment.status, list(statuses)))
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)

    query = query.order_by(*_ORDERINGS[order])
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def blocking_appointments_for_day(
    db: Session,
    provider_id: str,
    appointment_date: date_type,
    exclude_id: Optional[str] = None,
) -> List[Appointment]:
    """Pending and confirmed appointments occupying a provider's day."""
    return query_appointments(
        db,
        provider_id=provider_id,
        appointment_date=appointment_date,
        statuses=BLOCKING_STATUSES,
        exclude_id=exclude_id,
    )


def find_appointment_by_payment(db: Session, order_id: str, payment_id: str) -> Optional[Appointment]:
    """The appointment a gateway order or payment is already recorded on, if any."""
    return (
        db.query(Appointment)
        .filter(or_(Appointment.payment_order_id == order_id, Appointment.payment_transaction_id == payment_id))
        .first()
    )


def create_appointment_document(db: Session, data: Mapping[str, Any]) -> Appointment:
    """
    Stage a new appointment row in the current transaction.

    The caller commits; nothing is visible to other sessions before that.
    """
    appointment = Appointment(**dict(data))
    db.add(appointment)
    db.flush()
    return appointment


def _expected_condition(column: Any, value: Any) -> Any:
    values = list(value) if isinstance(value, (list, tuple, set, frozenset)) else [value]
    column_type = column.expression.type
    if isinstance(column_type, NormalizedEnum):
        # Match any stored spelling of the expected states
        spellings = set()
        for state in values:
            spellings.update(stored_spellings(normalize_enum_value(column_type.enum_cls, state)))
        return func.lower(func.trim(type_coerce(column, String))).in_(sorted(spellings))
    if isinstance(value, (list, tuple, set, frozenset)):
        return column.in_(values)
    return column == value


def update_appointment_document(
    db: Session,
    appointment_id: str,
    values: Mapping[str, Any],
    expected: Optional[Mapping[str, Any]] = None,
    allow_state_fields: bool = False,
) -> bool:
    """
    Apply a partial update to one appointment, atomically and conditionally.

    The ``expected`` mapping is folded into the WHERE clause, so the write is a
    compare-and-swap: it changes nothing unless every expected field still has
    the given value. A sequence value means "one of".

    Args:
        db: Database session (caller commits)
        appointment_id: Appointment to update
        values: Columns to set
        expected: Source-state preconditions
        allow_state_fields: Must be True to write status/payment/slot fields

    Returns:
        True if the row was updated, False if it is missing or a precondition failed

    Raises:
        ValueError: If an immutable or (without permission) state field is written
    """
    forbidden = IMMUTABLE_FIELDS.intersection(values)
    if forbidden:
        raise ValueError(f"Immutable appointment fields cannot be updated: {sorted(forbidden)}")
    if not allow_state_fields:
        guarded = STATE_FIELDS.intersection(values)
        if guarded:
            raise ValueError(f"State fields must be changed through the state machine: {sorted(guarded)}")

    conditions = [Appointment.id == appointment_id]
    for field, value in (expected or {}).items():
        conditions.append(_expected_condition(getattr(Appointment, field), value))

    statement = (
        update(Appointment)
        .where(*conditions)
        .values(**dict(values), updated_at=clinic_now())
        .execution_options(synchronize_session=False)
    )
    result = db.execute(statement)
    return result.rowcount == 1


def append_reschedule_entry(db: Session, data: Mapping[str, Any]) -> RescheduleEntry:
    """Stage one append-only reschedule history row."""
    entry = RescheduleEntry(**dict(data))
    db.add(entry)
    db.flush()
    return entry


def reschedule_history(db: Session, appointment_id: str) -> Sequence[RescheduleEntry]:
    """History rows for an appointment, oldest first."""
    return (
        db.query(RescheduleEntry)
        .filter(RescheduleEntry.appointment_id == appointment_id)
        .order_by(RescheduleEntry.sequence)
        .all()
    )


def serialize_appointment(appointment: Appointment) -> Dict[str, Any]:
    """Render an appointment document as a plain dict for API responses."""
    return {
        "id": appointment.id,
        "confirmation_number": appointment.confirmation_number,
        "provider_id": appointment.provider_id,
        "provider_name": appointment.provider_name,
        "provider_image_url": appointment.provider_image_url,
        "patient_id": appointment.patient_id,
        "patient_name": appointment.patient_name,
        "service_id": appointment.service_id,
        "service_name": appointment.service_name,
        "appointment_date": appointment.appointment_date,
        "start_time": appointment.start_time,
        "end_time": appointment.end_time,
        "duration_minutes": appointment.duration_minutes,
        "status": appointment.status.value,
        "payment_status": appointment.payment_status.value,
        "service_payment_status": appointment.service_payment_status.value,
        "payment_amount": appointment.payment_amount,
        "service_payment_amount": appointment.service_payment_amount,
        "refund_amount": appointment.refund_amount,
        "refund_requested_at": appointment.refund_requested_at,
        "reschedule_count": appointment.reschedule_count,
        "max_reschedules": appointment.max_reschedules,
        "remaining_reschedules": appointment.remaining_reschedules,
        "reschedule_history": [entry.to_dict() for entry in appointment.reschedule_history],
        "notes": appointment.notes,
        "cancelled_at": appointment.cancelled_at,
        "cancellation_reason": appointment.cancellation_reason,
        "created_at": appointment.created_at,
        "updated_at": appointment.updated_at,
    }
