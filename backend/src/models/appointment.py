"""
Appointment model representing one booking of a patient with a provider.

An appointment is created once and never deleted; terminal states are kept for
audit and review eligibility. Status, payment status, service payment status
and the reschedule bookkeeping are owned by the appointment state machine and
the reschedule coordinator. Display fields (service/provider names and image)
are a read cache of the source records and carry no scheduling meaning.
"""

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import String, ForeignKey, Index, TIMESTAMP, Date, Integer, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from core.database import Base
from models.enums import (
    AppointmentStatus, PaymentStatus, ServicePaymentStatus, ActorRole,
    ServicePaymentMethod, NormalizedEnum, BLOCKING_STATUSES,
)
from models.provider import new_document_id
from utils.datetime_utils import parse_time_to_minutes


class Appointment(Base):
    """
    Appointment document.

    ``start_time``/``end_time`` are ``HH:MM`` strings on ``appointment_date``;
    ``end_time - start_time`` always equals ``duration_minutes``, the service
    duration captured at booking.
    """

    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_document_id)
    """Internal document identifier."""

    provider_id: Mapped[str] = mapped_column(ForeignKey("providers.id"))
    """Reference to the provider whose time this appointment occupies."""

    patient_id: Mapped[str] = mapped_column(String(128))
    """Authenticated patient identifier."""

    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"))
    """Reference to the booked service."""

    # Denormalized display fields
    patient_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    patient_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    patient_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    service_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    provider_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    provider_image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Timing
    appointment_date: Mapped[date_type] = mapped_column(Date)
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))
    duration_minutes: Mapped[int] = mapped_column(Integer)

    # State
    status: Mapped[AppointmentStatus] = mapped_column(NormalizedEnum(AppointmentStatus))
    payment_status: Mapped[PaymentStatus] = mapped_column(NormalizedEnum(PaymentStatus))
    service_payment_status: Mapped[ServicePaymentStatus] = mapped_column(NormalizedEnum(ServicePaymentStatus))

    # Rescheduling
    reschedule_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_reschedules: Mapped[int] = mapped_column(Integer, nullable=False)

    confirmation_number: Mapped[str] = mapped_column(String(32), unique=True)
    """Human-shareable booking reference. Assigned once at creation."""

    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Reservation fee (paid online)
    payment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    payment_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)
    """Gateway order paid for this booking. An order pays for one appointment only."""

    payment_transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)
    """Gateway payment ID. A payment is recorded on one appointment only."""

    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    refund_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    refund_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    refund_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    refund_requested_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Set when a refund is claimed, before the gateway is called. At most one claim succeeds."""

    refunded_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Treatment fee (settled at the clinic)
    service_payment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    service_payment_method: Mapped[Optional[ServicePaymentMethod]] = mapped_column(
        NormalizedEnum(ServicePaymentMethod), nullable=True
    )
    service_payment_transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    service_payment_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    service_payment_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Cancellation
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    cancelled_by_role: Mapped[Optional[ActorRole]] = mapped_column(NormalizedEnum(ActorRole), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    reschedule_history: Mapped[List["RescheduleEntry"]] = relationship(  # type: ignore[name-defined]
        "RescheduleEntry",
        back_populates="appointment",
        order_by="RescheduleEntry.sequence",
        lazy="selectin",
    )
    """Append-only audit trail, in chronological order."""

    __table_args__ = (
        CheckConstraint("reschedule_count >= 0", name="check_reschedule_count_non_negative"),
        CheckConstraint("reschedule_count <= max_reschedules", name="check_reschedule_count_within_limit"),
        CheckConstraint("start_time < end_time", name="check_valid_time_range"),
        Index("idx_appointments_provider_date_status", "provider_id", "appointment_date", "status"),
        Index("idx_appointments_patient", "patient_id"),
        Index("idx_appointments_status", "status"),
    )

    @validates("confirmation_number")
    def _validate_confirmation_number(self, key: str, value: str) -> str:
        current = self.__dict__.get("confirmation_number")
        if current is not None and current != value:
            raise ValueError("confirmation_number cannot be changed once assigned")
        return value

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time)

    @property
    def is_blocking(self) -> bool:
        """Whether this appointment occupies the provider's time."""
        return self.status in BLOCKING_STATUSES

    @property
    def remaining_reschedules(self) -> int:
        return max(0, self.max_reschedules - self.reschedule_count)

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, provider_id={self.provider_id}, date={self.appointment_date}, "
            f"time={self.start_time}-{self.end_time}, status={self.status})>"
        )
