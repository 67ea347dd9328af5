"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from models import Appointment
from utils.appointment_queries import serialize_appointment


class AvailabilitySlot(BaseModel):
    """Response model for availability slot."""
    start_time: str  # Format: "HH:MM"
    end_time: str    # Format: "HH:MM"


class AvailabilityResponse(BaseModel):
    """Response model for availability query."""
    provider_id: str
    date: str  # Format: "YYYY-MM-DD"
    service_id: str
    duration_minutes: int
    slots: List[AvailabilitySlot]


class AppointmentResponse(BaseModel):
    """Response model for one appointment."""
    id: str
    confirmation_number: str
    provider_id: str
    provider_name: Optional[str] = None
    provider_image_url: Optional[str] = None
    patient_id: str
    patient_name: Optional[str] = None
    service_id: str
    service_name: Optional[str] = None
    appointment_date: date
    start_time: str
    end_time: str
    duration_minutes: int
    status: str
    payment_status: str
    service_payment_status: str
    payment_amount: Optional[Decimal] = None
    service_payment_amount: Optional[Decimal] = None
    refund_amount: Optional[Decimal] = None
    refund_requested_at: Optional[datetime] = None
    reschedule_count: int
    max_reschedules: int
    remaining_reschedules: int
    reschedule_history: List[Dict[str, Any]]  # {"from": {...}, "to": {...}, "reason", "rescheduled_by", ...}
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(**serialize_appointment(appointment))


class AppointmentListResponse(BaseModel):
    """Response model for listing appointments."""
    appointments: List[AppointmentResponse]


class RefundEligibilityResponse(BaseModel):
    """Response model for a refund evaluation."""
    eligible: bool
    reason: str
    refundable_amount: Decimal
    hours_until_start: float


class CancelAppointmentResponse(BaseModel):
    """Response model for cancellation."""
    appointment: AppointmentResponse
    refund: RefundEligibilityResponse


class CheckoutResponse(BaseModel):
    """Response model for a payment checkout order."""
    order_id: str
    amount: Decimal
    currency: str
    key_id: str
    breakdown: Dict[str, str]


class RefreshDisplayFieldsResponse(BaseModel):
    """Response model for display-field refresh."""
    provider_id: str
    updated: int
