# pyright: reportMissingTypeStubs=false
"""
Appointment Management API endpoints.

Patients act on their own appointments; lifecycle edges other than
cancellation and rescheduling, and all payment bookkeeping, are admin-only.
"""

import logging
from datetime import date as date_type
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from core.constants import MAX_NOTES_LENGTH, MAX_REASON_LENGTH, MAX_STRING_LENGTH
from core.database import get_db
from auth.dependencies import UserContext, ensure_appointment_access, ensure_patient_scope, get_current_user, require_admin
from models.enums import AppointmentStatus, ServicePaymentMethod
from services import AppointmentService, PaymentService, RescheduleService
from services.appointment_service import PaymentConfirmation
from services.payment_gateway import RazorpayGateway, get_payment_gateway
from utils.datetime_utils import parse_time_to_minutes
from api.responses import (
    AppointmentListResponse, AppointmentResponse, CancelAppointmentResponse, RefundEligibilityResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _validate_hhmm(value: str) -> str:
    parse_time_to_minutes(value)
    return value


# ===== Request Models =====

class PaymentConfirmationRequest(BaseModel):
    """Checkout result returned by the payment gateway."""
    order_id: str
    payment_id: str
    signature: str
    amount: Optional[Decimal] = None


class AppointmentCreateRequest(BaseModel):
    """Request model for creating an appointment."""
    provider_id: str
    service_id: str
    appointment_date: date_type
    start_time: str  # Format: "HH:MM"
    patient_id: Optional[str] = None  # Required for admins; patients book for themselves
    patient_name: Optional[str] = Field(None, max_length=MAX_STRING_LENGTH)
    patient_email: Optional[str] = Field(None, max_length=MAX_STRING_LENGTH)
    patient_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    payment: Optional[PaymentConfirmationRequest] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: str) -> str:
        return _validate_hhmm(v)


class RescheduleRequest(BaseModel):
    """Request model for rescheduling an appointment."""
    new_date: date_type
    new_start_time: str  # Format: "HH:MM"
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)

    @field_validator("new_start_time")
    @classmethod
    def validate_new_start_time(cls, v: str) -> str:
        return _validate_hhmm(v)


class CancelRequest(BaseModel):
    """Request model for cancelling an appointment."""
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class FullPaymentRequest(BaseModel):
    """Request model for recording the remaining online balance."""
    transaction_id: Optional[str] = None


class RefundRequest(BaseModel):
    """Request model for refunding an appointment's online payment."""
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class ServicePaymentRequest(BaseModel):
    """Request model for recording the treatment fee paid at the clinic."""
    method: ServicePaymentMethod
    amount: Decimal = Field(..., ge=0)
    transaction_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class WaiveServicePaymentRequest(BaseModel):
    """Request model for waiving the treatment fee."""
    notes: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


def _load_for_actor(db: Session, appointment_id: str, current_user: UserContext):
    appointment = AppointmentService.get_appointment(db, appointment_id)
    ensure_appointment_access(current_user, appointment)
    return appointment


# ===== Patient and admin endpoints =====

@router.post(
    "/appointments",
    summary="Create an appointment",
    status_code=status.HTTP_201_CREATED,
    response_model=AppointmentResponse,
)
async def create_appointment(
    request: AppointmentCreateRequest,
    current_user: UserContext = Depends(get_current_user),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    """Book a slot. Patients must include a verified reservation payment."""
    patient_id = request.patient_id or current_user.actor_id
    ensure_patient_scope(current_user, patient_id)

    payment = None
    if request.payment is not None:
        payment = PaymentConfirmation(**request.payment.model_dump())

    appointment = AppointmentService.create_appointment(
        db,
        patient_id=patient_id,
        provider_id=request.provider_id,
        service_id=request.service_id,
        appointment_date=request.appointment_date,
        start_time=request.start_time,
        actor_role=current_user.role,
        payment=payment,
        gateway=gateway,
        notes=request.notes,
        patient_name=request.patient_name or current_user.name,
        patient_email=request.patient_email,
        patient_phone=request.patient_phone,
    )
    return AppointmentResponse.from_appointment(appointment)


@router.get(
    "/appointments",
    summary="List appointments",
    response_model=AppointmentListResponse,
)
async def list_appointments(
    patient_id: Optional[str] = Query(None),
    provider_id: Optional[str] = Query(None),
    appointment_date: Optional[date_type] = Query(None, alias="date", description="YYYY-MM-DD"),
    appointment_status: Optional[AppointmentStatus] = Query(None, alias="status"),
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AppointmentListResponse:
    """List appointments. Patients only see their own."""
    if current_user.is_patient():
        ensure_patient_scope(current_user, patient_id)
        patient_id = current_user.actor_id

    appointments = AppointmentService.list_appointments(
        db,
        patient_id=patient_id,
        provider_id=provider_id,
        appointment_date=appointment_date,
        status=appointment_status,
    )
    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_appointment(a) for a in appointments]
    )


@router.get(
    "/appointments/{appointment_id}",
    summary="Get an appointment",
    response_model=AppointmentResponse,
)
async def get_appointment(
    appointment_id: str,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = _load_for_actor(db, appointment_id, current_user)
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/appointments/{appointment_id}/reschedule",
    summary="Move an appointment to a new slot",
    response_model=AppointmentResponse,
)
async def reschedule_appointment(
    appointment_id: str,
    request: RescheduleRequest,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    _load_for_actor(db, appointment_id, current_user)
    appointment = RescheduleService.reschedule(
        db,
        appointment_id,
        new_date=request.new_date,
        new_start_time=request.new_start_time,
        actor_id=current_user.actor_id,
        actor_role=current_user.role,
        reason=request.reason,
    )
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/appointments/{appointment_id}/cancel",
    summary="Cancel an appointment",
    response_model=CancelAppointmentResponse,
)
async def cancel_appointment(
    appointment_id: str,
    request: Optional[CancelRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CancelAppointmentResponse:
    """Cancel a pending or confirmed appointment and report refund eligibility."""
    _load_for_actor(db, appointment_id, current_user)
    eligibility = AppointmentService.cancel_appointment(
        db,
        appointment_id,
        actor_id=current_user.actor_id,
        actor_role=current_user.role,
        reason=request.reason if request else None,
    )
    appointment = AppointmentService.get_appointment(db, appointment_id)
    return CancelAppointmentResponse(
        appointment=AppointmentResponse.from_appointment(appointment),
        refund=RefundEligibilityResponse(**eligibility.to_dict()),
    )


# ===== Admin-only lifecycle endpoints =====

@router.post(
    "/appointments/{appointment_id}/confirm",
    summary="Confirm a pending appointment",
    response_model=AppointmentResponse,
)
async def confirm_appointment(
    appointment_id: str,
    current_user: UserContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = AppointmentService.confirm_appointment(db, appointment_id, current_user.actor_id)
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/appointments/{appointment_id}/complete",
    summary="Mark an appointment as completed",
    response_model=AppointmentResponse,
)
async def complete_appointment(
    appointment_id: str,
    current_user: UserContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = AppointmentService.complete_appointment(db, appointment_id, current_user.actor_id)
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/appointments/{appointment_id}/no-show",
    summary="Mark an appointment as a no-show",
    response_model=AppointmentResponse,
)
async def mark_no_show(
    appointment_id: str,
    current_user: UserContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = AppointmentService.mark_no_show(db, appointment_id, current_user.actor_id)
    return AppointmentResponse.from_appointment(appointment)


# ===== Admin-only payment endpoints =====

@router.post(
    "/appointments/{appointment_id}/payments/full",
    summary="Record the remaining online balance as paid",
    response_model=AppointmentResponse,
)
async def record_full_payment(
    appointment_id: str,
    request: Optional[FullPaymentRequest] = None,
    current_user: UserContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = PaymentService.record_full_payment(
        db, appointment_id, current_user.actor_id,
        transaction_id=request.transaction_id if request else None,
    )
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/appointments/{appointment_id}/payments/refund",
    summary="Refund the online payment",
    response_model=AppointmentResponse,
)
async def refund_appointment(
    appointment_id: str,
    request: RefundRequest,
    current_user: UserContext = Depends(require_admin),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = PaymentService.refund_appointment(
        db, appointment_id, current_user.actor_id,
        reason=request.reason, amount=request.amount, gateway=gateway,
    )
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/appointments/{appointment_id}/service-payment",
    summary="Record the treatment fee paid at the clinic",
    response_model=AppointmentResponse,
)
async def record_service_payment(
    appointment_id: str,
    request: ServicePaymentRequest,
    current_user: UserContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = PaymentService.record_service_payment(
        db, appointment_id, current_user.actor_id,
        method=request.method,
        amount=request.amount,
        transaction_id=request.transaction_id,
        notes=request.notes,
    )
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/appointments/{appointment_id}/service-payment/waive",
    summary="Waive the treatment fee",
    response_model=AppointmentResponse,
)
async def waive_service_payment(
    appointment_id: str,
    request: Optional[WaiveServicePaymentRequest] = None,
    current_user: UserContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = PaymentService.waive_service_payment(
        db, appointment_id, current_user.actor_id,
        notes=request.notes if request else None,
    )
    return AppointmentResponse.from_appointment(appointment)
