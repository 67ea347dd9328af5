# pyright: reportMissingTypeStubs=false
"""
Payment checkout API endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.database import get_db
from auth.dependencies import UserContext, ensure_patient_scope, get_current_user
from services import PaymentService
from services.payment_gateway import RazorpayGateway, get_payment_gateway
from api.responses import CheckoutResponse

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckoutRequest(BaseModel):
    """Request model for starting a reservation checkout."""
    service_id: str
    patient_id: Optional[str] = None  # Defaults to the authenticated patient


@router.post(
    "/payments/checkout",
    summary="Create a payment order for the reservation amount",
    response_model=CheckoutResponse,
)
async def start_checkout(
    request: CheckoutRequest,
    current_user: UserContext = Depends(get_current_user),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db),
) -> CheckoutResponse:
    """Create a gateway order the client completes before booking."""
    patient_id = request.patient_id or current_user.actor_id
    ensure_patient_scope(current_user, patient_id)

    checkout = PaymentService.start_checkout(db, request.service_id, patient_id, gateway=gateway)
    logger.info(f"Started checkout {checkout['order_id']} for patient {patient_id}")
    return CheckoutResponse(**checkout)
