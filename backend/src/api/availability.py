# pyright: reportMissingTypeStubs=false
"""
Provider availability API endpoints.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from core.database import get_db
from auth.dependencies import UserContext, get_current_user, require_admin
from services import AppointmentService, AvailabilityService
from utils.datetime_utils import parse_date_string
from utils.provider_queries import get_provider, get_service
from utils.retry import run_with_retry
from api.responses import AvailabilityResponse, AvailabilitySlot, RefreshDisplayFieldsResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/providers/{provider_id}/availability",
    summary="List available slots for a provider on a date",
    response_model=AvailabilityResponse,
)
async def get_provider_availability(
    provider_id: str,
    date: str = Query(..., description="YYYY-MM-DD"),
    service_id: str = Query(..., description="Service to book (fixes the duration)"),
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AvailabilityResponse:
    """Get bookable slots for a provider, service and date."""
    try:
        requested_date = parse_date_string(date)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid date format (use YYYY-MM-DD)"
        )

    def _load():
        get_provider(db, provider_id)
        service = get_service(db, service_id)
        slots = AvailabilityService.get_available_slots(
            db, provider_id, requested_date, service.duration_minutes
        )
        return service, slots

    service, slots = run_with_retry(_load, db=db, description="list available slots")

    return AvailabilityResponse(
        provider_id=provider_id,
        date=requested_date.isoformat(),
        service_id=service.id,
        duration_minutes=service.duration_minutes,
        slots=[AvailabilitySlot(**slot) for slot in slots],
    )


@router.post(
    "/providers/{provider_id}/refresh-display-fields",
    summary="Copy provider name and image onto upcoming appointments",
    response_model=RefreshDisplayFieldsResponse,
)
async def refresh_provider_display_fields(
    provider_id: str,
    current_user: UserContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> RefreshDisplayFieldsResponse:
    """Refresh the provider display fields cached on appointments."""
    updated = AppointmentService.refresh_display_fields(db, provider_id)
    return RefreshDisplayFieldsResponse(provider_id=provider_id, updated=updated)
