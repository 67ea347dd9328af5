# pyright: reportMissingTypeStubs=false
"""
Authentication and authorization dependencies for FastAPI.

Provides dependency injection functions for bearer-token authentication,
role-based access control, and patient data isolation.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from models import Appointment
from models.enums import ActorRole
from services.jwt_service import jwt_service, TokenPayload

logger = logging.getLogger(__name__)


class UserContext:
    """Authenticated actor context extracted from JWT token."""

    def __init__(self, actor_id: str, role: ActorRole, name: Optional[str] = None):
        self.actor_id = actor_id
        self.role = role
        self.name = name

    def is_admin(self) -> bool:
        """Check if the actor is a clinic admin."""
        return self.role == ActorRole.ADMIN

    def is_patient(self) -> bool:
        return self.role == ActorRole.PATIENT

    def __repr__(self) -> str:
        return f"UserContext(actor_id='{self.actor_id}', role='{self.role.value}')"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None
    return jwt_service.verify_token(credentials.credentials)


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
) -> UserContext:
    """Get authenticated actor context from JWT token."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return UserContext(actor_id=payload.sub, role=payload.role, name=payload.name)


def require_admin(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require clinic admin role."""
    if not user.is_admin():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user


def ensure_patient_scope(user: UserContext, patient_id: Optional[str]) -> None:
    """
    Ensure a patient only acts for themselves. Admins may act for anyone.

    Raises:
        HTTPException: 403 if a patient names another patient
    """
    if user.is_admin():
        return
    if patient_id is not None and patient_id != user.actor_id:
        logger.warning(f"Patient {user.actor_id} attempted to access data of patient {patient_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own appointments"
        )


def ensure_appointment_access(user: UserContext, appointment: Appointment) -> None:
    """
    Ensure the actor may read or act on an appointment.

    Raises:
        HTTPException: 403 if a patient does not own the appointment
    """
    ensure_patient_scope(user, appointment.patient_id)
