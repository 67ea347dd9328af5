# pyright: reportUnknownMemberType=false
"""
Notification dispatch for appointment lifecycle events.

Fire-and-forget: a POST to the configured webhook after the state change has
committed. A delivery failure is logged and never undoes the state change.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from core import config
from core.constants import NOTIFICATION_TIMEOUT_SECONDS
from models import Appointment

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    APPOINTMENT_STATUS_CHANGED = "appointment_status_changed"
    PAYMENT_STATUS_CHANGED = "payment_status_changed"


class NotificationService:
    """Service for sending appointment notifications to the dispatch webhook."""

    @staticmethod
    def build_payload(
        event: NotificationEvent,
        appointment: Appointment,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "event": event.value,
            "appointment_id": appointment.id,
            "confirmation_number": appointment.confirmation_number,
            "patient_id": appointment.patient_id,
            "provider_id": appointment.provider_id,
            "provider_name": appointment.provider_name,
            "service_name": appointment.service_name,
            "appointment_date": appointment.appointment_date.isoformat(),
            "start_time": appointment.start_time,
            "end_time": appointment.end_time,
            "status": appointment.status.value,
            "payment_status": appointment.payment_status.value,
        }
        if extra:
            payload["details"] = extra
        return payload

    @staticmethod
    def dispatch(
        event: NotificationEvent,
        appointment: Appointment,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Send one notification.

        Args:
            event: Lifecycle event
            appointment: Appointment after the committed change
            extra: Event-specific details (e.g. previous slot, new status)

        Returns:
            True if the webhook accepted the notification, False otherwise
            (including when dispatch is disabled)
        """
        url = config.NOTIFICATION_WEBHOOK_URL
        if not url:
            logger.debug(f"Notification dispatch disabled, skipping {event.value} for {appointment.id}")
            return False

        try:
            response = httpx.post(
                url,
                json=NotificationService.build_payload(event, appointment, extra),
                timeout=NOTIFICATION_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            logger.info(f"Sent {event.value} notification for appointment {appointment.id}")
            return True
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Notification webhook rejected {event.value} for {appointment.id}: "
                f"{e.response.status_code} - {e.response.text}"
            )
            return False
        except Exception as e:
            logger.warning(f"Failed to send {event.value} notification for {appointment.id}: {e}")
            return False
