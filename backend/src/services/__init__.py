"""
Services package for shared business logic.

This package contains service classes that encapsulate the scheduling engine's
business logic shared across multiple API endpoints.
"""

from .slot_generator import SlotGenerator
from .availability_service import AvailabilityService
from .appointment_state_machine import AppointmentStateMachine
from .appointment_service import AppointmentService
from .reschedule_service import RescheduleService
from .payment_service import PaymentService
from .notification_service import NotificationService

__all__ = [
    "SlotGenerator",
    "AvailabilityService",
    "AppointmentStateMachine",
    "AppointmentService",
    "RescheduleService",
    "PaymentService",
    "NotificationService",
]
