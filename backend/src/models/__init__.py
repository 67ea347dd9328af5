# Package initialization
# Import all models to ensure relationships are properly established
from .provider import Provider
from .service import Service
from .provider_schedule import ProviderSchedule
from .appointment import Appointment
from .reschedule_entry import RescheduleEntry
from .provider_day_lock import ProviderDayLock
from .enums import (
    AppointmentStatus,
    PaymentStatus,
    ServicePaymentStatus,
    ActorRole,
    ServicePaymentMethod,
)

__all__ = [
    "Provider",
    "Service",
    "ProviderSchedule",
    "Appointment",
    "RescheduleEntry",
    "ProviderDayLock",
    "AppointmentStatus",
    "PaymentStatus",
    "ServicePaymentStatus",
    "ActorRole",
    "ServicePaymentMethod",
]
