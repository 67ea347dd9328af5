"""
Closed enumerations for appointment state.

Documents written by older clients carry loosely typed strings ("Confirmed",
" no-show "). They are normalized exactly once, when a row is read from the
repository, by the NormalizedEnum column type below. Nothing else in the
engine compares raw status strings.
"""

import enum
from typing import Any, List, Optional, Type, TypeVar

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

E = TypeVar("E", bound=enum.Enum)


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentStatus(str, enum.Enum):
    """Reservation fee paid online."""
    PENDING = "pending"
    RESERVATION_PAID = "reservation_paid"
    FULLY_PAID = "fully_paid"
    REFUNDED = "refunded"


class ServicePaymentStatus(str, enum.Enum):
    """Treatment fee settled in person at the clinic."""
    PENDING = "pending"
    PAID = "paid"
    WAIVED = "waived"


class ActorRole(str, enum.Enum):
    PATIENT = "patient"
    ADMIN = "admin"


class ServicePaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    OTHER = "other"


# Statuses that occupy a provider's time
BLOCKING_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

TERMINAL_STATUSES = (
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
)

_ALIASES = {
    "canceled": "cancelled",
    "noshow": "no_show",
    "no show": "no_show",
    "no-show": "no_show",
    "fully paid": "fully_paid",
    "reservation paid": "reservation_paid",
}


def normalize_enum_value(enum_cls: Type[E], raw: Any) -> E:
    """
    Map a raw stored value onto ``enum_cls``.

    Trims whitespace, lower-cases, and folds known spelling variants.

    Raises:
        ValueError: If the value is not a member after normalization
    """
    if isinstance(raw, enum_cls):
        return raw
    if raw is None:
        raise ValueError(f"Missing value for {enum_cls.__name__}")
    text = str(getattr(raw, "value", raw)).strip().lower()
    text = _ALIASES.get(text, text)
    try:
        return enum_cls(text)
    except ValueError as e:
        raise ValueError(f"Unknown {enum_cls.__name__} value: {raw!r}") from e


class NormalizedEnum(TypeDecorator):
    """String column that round-trips a str Enum and normalizes on read."""

    impl = String(32)
    cache_ok = True

    def __init__(self, enum_cls: Type[enum.Enum], *args: Any, **kwargs: Any):
        self.enum_cls = enum_cls
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None
        return normalize_enum_value(self.enum_cls, value).value

    def process_result_value(self, value: Any, dialect: Any) -> Optional[enum.Enum]:
        if value is None:
            return None
        return normalize_enum_value(self.enum_cls, value)


def stored_spellings(member: enum.Enum) -> List[str]:
    """
    Lower-cased stored forms that normalize to ``member``.

    Used to match legacy rows in SQL, where values are compared after
    ``lower(trim(...))``.
    """
    return sorted({member.value} | {alias for alias, target in _ALIASES.items() if target == member.value})
