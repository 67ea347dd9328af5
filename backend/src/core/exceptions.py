"""
Domain errors raised by the scheduling engine.

Every error carries a stable ``error_type`` and the HTTP status the API layer
renders it with. Validation errors are terminal for the operation; only
TransientRepositoryError may be retried.
"""

from typing import Any, Dict, Optional

from fastapi import status


class SchedulingError(Exception):
    """Base class for all scheduling engine errors."""

    error_type: str = "scheduling_error"
    http_status: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "The request could not be processed."

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "type": self.error_type}
        if self.context:
            body["context"] = {k: str(v) for k, v in self.context.items()}
        return body


class InvalidTransition(SchedulingError):
    """A state machine transition was attempted from a non-matching source state."""

    error_type = "invalid_transition"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, field: str, current: Any, target: Any, message: Optional[str] = None):
        self.field = field
        self.current = current
        self.target = target
        super().__init__(
            message or f"Cannot change {field} from '{_value(current)}' to '{_value(target)}'.",
            field=field, current=_value(current), target=_value(target),
        )


class SlotUnavailable(SchedulingError):
    error_type = "slot_unavailable"
    http_status = status.HTTP_409_CONFLICT
    default_message = "This time slot is no longer available. Please choose another time."


class RescheduleLimitExceeded(SchedulingError):
    error_type = "reschedule_limit_exceeded"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, max_reschedules: int):
        self.max_reschedules = max_reschedules
        super().__init__(
            f"You have reached the maximum number of reschedules ({max_reschedules}) "
            f"for this appointment. Please contact the clinic if you need to make changes.",
            max_reschedules=max_reschedules,
        )


class NotReschedulable(SchedulingError):
    error_type = "not_reschedulable"
    http_status = status.HTTP_409_CONFLICT
    default_message = "Only pending or confirmed appointments can be rescheduled."


class NotFound(SchedulingError):
    error_type = "not_found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found", entity=entity, id=entity_id)


class TransientRepositoryError(SchedulingError):
    """Network failure or timeout talking to the repository. Retryable."""

    error_type = "transient_repository_error"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The booking service is temporarily unavailable. Please try again."


class PaymentVerificationFailed(SchedulingError):
    error_type = "payment_verification_failed"
    http_status = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Payment could not be verified. No appointment was created."


class PaymentGatewayError(SchedulingError):
    error_type = "payment_gateway_error"
    http_status = status.HTTP_502_BAD_GATEWAY
    default_message = "The payment gateway could not process the request."


class BookingWindowError(SchedulingError):
    error_type = "invalid_booking_date"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Appointments cannot be booked for this date."


class RefundNotAllowed(SchedulingError):
    error_type = "refund_not_allowed"
    http_status = status.HTTP_409_CONFLICT
    default_message = "No payment found to refund."


def _value(state: Any) -> Any:
    return getattr(state, "value", state)
