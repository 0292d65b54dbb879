"""Pydantic models describing queued action payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, conint, constr
from pydantic.alias_generators import to_camel

from .models import ActionType

NonEmptyStr = constr(min_length=1)


class ActionValidationError(ValueError):
    """Raised when a payload does not match the schema of its action type."""

    def __init__(self, action_type: str, message: str) -> None:
        super().__init__(f"Invalid payload for action type {action_type!r}: {message}")
        self.action_type = action_type


class _Payload(BaseModel):
    # Extra keys are forwarded to the endpoint untouched.
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)


class MessagePayload(_Payload):
    receiver_id: NonEmptyStr
    content: NonEmptyStr
    student_id: Optional[str] = None


class SessionUpdatePayload(_Payload):
    session_id: NonEmptyStr
    status: Optional[str] = None
    notes: Optional[str] = None


class ReviewPayload(_Payload):
    session_id: NonEmptyStr
    rating: conint(ge=1, le=5)
    tutor_id: Optional[str] = None
    comment: Optional[str] = None


class BookingPayload(_Payload):
    tutor_id: NonEmptyStr
    student_id: Optional[str] = None
    subject: Optional[str] = None
    start_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)


class PaymentPayload(_Payload):
    booking_id: NonEmptyStr
    payment_method_id: Optional[str] = None


PAYLOAD_MODELS: Dict[ActionType, Type[BaseModel]] = {
    ActionType.MESSAGE: MessagePayload,
    ActionType.SESSION_UPDATE: SessionUpdatePayload,
    ActionType.REVIEW: ReviewPayload,
    ActionType.BOOKING: BookingPayload,
    ActionType.PAYMENT: PaymentPayload,
}


def validate_payload(model: Type[BaseModel], action_type: str, payload: Any) -> Dict[str, Any]:
    """Check ``payload`` against ``model`` and return it unchanged."""
    if not isinstance(payload, dict):
        raise ActionValidationError(action_type, "payload must be a JSON object")
    try:
        model.model_validate(payload)
    except ValidationError as exc:
        raise ActionValidationError(action_type, str(exc)) from exc
    return dict(payload)


__all__ = [
    "ActionValidationError",
    "BookingPayload",
    "MessagePayload",
    "PAYLOAD_MODELS",
    "PaymentPayload",
    "ReviewPayload",
    "SessionUpdatePayload",
    "validate_payload",
]
