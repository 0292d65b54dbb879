"""Mapping from action types to the endpoints that deliver them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Type
from urllib.parse import quote

from pydantic import BaseModel

from .models import ActionType
from .schemas import PAYLOAD_MODELS, ActionValidationError, validate_payload


@dataclass(frozen=True)
class ActionHandler:
    action_type: ActionType
    method: str
    path: str
    payload_model: Type[BaseModel]

    def build_path(self, payload: Dict[str, Any]) -> str:
        """Fill path placeholders such as ``{sessionId}`` from the payload, one quoted segment each."""
        segments = {}
        for name, value in payload.items():
            segment = quote(str(value), safe="")
            if segment in (".", ".."):
                segment = segment.replace(".", "%2E")
            segments[name] = segment
        return self.path.format(**segments)

    def validate(self, payload: Any) -> Dict[str, Any]:
        return validate_payload(self.payload_model, self.action_type.value, payload)


class HandlerRegistry:
    def __init__(self) -> None:
        self._handlers: Dict[str, ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        self._handlers[handler.action_type.value] = handler

    def get(self, action_type: str) -> Optional[ActionHandler]:
        return self._handlers.get(action_type)

    def require(self, action_type: str) -> ActionHandler:
        handler = self.get(action_type)
        if handler is None:
            raise ActionValidationError(action_type, "no handler registered for this action type")
        return handler


_DEFAULT_ROUTES = (
    (ActionType.MESSAGE, "POST", "/parent/messages"),
    (ActionType.SESSION_UPDATE, "PATCH", "/sessions/{sessionId}"),
    (ActionType.REVIEW, "POST", "/reviews"),
    (ActionType.BOOKING, "POST", "/sessions"),
    (ActionType.PAYMENT, "POST", "/payments/create-payment-intent"),
)


def default_registry() -> HandlerRegistry:
    registry = HandlerRegistry()
    for action_type, method, path in _DEFAULT_ROUTES:
        registry.register(
            ActionHandler(
                action_type=action_type,
                method=method,
                path=path,
                payload_model=PAYLOAD_MODELS[action_type],
            )
        )
    return registry


__all__ = ["ActionHandler", "HandlerRegistry", "default_registry"]
