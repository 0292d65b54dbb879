"""Async HTTP delivery of queued actions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .config import OfflineConfig
from .handlers import ActionHandler

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class ActionDispatcher:
    def __init__(
        self,
        config: OfflineConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._client = httpx.AsyncClient(base_url=config.base_url, timeout=config.timeout, transport=transport)

    def _headers(self, action_id: str) -> Dict[str, str]:
        headers = {
            "User-Agent": self._config.user_agent,
            "Content-Type": "application/json",
        }
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        if self._config.auto_idempotency:
            headers["Idempotency-Key"] = action_id
        headers.update(self._config.headers)
        return headers

    async def dispatch(self, handler: ActionHandler, action_id: str, payload: Dict[str, Any]) -> DispatchResult:
        """Send ``payload`` verbatim to the handler's endpoint; any 2xx is success."""
        try:
            path = handler.build_path(payload)
        except (KeyError, IndexError) as exc:
            logger.error("Cannot build path for action id=%s type=%s missing=%s", action_id, handler.action_type.value, exc)
            return DispatchResult(ok=False, error=f"missing path parameter {exc}")

        body = json.dumps(payload, separators=(",", ":"))
        try:
            response = await self._client.request(handler.method, path, content=body, headers=self._headers(action_id))
        except httpx.HTTPError as exc:
            logger.error("Error syncing action id=%s type=%s: %s", action_id, handler.action_type.value, exc)
            return DispatchResult(ok=False, error=str(exc) or exc.__class__.__name__)

        if response.is_success:
            return DispatchResult(ok=True, status_code=response.status_code)
        logger.error(
            "Sync request failed id=%s type=%s status=%s body=%s",
            action_id,
            handler.action_type.value,
            response.status_code,
            response.text[:200],
        )
        return DispatchResult(ok=False, status_code=response.status_code, error=f"HTTP {response.status_code}")

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["ActionDispatcher", "DispatchResult"]
