"""Run lifecycle notifications."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

WORKFLOW_STARTED = "workflow_started"
WORKFLOW_COMPLETED = "workflow_completed"
WORKFLOW_FAILED = "workflow_failed"


class Notifier(Protocol):
    """Receives one event per run start and per terminal state."""

    async def notify(self, event: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    async def notify(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"{event} for execution_id={payload.get('execution_id')}")


class WebhookNotifier:
    """POST each event as JSON to ``url``."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def notify(self, event: str, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.post(self.url, json={"event": event, **payload})
            response.raise_for_status()


def get_notifier(url: Optional[str] = None) -> Notifier:
    """Webhook notifier when ``url`` is set, otherwise log-only."""
    if url:
        return WebhookNotifier(url)
    return LoggingNotifier()
