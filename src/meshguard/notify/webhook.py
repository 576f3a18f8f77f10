"""
Webhook notification sink.

Delivery happens on a background task of the running event loop so that
``publish`` returns immediately. Delivery failures are logged, never raised.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

import structlog

from meshguard.clients.webhook import WebhookClient
from meshguard.telemetry.models import utcnow

logger = structlog.get_logger()

DEFAULT_EVENTS = ("anomaly.created", "policy.draft", "policy.applied", "policy.rejected")


class WebhookSink:
    """Forward selected events to an HTTP webhook."""

    def __init__(self, client: WebhookClient, events: Iterable[str] = DEFAULT_EVENTS) -> None:
        self._client = client
        self._events = frozenset(events)
        self._pending: set[asyncio.Task[None]] = set()

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        if event not in self._events:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("webhook_no_event_loop", event_name=event)
            return
        task = loop.create_task(self._deliver(event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self._client.deliver(event, payload, sent_at=utcnow().isoformat())
            logger.debug("webhook_delivered", event_name=event)
        except Exception as exc:
            logger.error("webhook_delivery_failed", event_name=event, error=str(exc))

    async def drain(self) -> None:
        """Wait for in-flight deliveries to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
