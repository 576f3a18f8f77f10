"""
Notification sinks.

The detection and policy pipeline reports what happened through a single
capability, ``publish(event, payload)``. Sinks are fire-and-forget: they
must return promptly and never raise into the caller.

Events:
    anomaly.created   an anomaly was detected and stored
    policy.draft      a draft was produced from an anomaly
    policy.applied    a draft was approved and applied to the cluster
    policy.rejected   a draft was rejected
    service.update    service metrics were refreshed
    telemetry.record  a synthetic record was produced
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Protocol

import structlog

from meshguard.telemetry.models import utcnow

logger = structlog.get_logger()


class NotificationSink(Protocol):
    def publish(self, event: str, payload: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class PublishedEvent:
    event: str
    payload: dict[str, Any]
    published_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "payload": self.payload,
            "published_at": self.published_at.isoformat(),
        }


class LoggingSink:
    """Write every event to the structured log."""

    def __init__(self, quiet_events: Iterable[str] = ("telemetry.record",)) -> None:
        self._quiet = frozenset(quiet_events)

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        if event in self._quiet:
            logger.debug("event_published", event_name=event)
            return
        logger.info("event_published", event_name=event, payload_id=payload.get("id"))


class MemorySink:
    """Keep the most recent events in memory."""

    def __init__(self, maxlen: int = 1000) -> None:
        self.events: deque[PublishedEvent] = deque(maxlen=maxlen)

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append(PublishedEvent(event, payload))

    def named(self, event: str) -> list[PublishedEvent]:
        return [e for e in self.events if e.event == event]

    def clear(self) -> None:
        self.events.clear()


class BroadcastSink:
    """Fan events out to in-process subscribers (the ``/events`` stream).

    Each subscriber owns a bounded queue bound to the event loop it
    subscribed from. Publishing from another thread or loop hands the event
    over with ``call_soon_threadsafe``. A full queue drops the event for that
    subscriber only, so a slow consumer never blocks publishers.
    """

    def __init__(self, queue_size: int = 1000) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[
            asyncio.Queue[PublishedEvent], asyncio.AbstractEventLoop | None
        ] = {}
        self._lock = threading.Lock()

    def subscribe(self) -> asyncio.Queue[PublishedEvent]:
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        queue: asyncio.Queue[PublishedEvent] = asyncio.Queue(maxsize=self._queue_size)
        with self._lock:
            self._subscribers[queue] = loop
        return queue

    def unsubscribe(self, queue: asyncio.Queue[PublishedEvent]) -> None:
        with self._lock:
            self._subscribers.pop(queue, None)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        message = PublishedEvent(event, payload)
        try:
            current: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        with self._lock:
            subscribers = list(self._subscribers.items())

        for queue, loop in subscribers:
            if loop is None or loop is current:
                self._offer(queue, message)
                continue
            try:
                loop.call_soon_threadsafe(self._offer, queue, message)
            except RuntimeError:
                # subscriber's loop is closed
                self.unsubscribe(queue)

    @staticmethod
    def _offer(queue: asyncio.Queue[PublishedEvent], message: PublishedEvent) -> None:
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("broadcast_subscriber_full", event_name=message.event)


class CompositeSink:
    """Publish to several sinks; one failing sink does not affect the others."""

    def __init__(self, sinks: Iterable[NotificationSink]) -> None:
        self.sinks = list(sinks)

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        for sink in self.sinks:
            try:
                sink.publish(event, payload)
            except Exception:
                logger.warning(
                    "sink_publish_failed",
                    sink=type(sink).__name__,
                    event_name=event,
                    exc_info=True,
                )
