"""Notification sinks for pipeline events."""

from meshguard.notify.sink import (
    BroadcastSink,
    CompositeSink,
    LoggingSink,
    MemorySink,
    NotificationSink,
    PublishedEvent,
)
from meshguard.notify.webhook import WebhookSink

__all__ = [
    "BroadcastSink",
    "CompositeSink",
    "LoggingSink",
    "MemorySink",
    "NotificationSink",
    "PublishedEvent",
    "WebhookSink",
]
