from meshguard.clients.base import RETRYABLE_STATUSES, BaseHTTPClient
from meshguard.clients.webhook import WebhookClient

__all__ = ["BaseHTTPClient", "RETRYABLE_STATUSES", "WebhookClient"]
