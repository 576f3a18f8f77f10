from __future__ import annotations

from typing import Any

from meshguard.clients.base import BaseHTTPClient


class WebhookClient(BaseHTTPClient):
    """POST ``{"event", "payload", "sent_at"}`` envelopes to a JSON webhook."""

    def __init__(self, url: str, *, token: str | None = None, **kwargs: Any) -> None:
        super().__init__(url, **kwargs)
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json; charset=utf-8"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def deliver(self, event: str, payload: dict[str, Any], sent_at: str) -> dict[str, Any]:
        return await self.post("", json={"event": event, "payload": payload, "sent_at": sent_at})
