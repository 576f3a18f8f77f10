"""
Outbound JSON HTTP client.

Transient failures (timeouts, connection errors, 408/429/5xx) are retried
with exponential backoff up to ``max_retries`` attempts. Five consecutive
transient failures open a circuit breaker that fails fast for a minute.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from circuitbreaker import circuit
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from meshguard.core.errors import DeliveryRejectedError, TransientDeliveryError

logger = structlog.get_logger()

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class BaseHTTPClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff_factor = backoff_factor

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _send_once(
        self, method: str, url: str, json: dict[str, Any] | None
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(method, url, json=json, headers=self._headers())
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            logger.warning("http_network_error", method=method, url=url, error=str(exc))
            raise TransientDeliveryError(str(exc), {"url": url}) from exc

        if response.status_code in RETRYABLE_STATUSES:
            logger.warning(
                "http_retryable_status", method=method, url=url, status=response.status_code
            )
            raise TransientDeliveryError(
                f"HTTP {response.status_code}", {"url": url, "status": response.status_code}
            )
        if response.is_error:
            logger.error("http_rejected", method=method, url=url, status=response.status_code)
            raise DeliveryRejectedError(
                f"HTTP {response.status_code}", {"url": url, "status": response.status_code}
            )
        return response

    @circuit(failure_threshold=5, recovery_timeout=60, expected_exception=TransientDeliveryError)
    async def _request(
        self, method: str, path: str, *, json: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientDeliveryError),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._backoff_factor, max=30),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._send_once(method, url, json)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"text": response.text}

    async def post(self, path: str, *, json: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._request("POST", path, json=json)
