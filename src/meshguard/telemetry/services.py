"""
Service registry and metrics aggregation.

Holds one :class:`ServiceMetrics` per service name. ``refresh()`` recomputes
request rate, error rate and mean latency for every registered service from
the most recent window records and publishes a ``service.update`` event for
each service that saw traffic.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import structlog

from meshguard.core.errors import NotFoundError
from meshguard.telemetry.models import ServiceMetrics, utcnow

if TYPE_CHECKING:
    from meshguard.config.baseline import ServiceSpec
    from meshguard.notify.sink import NotificationSink
    from meshguard.telemetry.window import TelemetryWindow

logger = structlog.get_logger()

# Sample window assumed to span this many seconds when deriving a rate.
RATE_WINDOW_SECONDS = 10


class ServiceRegistry:
    """Registry of per-service metrics, refreshed from the telemetry window."""

    def __init__(
        self,
        window: TelemetryWindow,
        sink: NotificationSink | None = None,
        sample_size: int = 100,
    ) -> None:
        self._window = window
        self._sink = sink
        self._sample_size = sample_size
        self._services: dict[str, ServiceMetrics] = {}
        self._lock = threading.RLock()

    def register(self, spec: ServiceSpec) -> ServiceMetrics:
        metrics = ServiceMetrics(
            name=spec.name,
            namespace=spec.namespace,
            last_seen=utcnow(),
            dependencies=list(spec.dependencies),
            labels=dict(spec.labels),
        )
        with self._lock:
            self._services[spec.name] = metrics
        logger.debug("service_registered", service=spec.name)
        return metrics

    def get(self, name: str) -> ServiceMetrics:
        with self._lock:
            metrics = self._services.get(name)
        if metrics is None:
            raise NotFoundError(f"Service {name} not found")
        return metrics

    def list(self) -> list[ServiceMetrics]:
        with self._lock:
            return list(self._services.values())

    def refresh(self) -> list[ServiceMetrics]:
        """Recompute metrics for every registered service; returns the updated ones."""
        recent = self._window.query(self._sample_size)
        now = utcnow()
        updated: list[ServiceMetrics] = []

        with self._lock:
            for metrics in self._services.values():
                records = [r for r in recent if r.service == metrics.name]
                if not records:
                    continue
                errors = sum(1 for r in records if r.is_error)
                total_latency = sum(r.latency_ms for r in records)

                metrics.requests_per_second = round(len(records) / RATE_WINDOW_SECONDS, 2)
                metrics.error_rate_pct = round(errors / len(records) * 100, 2)
                metrics.avg_latency_ms = round(total_latency / len(records))
                metrics.last_seen = now
                updated.append(metrics)

        if self._sink is not None:
            for metrics in updated:
                self._sink.publish(
                    "service.update",
                    {
                        "name": metrics.name,
                        "requests_per_second": metrics.requests_per_second,
                        "error_rate_pct": metrics.error_rate_pct,
                        "avg_latency_ms": metrics.avg_latency_ms,
                        "last_seen": now.isoformat(),
                    },
                )
        return updated
