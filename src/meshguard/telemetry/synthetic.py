"""
Synthetic mesh traffic.

Generates plausible request records by walking the baseline service graph:
a random source calls one of its dependencies (or itself when it has
none), with mostly successful status codes and occasional requests from
known-hostile IPs. Used for demos and local simulation; detection does not
distinguish synthetic from real records.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from meshguard.telemetry.models import TelemetryRecord

if TYPE_CHECKING:
    from meshguard.config.baseline import Baseline
    from meshguard.notify.sink import NotificationSink
    from meshguard.telemetry.window import TelemetryWindow

HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]

# ~90% success, ~10% errors
WEIGHTED_STATUS_CODES = [200, 200, 200, 200, 200, 200, 200, 200, 201, 400, 404, 500]

FALLBACK_PATH = "/api/default"


class TrafficGenerator:
    """Produce synthetic :class:`TelemetryRecord` values from a baseline."""

    def __init__(
        self,
        baseline: Baseline,
        *,
        suspicious_ratio: float = 0.05,
        rng: random.Random | None = None,
    ) -> None:
        self._baseline = baseline
        self._suspicious_ratio = suspicious_ratio
        self._rng = rng or random.Random()
        self._graph = {spec.name: list(spec.dependencies) for spec in baseline.services}
        self._endpoints = {spec.name: list(spec.endpoints) for spec in baseline.services}
        self._suspicious_ips = sorted(baseline.suspicious_ips)

    def _source_ip(self) -> str:
        if self._suspicious_ips and self._rng.random() < self._suspicious_ratio:
            return self._rng.choice(self._suspicious_ips)
        octets = (self._rng.randrange(255) for _ in range(3))
        return "10." + ".".join(str(o) for o in octets)

    def generate(self) -> TelemetryRecord:
        source = self._rng.choice(list(self._graph))
        dests = self._graph[source]
        dest = self._rng.choice(dests) if dests else None

        endpoints = self._endpoints.get(dest, []) if dest else []
        path = self._rng.choice(endpoints) if endpoints else FALLBACK_PATH

        return TelemetryRecord.create(
            source_service=source,
            source_ip=self._source_ip(),
            method=self._rng.choice(HTTP_METHODS),
            path=path,
            status_code=self._rng.choice(WEIGHTED_STATUS_CODES),
            latency_ms=float(self._rng.randint(10, 509)),
            service=dest or source,
            dest_service=dest,
            user_agent="Istio/Envoy",
            request_size=self._rng.randrange(10000),
            response_size=self._rng.randrange(50000),
        )

    def burst(self, size: int) -> list[TelemetryRecord]:
        return [self.generate() for _ in range(size)]

    def pump(
        self,
        window: TelemetryWindow,
        size: int,
        sink: NotificationSink | None = None,
    ) -> list[TelemetryRecord]:
        """Append a burst of ``size`` records to ``window``."""
        records = self.burst(size)
        for record in records:
            window.append(record)
            if sink is not None:
                sink.publish("telemetry.record", record.to_dict())
        return records
