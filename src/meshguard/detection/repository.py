"""
Anomaly repository.

In-memory, insert-only store of detected anomalies for the process lifetime.
"""

from __future__ import annotations

import threading

from meshguard.core.errors import NotFoundError
from meshguard.detection.models import Anomaly


class AnomalyRepository:
    """Stores anomalies; reads are sorted newest first."""

    def __init__(self) -> None:
        self._anomalies: dict[str, Anomaly] = {}
        self._order: dict[str, int] = {}
        self._lock = threading.RLock()

    def add(self, anomaly: Anomaly) -> None:
        with self._lock:
            if anomaly.id in self._anomalies:
                raise ValueError(f"Anomaly {anomaly.id} already stored")
            self._order[anomaly.id] = len(self._order)
            self._anomalies[anomaly.id] = anomaly

    def find(self, anomaly_id: str) -> Anomaly | None:
        with self._lock:
            return self._anomalies.get(anomaly_id)

    def get(self, anomaly_id: str) -> Anomaly:
        anomaly = self.find(anomaly_id)
        if anomaly is None:
            raise NotFoundError(f"Anomaly {anomaly_id} not found")
        return anomaly

    def _newest_first(self, anomalies: list[Anomaly]) -> list[Anomaly]:
        return sorted(
            anomalies,
            key=lambda a: (a.timestamp, self._order[a.id]),
            reverse=True,
        )

    def list(self, limit: int | None = None) -> list[Anomaly]:
        with self._lock:
            result = self._newest_first(list(self._anomalies.values()))
        return result[:limit] if limit else result

    def by_service(self, service: str) -> list[Anomaly]:
        with self._lock:
            return self._newest_first([a for a in self._anomalies.values() if a.service == service])

    def __len__(self) -> int:
        with self._lock:
            return len(self._anomalies)
