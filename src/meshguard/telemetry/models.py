"""
Telemetry domain models.

Request records are immutable once produced; service metrics are mutable
aggregates refreshed in place by the service registry.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TelemetryRecord:
    """A single request observed by the mesh sidecars."""

    id: str
    timestamp: datetime
    source_service: str
    source_ip: str
    method: str
    path: str
    status_code: int
    latency_ms: float
    service: str
    dest_service: str | None = None
    user_agent: str | None = None
    request_size: int | None = None
    response_size: int | None = None

    @classmethod
    def create(cls, **kwargs: Any) -> TelemetryRecord:
        """Build a record with a fresh id and current timestamp unless given."""
        kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("timestamp", utcnow())
        return cls(**kwargs)

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class ServiceMetrics:
    """Rolling request metrics for one service."""

    name: str
    namespace: str = "default"
    requests_per_second: float = 0.0
    error_rate_pct: float = 0.0
    avg_latency_ms: float = 0.0
    last_seen: datetime | None = None
    dependencies: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_seen"] = self.last_seen.isoformat() if self.last_seen else None
        return data
