"""
Anomaly domain models.

Anomalies are immutable records of something a detection rule found in a
window snapshot. They are stored and referenced, never updated.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from meshguard.telemetry.models import utcnow

MAX_EVIDENCE_RECORDS = 5


class AnomalyType(StrEnum):
    UNUSUAL_SOURCE = "UNUSUAL_SOURCE"
    UNEXPECTED_COMMUNICATION = "UNEXPECTED_COMMUNICATION"
    NEW_ENDPOINT = "NEW_ENDPOINT"
    HIGH_ERROR_RATE = "HIGH_ERROR_RATE"
    TRAFFIC_SPIKE = "TRAFFIC_SPIKE"
    SUSPICIOUS_PATTERN = "SUSPICIOUS_PATTERN"
    LATENCY_ANOMALY = "LATENCY_ANOMALY"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"


class AnomalySeverity(StrEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


@dataclass(frozen=True)
class Anomaly:
    """Something unusual observed in recent mesh traffic."""

    id: str
    timestamp: datetime
    service: str
    type: AnomalyType
    severity: AnomalySeverity
    details: str
    associated_record_ids: tuple[str, ...] = ()
    suggested_draft_id: str | None = None

    @classmethod
    def create(
        cls,
        *,
        service: str,
        type: AnomalyType,
        severity: AnomalySeverity,
        details: str,
        record_ids: list[str] | tuple[str, ...] = (),
        timestamp: datetime | None = None,
    ) -> Anomaly:
        return cls(
            id=str(uuid.uuid4()),
            timestamp=timestamp or utcnow(),
            service=service,
            type=type,
            severity=severity,
            details=details,
            associated_record_ids=tuple(record_ids)[:MAX_EVIDENCE_RECORDS],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "service": self.service,
            "type": self.type.value,
            "severity": self.severity.value,
            "details": self.details,
            "associated_record_ids": list(self.associated_record_ids),
            "suggested_draft_id": self.suggested_draft_id,
        }


@dataclass
class TickReport:
    """Outcome of one detection pass over a window snapshot."""

    started_at: datetime
    finished_at: datetime | None = None
    records_analyzed: int = 0
    anomalies: list[Anomaly] = field(default_factory=list)
    failures: list[Any] = field(default_factory=list)  # DetectionRuleFailure

    @property
    def failed_rules(self) -> list[str]:
        return [f.rule_name for f in self.failures]
