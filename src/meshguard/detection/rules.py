"""
Detection rules.

Each rule is a pure function of a window snapshot and the baseline that
returns at most one :class:`Anomaly`. Rules stop at the first qualifying
record or group. Records are scanned oldest first; groups are visited in
order of first appearance.

Anomaly ``details`` strings are parsed again by the policy generator, so
their wording is part of the contract between the two.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from typing import Callable, Iterable, TypeVar

from meshguard.config.baseline import Baseline
from meshguard.detection.models import Anomaly, AnomalySeverity, AnomalyType
from meshguard.telemetry.models import TelemetryRecord
from meshguard.telemetry.window import WindowSnapshot

RECENT_RECORDS = 50
PATTERN_RECORDS = 100

ERROR_RATE_MIN_REQUESTS = 10
ERROR_RATE_THRESHOLD_PCT = 20.0

SPIKE_WINDOW = timedelta(seconds=10)
SPIKE_BASELINE_DIVISOR = 20
SPIKE_MULTIPLIER = 3
SPIKE_MIN_REQUESTS = 20

PATTERN_MAX_PER_IP = 30

LATENCY_MIN_REQUESTS = 10
LATENCY_RECENT_REQUESTS = 10
LATENCY_MULTIPLIER = 3
LATENCY_FLOOR_MS = 200

UNAUTHORIZED_STATUSES = frozenset({401, 403})
UNAUTHORIZED_MAX = 5

K = TypeVar("K")


def group_by(
    records: Iterable[TelemetryRecord], key: Callable[[TelemetryRecord], K]
) -> dict[K, list[TelemetryRecord]]:
    groups: dict[K, list[TelemetryRecord]] = {}
    for record in records:
        groups.setdefault(key(record), []).append(record)
    return groups


def _ids(records: Iterable[TelemetryRecord]) -> list[str]:
    return [r.id for r in records]


def detect_unusual_source(snapshot: WindowSnapshot, baseline: Baseline) -> Anomaly | None:
    for record in snapshot.last(RECENT_RECORDS):
        if record.source_ip in baseline.suspicious_ips:
            return Anomaly.create(
                service=record.service,
                type=AnomalyType.UNUSUAL_SOURCE,
                severity=AnomalySeverity.medium,
                details=f"Request from suspicious IP {record.source_ip} to {record.path}",
                record_ids=[record.id],
            )
    return None


def detect_unexpected_communication(
    snapshot: WindowSnapshot, baseline: Baseline
) -> Anomaly | None:
    for record in snapshot.last(RECENT_RECORDS):
        if not record.dest_service:
            continue
        if not baseline.is_known_edge(record.source_service, record.dest_service):
            return Anomaly.create(
                service=record.service,
                type=AnomalyType.UNEXPECTED_COMMUNICATION,
                severity=AnomalySeverity.high,
                details=(
                    f"Unexpected communication: {record.source_service} -> {record.dest_service}"
                ),
                record_ids=[record.id],
            )
    return None


def detect_new_endpoint(snapshot: WindowSnapshot, baseline: Baseline) -> Anomaly | None:
    for record in snapshot.last(RECENT_RECORDS):
        known = baseline.endpoints_for(record.service)
        if known is not None and record.path not in known:
            return Anomaly.create(
                service=record.service,
                type=AnomalyType.NEW_ENDPOINT,
                severity=AnomalySeverity.low,
                details=(
                    f"New endpoint accessed: {record.method} {record.path} on {record.service}"
                ),
                record_ids=[record.id],
            )
    return None


def detect_high_error_rate(snapshot: WindowSnapshot, baseline: Baseline) -> Anomaly | None:
    for service, records in group_by(snapshot.records, lambda r: r.service).items():
        errors = [r for r in records if r.is_error]
        error_rate = len(errors) / len(records) * 100

        if error_rate > ERROR_RATE_THRESHOLD_PCT and len(records) > ERROR_RATE_MIN_REQUESTS:
            return Anomaly.create(
                service=service,
                type=AnomalyType.HIGH_ERROR_RATE,
                severity=AnomalySeverity.high,
                details=(
                    f"High error rate detected: {error_rate:.1f}% "
                    f"({len(errors)}/{len(records)} requests)"
                ),
                record_ids=_ids(errors),
            )
    return None


def detect_traffic_spike(snapshot: WindowSnapshot, baseline: Baseline) -> Anomaly | None:
    cutoff = snapshot.taken_at - SPIKE_WINDOW

    for service, records in group_by(snapshot.records, lambda r: r.service).items():
        recent_count = sum(1 for r in records if r.timestamp > cutoff)
        # average per 10s slice of the analysed window
        baseline_count = len(records) / SPIKE_BASELINE_DIVISOR

        if recent_count > baseline_count * SPIKE_MULTIPLIER and recent_count > SPIKE_MIN_REQUESTS:
            return Anomaly.create(
                service=service,
                type=AnomalyType.TRAFFIC_SPIKE,
                severity=AnomalySeverity.medium,
                details=(
                    f"Traffic spike detected: {recent_count} requests in last 10s "
                    f"(baseline: {round(baseline_count)})"
                ),
                record_ids=_ids(records[-5:]),
            )
    return None


def detect_suspicious_pattern(snapshot: WindowSnapshot, baseline: Baseline) -> Anomaly | None:
    for ip, records in group_by(snapshot.last(PATTERN_RECORDS), lambda r: r.source_ip).items():
        if len(records) > PATTERN_MAX_PER_IP:
            return Anomaly.create(
                service=records[0].service,
                type=AnomalyType.SUSPICIOUS_PATTERN,
                severity=AnomalySeverity.high,
                details=(
                    f"Suspicious activity from IP {ip}: {len(records)} requests "
                    "in short window (possible DoS)"
                ),
                record_ids=_ids(records),
            )
    return None


def detect_latency_anomaly(snapshot: WindowSnapshot, baseline: Baseline) -> Anomaly | None:
    for service, records in group_by(snapshot.records, lambda r: r.service).items():
        if len(records) < LATENCY_MIN_REQUESTS:
            continue

        avg_latency = sum(r.latency_ms for r in records) / len(records)
        recent = records[-LATENCY_RECENT_REQUESTS:]
        recent_avg = sum(r.latency_ms for r in recent) / len(recent)

        if recent_avg > avg_latency * LATENCY_MULTIPLIER and recent_avg > LATENCY_FLOOR_MS:
            return Anomaly.create(
                service=service,
                type=AnomalyType.LATENCY_ANOMALY,
                severity=AnomalySeverity.medium,
                details=(
                    f"Latency spike detected: {round(recent_avg)}ms "
                    f"(baseline: {round(avg_latency)}ms)"
                ),
                record_ids=_ids(recent[-5:]),
            )
    return None


def detect_unauthorized_access(snapshot: WindowSnapshot, baseline: Baseline) -> Anomaly | None:
    denied = [
        r for r in snapshot.last(RECENT_RECORDS) if r.status_code in UNAUTHORIZED_STATUSES
    ]
    if len(denied) > UNAUTHORIZED_MAX:
        return Anomaly.create(
            service=denied[0].service,
            type=AnomalyType.UNAUTHORIZED_ACCESS,
            severity=AnomalySeverity.high,
            details=(
                f"Multiple unauthorized access attempts detected: {len(denied)} "
                "requests with 401/403 status"
            ),
            record_ids=_ids(denied),
        )
    return None


RuleCheck = Callable[[WindowSnapshot], Anomaly | None]


@dataclass(frozen=True)
class DetectionRule:
    """A named detector bound to its baseline."""

    name: str
    type: AnomalyType
    check: RuleCheck


RULE_FUNCTIONS: list[tuple[str, AnomalyType, Callable[[WindowSnapshot, Baseline], Anomaly | None]]] = [
    ("Unusual Source IP", AnomalyType.UNUSUAL_SOURCE, detect_unusual_source),
    (
        "Unexpected Service Communication",
        AnomalyType.UNEXPECTED_COMMUNICATION,
        detect_unexpected_communication,
    ),
    ("New Endpoint Access", AnomalyType.NEW_ENDPOINT, detect_new_endpoint),
    ("High Error Rate", AnomalyType.HIGH_ERROR_RATE, detect_high_error_rate),
    ("Traffic Spike", AnomalyType.TRAFFIC_SPIKE, detect_traffic_spike),
    ("Suspicious Pattern", AnomalyType.SUSPICIOUS_PATTERN, detect_suspicious_pattern),
    ("Latency Anomaly", AnomalyType.LATENCY_ANOMALY, detect_latency_anomaly),
    ("Unauthorized Access", AnomalyType.UNAUTHORIZED_ACCESS, detect_unauthorized_access),
]


def default_rules(baseline: Baseline | None = None) -> list[DetectionRule]:
    """The fixed, ordered rule set evaluated on every tick."""
    baseline = baseline or Baseline()
    return [
        DetectionRule(name=name, type=anomaly_type, check=partial(func, baseline=baseline))
        for name, anomaly_type, func in RULE_FUNCTIONS
    ]
