"""
Rule engine.

Runs the ordered rule set against one consistent window snapshot per tick.
A failing rule is logged and reported but never stops the remaining rules.
Detected anomalies are optionally turned into policy drafts, stored, and
published as ``anomaly.created``.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import TYPE_CHECKING, Callable

import structlog

from meshguard.core.errors import DetectionRuleFailure
from meshguard.detection.models import Anomaly, TickReport
from meshguard.detection.rules import DetectionRule, default_rules
from meshguard.telemetry.models import utcnow

if TYPE_CHECKING:
    from meshguard.detection.repository import AnomalyRepository
    from meshguard.notify.sink import NotificationSink
    from meshguard.telemetry.window import TelemetryWindow

logger = structlog.get_logger()

DEFAULT_ANALYSIS_WINDOW = 200

# Returns the id of a draft produced for the anomaly, if any.
Drafter = Callable[[Anomaly], "str | None"]


class RuleEngine:
    """Evaluate detection rules over the telemetry window."""

    def __init__(
        self,
        window: TelemetryWindow,
        repository: AnomalyRepository,
        sink: NotificationSink,
        rules: list[DetectionRule] | None = None,
        *,
        analysis_window: int = DEFAULT_ANALYSIS_WINDOW,
        drafter: Drafter | None = None,
    ) -> None:
        self._window = window
        self._repository = repository
        self._sink = sink
        self.rules = rules if rules is not None else default_rules()
        self._analysis_window = analysis_window
        self._drafter = drafter
        self._tick_lock = threading.Lock()
        self.ticks = 0

    def run_tick(self) -> TickReport:
        """Run every rule once against a fresh snapshot."""
        with self._tick_lock:
            snapshot = self._window.snapshot(self._analysis_window)
            report = TickReport(started_at=utcnow(), records_analyzed=len(snapshot))

            for rule in self.rules:
                try:
                    anomaly = rule.check(snapshot)
                except Exception as exc:
                    failure = DetectionRuleFailure(rule.name, exc)
                    logger.error(
                        "detection_rule_failed",
                        rule=rule.name,
                        error=str(exc),
                        exc_info=True,
                    )
                    report.failures.append(failure)
                    continue

                if anomaly is None:
                    continue
                report.anomalies.append(self._record(rule, anomaly))

            report.finished_at = utcnow()
            self.ticks += 1

        if report.anomalies or report.failures:
            logger.info(
                "detection_tick_completed",
                records=report.records_analyzed,
                anomalies=len(report.anomalies),
                failed_rules=report.failed_rules,
            )
        return report

    def _record(self, rule: DetectionRule, anomaly: Anomaly) -> Anomaly:
        if self._drafter is not None:
            try:
                draft_id = self._drafter(anomaly)
            except Exception:
                logger.warning(
                    "anomaly_draft_failed",
                    rule=rule.name,
                    anomaly_id=anomaly.id,
                    exc_info=True,
                )
                draft_id = None
            if draft_id:
                anomaly = dataclasses.replace(anomaly, suggested_draft_id=draft_id)

        self._repository.add(anomaly)
        logger.warning(
            "anomaly_detected",
            rule=rule.name,
            anomaly_id=anomaly.id,
            service=anomaly.service,
            severity=anomaly.severity.value,
            details=anomaly.details,
        )
        try:
            self._sink.publish("anomaly.created", anomaly.to_dict())
        except Exception:
            logger.warning(
                "anomaly_publish_failed",
                rule=rule.name,
                anomaly_id=anomaly.id,
                exc_info=True,
            )
        return anomaly
