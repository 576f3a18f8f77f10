"""Tests for the rule engine tick."""

import pytest
from meshguard.core.errors import DetectionRuleFailure
from meshguard.detection.engine import RuleEngine
from meshguard.detection.models import Anomaly, AnomalySeverity, AnomalyType
from meshguard.detection.repository import AnomalyRepository
from meshguard.detection.rules import DetectionRule
from meshguard.notify.sink import MemorySink
from meshguard.telemetry.models import TelemetryRecord
from meshguard.telemetry.window import TelemetryWindow


def _record(**overrides):
    data = {
        "source_service": "api-gateway",
        "source_ip": "10.0.0.1",
        "method": "GET",
        "path": "/payments",
        "status_code": 200,
        "latency_ms": 40.0,
        "service": "payment-service",
        "dest_service": "payment-service",
    }
    data.update(overrides)
    return TelemetryRecord.create(**data)


def _always(anomaly_type, service="payment-service"):
    def check(snapshot):
        return Anomaly.create(
            service=service,
            type=anomaly_type,
            severity=AnomalySeverity.low,
            details=f"{anomaly_type.value} on {len(snapshot)} records",
            record_ids=[r.id for r in snapshot.records],
        )

    return DetectionRule(name=anomaly_type.value, type=anomaly_type, check=check)


def _broken(snapshot):
    raise KeyError("boom")


@pytest.fixture
def window():
    return TelemetryWindow()


@pytest.fixture
def repository():
    return AnomalyRepository()


@pytest.fixture
def sink():
    return MemorySink()


class TestRunTick:
    def test_empty_window_yields_no_anomalies(self, window, repository, sink):
        engine = RuleEngine(window, repository, sink)

        report = engine.run_tick()

        assert report.anomalies == []
        assert report.failures == []
        assert report.finished_at is not None
        assert engine.ticks == 1

    def test_failing_rule_does_not_stop_others(self, window, repository, sink):
        window.append(_record())
        rules = [
            _always(AnomalyType.UNUSUAL_SOURCE),
            DetectionRule(name="Broken", type=AnomalyType.TRAFFIC_SPIKE, check=_broken),
            _always(AnomalyType.LATENCY_ANOMALY),
        ]
        engine = RuleEngine(window, repository, sink, rules)

        report = engine.run_tick()

        assert [a.type for a in report.anomalies] == [
            AnomalyType.UNUSUAL_SOURCE,
            AnomalyType.LATENCY_ANOMALY,
        ]
        assert report.failed_rules == ["Broken"]
        failure = report.failures[0]
        assert isinstance(failure, DetectionRuleFailure)
        assert isinstance(failure.cause, KeyError)
        assert len(repository) == 2

    def test_anomalies_are_stored_and_published(self, window, repository, sink):
        window.append(_record())
        engine = RuleEngine(window, repository, sink, [_always(AnomalyType.NEW_ENDPOINT)])

        report = engine.run_tick()

        anomaly = report.anomalies[0]
        assert repository.get(anomaly.id) == anomaly
        published = sink.named("anomaly.created")
        assert len(published) == 1
        assert published[0].payload["id"] == anomaly.id
        assert published[0].payload["type"] == "NEW_ENDPOINT"

    def test_raising_sink_does_not_stop_tick(self, window, repository):
        class DownSink:
            def publish(self, event, payload):
                raise RuntimeError("transport down")

        window.append(_record())
        engine = RuleEngine(
            window,
            repository,
            DownSink(),
            [_always(AnomalyType.NEW_ENDPOINT), _always(AnomalyType.TRAFFIC_SPIKE)],
        )

        report = engine.run_tick()

        assert len(report.anomalies) == 2
        assert len(repository.list(10)) == 2
        assert engine.ticks == 1

    def test_analysis_window_limits_snapshot(self, window, repository, sink):
        window.extend([_record() for _ in range(300)])
        engine = RuleEngine(
            window, repository, sink, [_always(AnomalyType.NEW_ENDPOINT)], analysis_window=200
        )

        report = engine.run_tick()

        assert report.records_analyzed == 200
        assert report.anomalies[0].details == "NEW_ENDPOINT on 200 records"

    def test_default_rules_detect_suspicious_ip(self, window, repository, sink):
        window.append(
            _record(
                source_ip="198.51.100.42",
                source_service="frontend",
                service="api-gateway",
                dest_service="api-gateway",
                path="/api/health",
            )
        )
        engine = RuleEngine(window, repository, sink)

        report = engine.run_tick()

        assert [a.type for a in report.anomalies] == [AnomalyType.UNUSUAL_SOURCE]
        assert repository.by_service("api-gateway")[0].details == (
            "Request from suspicious IP 198.51.100.42 to /api/health"
        )


class TestDrafter:
    def test_drafter_id_attached_before_storing(self, window, repository, sink):
        window.append(_record())
        seen = []

        def drafter(anomaly):
            seen.append(anomaly.id)
            return "draft-123"

        engine = RuleEngine(
            window, repository, sink, [_always(AnomalyType.UNUSUAL_SOURCE)], drafter=drafter
        )

        report = engine.run_tick()

        stored = repository.get(report.anomalies[0].id)
        assert stored.suggested_draft_id == "draft-123"
        assert seen == [stored.id]
        assert sink.named("anomaly.created")[0].payload["suggested_draft_id"] == "draft-123"

    def test_drafter_failure_keeps_anomaly(self, window, repository, sink):
        window.append(_record())

        def drafter(anomaly):
            raise RuntimeError("render failed")

        engine = RuleEngine(
            window, repository, sink, [_always(AnomalyType.UNUSUAL_SOURCE)], drafter=drafter
        )

        report = engine.run_tick()

        assert len(repository) == 1
        assert report.anomalies[0].suggested_draft_id is None
        assert report.failures == []
