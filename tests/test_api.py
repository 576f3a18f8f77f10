"""Tests for the HTTP API."""

import pytest
import yaml
from fastapi.testclient import TestClient
from meshguard.api.main import create_app
from meshguard.cluster.memory import InMemoryClusterClient
from meshguard.config.settings import Settings
from meshguard.core.errors import ClusterError, InvalidManifestError
from meshguard.runtime import build_runtime
from meshguard.telemetry.models import TelemetryRecord

PREFIX = "/api/v1"


@pytest.fixture
def cluster():
    return InMemoryClusterClient()


@pytest.fixture
def runtime(cluster):
    return build_runtime(Settings(auto_draft=True), cluster=cluster)


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime))


def _suspicious_record():
    return TelemetryRecord.create(
        source_service="frontend",
        source_ip="198.51.100.42",
        method="GET",
        path="/api/health",
        status_code=200,
        latency_ms=42.0,
        service="api-gateway",
        dest_service="api-gateway",
    )


@pytest.fixture
def detected(runtime):
    """Runs one tick over a suspicious request; returns the anomaly."""
    runtime.window.append(_suspicious_record())
    report = runtime.engine.run_tick()
    return report.anomalies[0]


def test_health(client):
    response = client.get(f"{PREFIX}/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["records"] == 0


class TestTelemetry:
    def test_live_newest_first(self, client, runtime):
        first = _suspicious_record()
        second = _suspicious_record()
        runtime.window.extend([first, second])

        response = client.get(f"{PREFIX}/telemetry/live", params={"limit": 1})

        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == [second.id]

    def test_live_filters_by_service(self, client, runtime):
        runtime.window.append(_suspicious_record())

        response = client.get(f"{PREFIX}/telemetry/live", params={"service": "auth-service"})

        assert response.json() == []

    def test_services(self, client, runtime):
        runtime.window.append(_suspicious_record())
        runtime.services.refresh()

        services = client.get(f"{PREFIX}/telemetry/services").json()
        gateway = client.get(f"{PREFIX}/telemetry/services/api-gateway").json()

        assert len(services) == 7
        assert gateway["requests_per_second"] == 0.1
        assert gateway["labels"]["tier"] == "gateway"

    def test_unknown_service_is_404(self, client):
        response = client.get(f"{PREFIX}/telemetry/services/nope")

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"


class TestAnomalies:
    def test_list_and_get(self, client, detected):
        listed = client.get(f"{PREFIX}/anomalies").json()
        fetched = client.get(f"{PREFIX}/anomalies/{detected.id}").json()
        by_service = client.get(f"{PREFIX}/anomalies/service/api-gateway").json()

        assert [a["id"] for a in listed] == [detected.id]
        assert fetched["type"] == "UNUSUAL_SOURCE"
        assert fetched["suggested_draft_id"] == detected.suggested_draft_id
        assert [a["id"] for a in by_service] == [detected.id]

    def test_unknown_anomaly(self, client):
        assert client.get(f"{PREFIX}/anomalies/missing").status_code == 404


class TestPolicies:
    def test_auto_drafted_policy_approval(self, client, cluster, detected):
        draft_id = detected.suggested_draft_id
        pending = client.get(f"{PREFIX}/policies/drafts/pending").json()
        assert [d["id"] for d in pending] == [draft_id]
        assert "198.51.100.42" in pending[0]["rendered_manifest"]

        response = client.post(
            f"{PREFIX}/policies/drafts/{draft_id}/approve", headers={"X-User-Id": "bob"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "applied"
        assert body["approved_by"] == "bob"
        assert len(cluster.list_applied()) == 1

        active = client.get(f"{PREFIX}/policies/active").json()
        assert [d["id"] for d in active] == [draft_id]

        history = client.get(f"{PREFIX}/policies/history/{draft_id}").json()
        assert [e["action"] for e in history] == ["created", "approved", "applied"]
        assert history[0]["user_id"] == "system"

    def test_reject_then_approve_is_400(self, client, detected):
        draft_id = detected.suggested_draft_id

        rejected = client.post(
            f"{PREFIX}/policies/drafts/{draft_id}/reject",
            json={"reason": "false positive"},
            headers={"X-User-Id": "carol"},
        )
        approved = client.post(f"{PREFIX}/policies/drafts/{draft_id}/approve")

        assert rejected.status_code == 200
        assert rejected.json()["rejection_reason"] == "false positive"
        assert approved.status_code == 400
        assert approved.json()["detail"] == "Policy draft is already rejected"

    def test_create_manual_draft(self, client):
        response = client.post(
            f"{PREFIX}/policies/drafts",
            json={
                "service": "billing-service",
                "reason": "Lock down billing",
                "rules": [
                    {
                        "from": {"source": {"namespaces": ["payments"]}},
                        "to": {"operation": {"methods": ["POST"]}},
                    }
                ],
            },
            headers={"X-User-Id": "alice"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["created_by"] == "alice"
        assert body["namespace"] == "default"
        rules = yaml.safe_load(body["rendered_manifest"])["spec"]["rules"]
        assert rules == [
            {
                "from": [{"source": {"namespaces": ["payments"]}}],
                "to": [{"operation": {"methods": ["POST"]}}],
            }
        ]

        drafts = client.get(f"{PREFIX}/policies/drafts").json()
        assert [d["id"] for d in drafts] == [body["id"]]
        fetched = client.get(f"{PREFIX}/policies/drafts/{body['id']}").json()
        assert fetched["reason"] == "Lock down billing"

    def test_create_draft_requires_rules(self, client):
        response = client.post(
            f"{PREFIX}/policies/drafts",
            json={"service": "billing-service", "reason": "x", "rules": []},
        )

        assert response.status_code == 422

    def test_draft_from_anomaly(self, client, detected):
        response = client.post(
            f"{PREFIX}/policies/drafts/from-anomaly",
            json={"anomaly_id": detected.id, "namespace": "edge"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["anomaly_id"] == detected.id
        assert body["namespace"] == "edge"
        assert body["created_by"] == "anonymous"

    def test_draft_from_unknown_anomaly(self, client):
        response = client.post(
            f"{PREFIX}/policies/drafts/from-anomaly", json={"anomaly_id": "missing"}
        )

        assert response.status_code == 404

    def test_full_history_newest_first(self, client, detected):
        draft_id = detected.suggested_draft_id
        client.post(f"{PREFIX}/policies/drafts/{draft_id}/reject", json={"reason": "no"})

        history = client.get(f"{PREFIX}/policies/history").json()

        assert [e["action"] for e in history] == ["rejected", "created"]


class RefusingCluster(InMemoryClusterClient):
    """Raises the configured error from apply."""

    def __init__(self, error):
        super().__init__()
        self.error = error

    async def apply(self, manifest, applied_by):
        raise self.error


class TestApproveFailures:
    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (ClusterError("cluster unreachable"), 502),
            (InvalidManifestError("Manifest is missing kind"), 400),
        ],
    )
    def test_apply_failure_keeps_draft_pending(self, error, status_code):
        runtime = build_runtime(Settings(auto_draft=True), cluster=RefusingCluster(error))
        client = TestClient(create_app(runtime))
        runtime.window.append(_suspicious_record())
        draft_id = runtime.engine.run_tick().anomalies[0].suggested_draft_id

        response = client.post(f"{PREFIX}/policies/drafts/{draft_id}/approve")

        assert response.status_code == status_code
        assert response.json() == {"detail": str(error), "error": type(error).__name__}
        draft = client.get(f"{PREFIX}/policies/drafts/{draft_id}").json()
        assert draft["status"] == "pending"
        assert draft["approved_by"] is None
        history = client.get(f"{PREFIX}/policies/history/{draft_id}").json()
        assert [e["action"] for e in history] == ["created"]


class TestEventStream:
    def test_streams_published_events(self, client, runtime, detected):
        with client.websocket_connect(f"{PREFIX}/events") as ws:
            client.post(
                f"{PREFIX}/policies/drafts/from-anomaly", json={"anomaly_id": detected.id}
            )
            message = ws.receive_json()

        assert message["event"] == "policy.draft"
        assert message["payload"]["anomaly_id"] == detected.id
        assert "published_at" in message
        assert runtime.broadcast.subscriber_count == 0

    def test_event_filter(self, client, detected):
        draft_id = detected.suggested_draft_id

        with client.websocket_connect(f"{PREFIX}/events?events=policy.rejected") as ws:
            client.post(
                f"{PREFIX}/policies/drafts/from-anomaly", json={"anomaly_id": detected.id}
            )
            client.post(f"{PREFIX}/policies/drafts/{draft_id}/reject", json={"reason": "noise"})
            message = ws.receive_json()

        assert message["event"] == "policy.rejected"
        assert message["payload"]["id"] == draft_id
