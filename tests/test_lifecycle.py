"""Tests for the policy draft state machine and its audit trail."""

import asyncio
import dataclasses

import pytest
import yaml
from meshguard.cluster.memory import InMemoryClusterClient
from meshguard.core.errors import (
    ClusterError,
    InvalidManifestError,
    InvalidStateError,
    NotFoundError,
)
from meshguard.detection.models import Anomaly, AnomalySeverity, AnomalyType
from meshguard.notify.sink import MemorySink
from meshguard.policies.audit import HistoryAction, PolicyHistoryLog
from meshguard.policies.generator import generate_rules
from meshguard.policies.lifecycle import PolicyDraftLifecycle
from meshguard.policies.models import PolicyStatus
from meshguard.policies.repository import DraftRepository

# -- Fakes --


class FailingCluster:
    def __init__(self):
        self.calls = 0

    async def apply(self, manifest, applied_by):
        self.calls += 1
        raise ClusterError("cluster unreachable")

    def exists(self, name, namespace, kind):
        return False

    def list_applied(self):
        return []

    def delete(self, manifest_id):
        return False


class GatedCluster(InMemoryClusterClient):
    """Blocks inside apply until released."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def apply(self, manifest, applied_by):
        self.entered.set()
        await self.release.wait()
        return await super().apply(manifest, applied_by)


# -- Fixtures --


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def cluster():
    return InMemoryClusterClient()


def _lifecycle(cluster, sink):
    return PolicyDraftLifecycle(DraftRepository(), PolicyHistoryLog(), cluster, sink)


@pytest.fixture
def lifecycle(cluster, sink):
    return _lifecycle(cluster, sink)


@pytest.fixture
def anomaly():
    return Anomaly.create(
        service="api-gateway",
        type=AnomalyType.UNUSUAL_SOURCE,
        severity=AnomalySeverity.medium,
        details="Request from suspicious IP 198.51.100.42 to /api/health",
    )


def _manual_draft(lifecycle):
    return lifecycle.create_draft(
        service="payment-service",
        namespace="default",
        rules=generate_rules(AnomalyType.NEW_ENDPOINT, "GET /payments/admin"),
        reason="Block admin path",
        author_id="alice",
    )


# -- Tests --


class TestCreateDraft:
    def test_manual_draft_is_pending(self, lifecycle, sink):
        draft = _manual_draft(lifecycle)

        assert draft.status == PolicyStatus.pending
        assert draft.created_by == "alice"
        assert draft.anomaly_id is None
        assert lifecycle.get(draft.id) == draft
        assert sink.named("policy.draft") == []

        history = lifecycle.history(draft.id)
        assert [e.action for e in history] == [HistoryAction.created]
        assert history[0].details == "Manual policy draft created"

    def test_draft_from_anomaly(self, lifecycle, sink, anomaly):
        draft = lifecycle.draft_from_anomaly(anomaly, "system")

        assert draft.service == "api-gateway"
        assert draft.anomaly_id == anomaly.id
        assert draft.reason == (
            "Auto-generated from UNUSUAL_SOURCE anomaly: "
            "Request from suspicious IP 198.51.100.42 to /api/health"
        )
        manifest = yaml.safe_load(draft.rendered_manifest)
        assert manifest["metadata"]["name"] == draft.manifest_name
        assert manifest["metadata"]["annotations"]["description"] == (
            "Generated from anomaly: UNUSUAL_SOURCE"
        )
        assert manifest["spec"]["rules"][0]["from"][0]["source"]["ipBlocks"] == [
            "198.51.100.42"
        ]
        assert sink.named("policy.draft")[0].payload["id"] == draft.id
        assert lifecycle.history(draft.id)[0].details == "Policy draft created from anomaly"

    def test_auto_draft_uses_system_author(self, cluster, sink, anomaly):
        lifecycle = PolicyDraftLifecycle(
            DraftRepository(),
            PolicyHistoryLog(),
            cluster,
            sink,
            default_namespace="mesh",
            system_author="meshguard",
        )

        draft = lifecycle.get(lifecycle.auto_draft(anomaly))

        assert draft.created_by == "meshguard"
        assert draft.namespace == "mesh"


class TestApprove:
    @pytest.mark.asyncio
    async def test_approve_applies_and_audits(self, lifecycle, cluster, sink, anomaly):
        draft = lifecycle.draft_from_anomaly(anomaly, "system")

        applied = await lifecycle.approve(draft.id, "bob")

        assert applied.status == PolicyStatus.applied
        assert applied.approved_by == "bob"
        assert applied.applied_at is not None
        assert applied.cluster_resource_id is not None
        assert cluster.exists(draft.manifest_name, "default", "AuthorizationPolicy")

        history = lifecycle.history(draft.id)
        assert [e.action for e in history] == [
            HistoryAction.created,
            HistoryAction.approved,
            HistoryAction.applied,
        ]
        assert [e.user_id for e in history] == ["system", "bob", "bob"]
        assert history[2].details == f"Applied to cluster: {applied.cluster_resource_id}"
        assert sink.named("policy.applied")[0].payload["status"] == "applied"
        assert lifecycle.list_active() == [applied]
        assert lifecycle.list_pending() == []

    @pytest.mark.asyncio
    async def test_reject_after_approve_fails(self, lifecycle):
        draft = _manual_draft(lifecycle)
        await lifecycle.approve(draft.id, "bob")

        with pytest.raises(InvalidStateError, match="already applied"):
            lifecycle.reject(draft.id, "carol", "too late")

        assert lifecycle.get(draft.id).status == PolicyStatus.applied
        assert len(lifecycle.history(draft.id)) == 3

    @pytest.mark.asyncio
    async def test_approve_twice_fails(self, lifecycle):
        draft = _manual_draft(lifecycle)
        await lifecycle.approve(draft.id, "bob")

        with pytest.raises(InvalidStateError):
            await lifecycle.approve(draft.id, "bob")

    @pytest.mark.asyncio
    async def test_approve_unknown_draft(self, lifecycle):
        with pytest.raises(NotFoundError, match="Policy draft missing not found"):
            await lifecycle.approve("missing", "bob")

    @pytest.mark.asyncio
    async def test_failed_apply_leaves_draft_pending(self, sink):
        cluster = FailingCluster()
        lifecycle = _lifecycle(cluster, sink)
        draft = _manual_draft(lifecycle)

        with pytest.raises(ClusterError):
            await lifecycle.approve(draft.id, "bob")

        current = lifecycle.get(draft.id)
        assert current.status == PolicyStatus.pending
        assert current.approved_by is None
        assert [e.action for e in lifecycle.history(draft.id)] == [HistoryAction.created]
        assert sink.named("policy.applied") == []
        assert not lifecycle.repository.is_claimed(draft.id)

        # the claim was released, so the draft can still be decided
        rejected = lifecycle.reject(draft.id, "bob", "cluster down")
        assert rejected.status == PolicyStatus.rejected

    @pytest.mark.asyncio
    async def test_invalid_manifest_is_not_applied(self, lifecycle):
        draft = _manual_draft(lifecycle)
        broken = dataclasses.replace(draft, id="broken", rendered_manifest="kind: X")
        lifecycle.repository.add(broken)

        with pytest.raises(InvalidManifestError, match="metadata"):
            await lifecycle.approve("broken", "bob")

        assert lifecycle.get("broken").status == PolicyStatus.pending

    @pytest.mark.asyncio
    async def test_concurrent_approvals_apply_once(self, sink):
        cluster = GatedCluster()
        lifecycle = _lifecycle(cluster, sink)
        draft = _manual_draft(lifecycle)

        first = asyncio.create_task(lifecycle.approve(draft.id, "bob"))
        await cluster.entered.wait()

        with pytest.raises(InvalidStateError, match="in progress"):
            await lifecycle.approve(draft.id, "carol")
        with pytest.raises(InvalidStateError):
            lifecycle.reject(draft.id, "carol", "racing")

        cluster.release.set()
        applied = await first

        assert applied.approved_by == "bob"
        assert len(cluster.list_applied()) == 1
        assert [e.action for e in lifecycle.history(draft.id)] == [
            HistoryAction.created,
            HistoryAction.approved,
            HistoryAction.applied,
        ]


class TestReject:
    def test_reject_pending(self, lifecycle, sink):
        draft = _manual_draft(lifecycle)

        rejected = lifecycle.reject(draft.id, "carol", "Too broad")

        assert rejected.status == PolicyStatus.rejected
        assert rejected.rejected_by == "carol"
        assert rejected.rejection_reason == "Too broad"
        history = lifecycle.history(draft.id)
        assert [e.action for e in history] == [HistoryAction.created, HistoryAction.rejected]
        assert history[1].details == "Too broad"
        assert sink.named("policy.rejected")[0].payload["id"] == draft.id

    @pytest.mark.asyncio
    async def test_approve_after_reject_fails(self, lifecycle):
        draft = _manual_draft(lifecycle)
        lifecycle.reject(draft.id, "carol", "no")

        with pytest.raises(InvalidStateError, match="already rejected"):
            await lifecycle.approve(draft.id, "bob")

    def test_reject_unknown(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.reject("missing", "carol", "no")


class TestReads:
    def test_full_history_is_newest_first(self, lifecycle):
        first = _manual_draft(lifecycle)
        second = _manual_draft(lifecycle)
        lifecycle.reject(first.id, "carol", "no")

        log = lifecycle.history()

        assert [(e.policy_id, e.action) for e in log] == [
            (first.id, HistoryAction.rejected),
            (second.id, HistoryAction.created),
            (first.id, HistoryAction.created),
        ]

    def test_list_drafts_newest_first(self, lifecycle):
        first = _manual_draft(lifecycle)
        second = _manual_draft(lifecycle)

        assert [d.id for d in lifecycle.list_drafts()] == [second.id, first.id]
        assert {d.id for d in lifecycle.list_pending()} == {first.id, second.id}
