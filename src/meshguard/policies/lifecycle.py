"""
Policy draft lifecycle.

State machine::

    pending --approve--> applied
    pending --reject---> rejected

``approved`` exists as an audit action but is never a stored status:
approval and application are one transition. Every step appends exactly
one history entry, in order.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Iterable

import structlog

from meshguard.logging import bind_context
from meshguard.policies.audit import HistoryAction, PolicyHistoryEntry, PolicyHistoryLog
from meshguard.policies.generator import generate_rules_from_anomaly
from meshguard.policies.models import AuthorizationRule, PolicyDraft, PolicyStatus
from meshguard.policies.renderer import (
    generation_annotations,
    manifest_name_for,
    render_authorization_policy,
)
from meshguard.policies.repository import DraftRepository
from meshguard.telemetry.models import utcnow

if TYPE_CHECKING:
    from meshguard.cluster.base import ClusterClient
    from meshguard.detection.models import Anomaly
    from meshguard.notify.sink import NotificationSink

logger = structlog.get_logger()


class PolicyDraftLifecycle:
    """Create, approve and reject policy drafts."""

    def __init__(
        self,
        repository: DraftRepository,
        history: PolicyHistoryLog,
        cluster: ClusterClient,
        sink: NotificationSink,
        *,
        default_namespace: str = "default",
        system_author: str = "system",
    ) -> None:
        self.repository = repository
        self.history_log = history
        self._cluster = cluster
        self._sink = sink
        self.default_namespace = default_namespace
        self.system_author = system_author

    def create_draft(
        self,
        service: str,
        namespace: str,
        rules: Iterable[AuthorizationRule],
        reason: str,
        author_id: str,
        anomaly_id: str | None = None,
        *,
        description: str | None = None,
    ) -> PolicyDraft:
        """
        Render and store a new pending draft.

        Args:
            service: Workload the policy will select
            namespace: Namespace of the policy resource
            rules: Authorization rules for ``spec.rules``
            reason: Why the draft exists (shown to reviewers)
            author_id: User or system id creating the draft
            anomaly_id: Anomaly the draft was generated from, if any
            description: Manifest description annotation (defaults to ``reason``)

        Returns:
            The stored draft
        """
        draft_id = str(uuid.uuid4())
        created_at = utcnow()
        name = manifest_name_for(service, draft_id)
        manifest = render_authorization_policy(
            service,
            namespace,
            list(rules),
            name=name,
            annotations=generation_annotations(description or reason, created_at.isoformat()),
        )
        draft = PolicyDraft(
            id=draft_id,
            created_at=created_at,
            created_by=author_id,
            service=service,
            namespace=namespace,
            manifest_name=name,
            rendered_manifest=manifest,
            reason=reason,
            anomaly_id=anomaly_id,
        )
        self.repository.add(draft)
        self.history_log.append(
            draft_id,
            HistoryAction.created,
            author_id,
            "Policy draft created from anomaly" if anomaly_id else "Manual policy draft created",
        )
        logger.info(
            "policy_draft_created",
            draft_id=draft_id,
            service=service,
            namespace=namespace,
            anomaly_id=anomaly_id,
            created_by=author_id,
        )
        if anomaly_id:
            self._sink.publish("policy.draft", draft.to_dict())
        return draft

    def draft_from_anomaly(
        self,
        anomaly: Anomaly,
        author_id: str,
        namespace: str | None = None,
    ) -> PolicyDraft:
        namespace = namespace or self.default_namespace
        return self.create_draft(
            service=anomaly.service,
            namespace=namespace,
            rules=generate_rules_from_anomaly(anomaly, namespace),
            reason=f"Auto-generated from {anomaly.type.value} anomaly: {anomaly.details}",
            author_id=author_id,
            anomaly_id=anomaly.id,
            description=f"Generated from anomaly: {anomaly.type.value}",
        )

    def auto_draft(self, anomaly: Anomaly) -> str:
        """Draft on behalf of the system author; returns the new draft id."""
        return self.draft_from_anomaly(anomaly, self.system_author).id

    async def approve(self, draft_id: str, approver_id: str) -> PolicyDraft:
        """
        Approve a pending draft and apply it to the cluster.

        Raises:
            NotFoundError: Unknown draft id
            InvalidStateError: Draft is not pending or is already being approved
            InvalidManifestError, ClusterError: Apply failed; the draft stays pending
        """
        draft = self.repository.claim_for_approval(draft_id)
        log = bind_context(draft_id=draft_id, approver=approver_id)
        try:
            applied = await self._cluster.apply(draft.rendered_manifest, approver_id)
        except BaseException as exc:
            # includes cancellation
            self.repository.release(draft_id)
            log.error(
                "policy_apply_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise

        updated = self.repository.commit_approval(
            draft_id,
            approved_by=approver_id,
            applied_at=utcnow(),
            cluster_resource_id=applied.id,
        )
        self.history_log.append(draft_id, HistoryAction.approved, approver_id, "Policy approved")
        self.history_log.append(
            draft_id, HistoryAction.applied, approver_id, f"Applied to cluster: {applied.id}"
        )
        log.info("policy_applied", manifest_id=applied.id, service=updated.service)
        self._sink.publish("policy.applied", updated.to_dict())
        return updated

    def reject(self, draft_id: str, rejecter_id: str, reason: str) -> PolicyDraft:
        updated = self.repository.transition(
            draft_id,
            PolicyStatus.rejected,
            rejected_by=rejecter_id,
            rejection_reason=reason,
        )
        self.history_log.append(draft_id, HistoryAction.rejected, rejecter_id, reason)
        logger.info("policy_rejected", draft_id=draft_id, rejecter=rejecter_id, reason=reason)
        self._sink.publish("policy.rejected", updated.to_dict())
        return updated

    def get(self, draft_id: str) -> PolicyDraft:
        return self.repository.get(draft_id)

    def list_drafts(self) -> list[PolicyDraft]:
        return self.repository.list_all()

    def list_pending(self) -> list[PolicyDraft]:
        return self.repository.list_by_status(PolicyStatus.pending)

    def list_active(self) -> list[PolicyDraft]:
        """Drafts currently enforced on the cluster."""
        return self.repository.list_by_status(PolicyStatus.applied)

    def history(self, policy_id: str | None = None) -> list[PolicyHistoryEntry]:
        return self.history_log.entries(policy_id)
