"""Policy draft review API routes."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from meshguard.api.deps import get_runtime, get_user_id
from meshguard.policies.models import AuthorizationRule
from meshguard.runtime import Runtime

router = APIRouter()


# -- Request / Response Models --


class CreateDraftRequest(BaseModel):
    service: str
    namespace: str | None = None
    rules: list[AuthorizationRule] = Field(min_length=1)
    reason: str


class DraftFromAnomalyRequest(BaseModel):
    anomaly_id: str
    namespace: str | None = None


class RejectRequest(BaseModel):
    reason: str


class PolicyDraftItem(BaseModel):
    id: str
    created_at: datetime
    created_by: str
    service: str
    namespace: str
    manifest_name: str
    rendered_manifest: str
    reason: str
    status: str
    anomaly_id: str | None = None
    applied_at: datetime | None = None
    approved_by: str | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    cluster_resource_id: str | None = None


class HistoryEntryItem(BaseModel):
    id: str
    policy_id: str
    action: str
    timestamp: datetime
    user_id: str
    details: str


# -- Drafts --


@router.get("/policies/active", response_model=list[PolicyDraftItem])
async def active_policies(runtime: Runtime = Depends(get_runtime)) -> list[PolicyDraftItem]:  # noqa: B008
    return [PolicyDraftItem(**d.to_dict()) for d in runtime.policies.list_active()]


@router.get("/policies/drafts", response_model=list[PolicyDraftItem])
async def list_drafts(runtime: Runtime = Depends(get_runtime)) -> list[PolicyDraftItem]:  # noqa: B008
    return [PolicyDraftItem(**d.to_dict()) for d in runtime.policies.list_drafts()]


@router.get("/policies/drafts/pending", response_model=list[PolicyDraftItem])
async def pending_drafts(runtime: Runtime = Depends(get_runtime)) -> list[PolicyDraftItem]:  # noqa: B008
    return [PolicyDraftItem(**d.to_dict()) for d in runtime.policies.list_pending()]


@router.get("/policies/drafts/{draft_id}", response_model=PolicyDraftItem)
async def get_draft(
    draft_id: str,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> PolicyDraftItem:
    return PolicyDraftItem(**runtime.policies.get(draft_id).to_dict())


@router.post(
    "/policies/drafts",
    response_model=PolicyDraftItem,
    status_code=status.HTTP_201_CREATED,
)
async def create_draft(
    payload: CreateDraftRequest,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
    user_id: str = Depends(get_user_id),
) -> PolicyDraftItem:
    """Create a manual draft from explicit rules."""
    draft = runtime.policies.create_draft(
        service=payload.service,
        namespace=payload.namespace or runtime.settings.default_namespace,
        rules=payload.rules,
        reason=payload.reason,
        author_id=user_id,
    )
    return PolicyDraftItem(**draft.to_dict())


@router.post(
    "/policies/drafts/from-anomaly",
    response_model=PolicyDraftItem,
    status_code=status.HTTP_201_CREATED,
)
async def create_draft_from_anomaly(
    payload: DraftFromAnomalyRequest,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
    user_id: str = Depends(get_user_id),
) -> PolicyDraftItem:
    anomaly = runtime.anomalies.get(payload.anomaly_id)
    draft = runtime.policies.draft_from_anomaly(anomaly, user_id, payload.namespace)
    return PolicyDraftItem(**draft.to_dict())


@router.post("/policies/drafts/{draft_id}/approve", response_model=PolicyDraftItem)
async def approve_draft(
    draft_id: str,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
    user_id: str = Depends(get_user_id),
) -> PolicyDraftItem:
    """Approve a pending draft and apply it to the cluster."""
    draft = await runtime.policies.approve(draft_id, user_id)
    return PolicyDraftItem(**draft.to_dict())


@router.post("/policies/drafts/{draft_id}/reject", response_model=PolicyDraftItem)
async def reject_draft(
    draft_id: str,
    payload: RejectRequest,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
    user_id: str = Depends(get_user_id),
) -> PolicyDraftItem:
    draft = runtime.policies.reject(draft_id, user_id, payload.reason)
    return PolicyDraftItem(**draft.to_dict())


# -- History --


@router.get("/policies/history", response_model=list[HistoryEntryItem])
async def policy_history(runtime: Runtime = Depends(get_runtime)) -> list[HistoryEntryItem]:  # noqa: B008
    """Full audit log, newest first."""
    return [HistoryEntryItem(**e.to_dict()) for e in runtime.policies.history()]


@router.get("/policies/history/{policy_id}", response_model=list[HistoryEntryItem])
async def history_for_policy(
    policy_id: str,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> list[HistoryEntryItem]:
    return [HistoryEntryItem(**e.to_dict()) for e in runtime.policies.history(policy_id)]
