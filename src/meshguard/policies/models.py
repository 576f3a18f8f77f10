"""
Policy domain models.

``AuthorizationRule`` mirrors one entry of an Istio AuthorizationPolicy's
``spec.rules`` and serializes with Istio's field names (``ipBlocks``,
``from``). ``PolicyDraft`` is the reviewable unit moving through the
pending -> applied | rejected lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _RuleModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class Source(_RuleModel):
    principals: list[str] | None = None
    namespaces: list[str] | None = None
    ip_blocks: list[str] | None = Field(default=None, alias="ipBlocks")


class Operation(_RuleModel):
    methods: list[str] | None = None
    paths: list[str] | None = None
    ports: list[str] | None = None


class RuleFrom(_RuleModel):
    source: Source = Field(default_factory=Source)


class RuleTo(_RuleModel):
    operation: Operation = Field(default_factory=Operation)


class Condition(_RuleModel):
    key: str
    values: list[str]


class AuthorizationRule(_RuleModel):
    """Structured access-restriction intent; no behavior."""

    from_: RuleFrom | None = Field(default=None, alias="from")
    to: RuleTo | None = None
    when: list[Condition] | None = None

    def to_manifest(self) -> dict[str, Any]:
        """Istio rule shape: ``from`` and ``to`` are single-element lists."""
        rule: dict[str, Any] = {}
        if self.from_ is not None:
            rule["from"] = [self.from_.model_dump(by_alias=True, exclude_none=True)]
        if self.to is not None:
            rule["to"] = [self.to.model_dump(by_alias=True, exclude_none=True)]
        if self.when is not None:
            rule["when"] = [c.model_dump() for c in self.when]
        return rule


class PolicyStatus(StrEnum):
    """Enumeration of draft states."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    applied = "applied"


TERMINAL_STATUSES = frozenset({PolicyStatus.applied, PolicyStatus.rejected})


@dataclass(frozen=True)
class PolicyDraft:
    """A not-yet-enforced authorization policy awaiting review."""

    id: str
    created_at: datetime
    created_by: str
    service: str
    namespace: str
    manifest_name: str
    rendered_manifest: str
    reason: str
    status: PolicyStatus = PolicyStatus.pending
    anomaly_id: str | None = None
    applied_at: datetime | None = None
    approved_by: str | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    cluster_resource_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
            "service": self.service,
            "namespace": self.namespace,
            "manifest_name": self.manifest_name,
            "rendered_manifest": self.rendered_manifest,
            "reason": self.reason,
            "status": self.status.value,
            "anomaly_id": self.anomaly_id,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "approved_by": self.approved_by,
            "rejected_by": self.rejected_by,
            "rejection_reason": self.rejection_reason,
            "cluster_resource_id": self.cluster_resource_id,
        }
