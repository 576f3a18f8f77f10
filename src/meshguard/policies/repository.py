"""
Policy draft repository.

Drafts are immutable values; a state change replaces the stored value via
compare-and-swap on the expected status. Approval is split into a claim
(pending -> in flight) and a commit so the cluster call can run outside the
lock while a second approver is still turned away.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import Any

from meshguard.core.errors import InvalidStateError, NotFoundError
from meshguard.policies.models import PolicyDraft, PolicyStatus


class DraftRepository:
    def __init__(self) -> None:
        self._drafts: dict[str, PolicyDraft] = {}
        self._in_flight: set[str] = set()
        self._lock = threading.RLock()

    def add(self, draft: PolicyDraft) -> None:
        with self._lock:
            if draft.id in self._drafts:
                raise ValueError(f"Policy draft {draft.id} already stored")
            self._drafts[draft.id] = draft

    def find(self, draft_id: str) -> PolicyDraft | None:
        with self._lock:
            return self._drafts.get(draft_id)

    def get(self, draft_id: str) -> PolicyDraft:
        draft = self.find(draft_id)
        if draft is None:
            raise NotFoundError(f"Policy draft {draft_id} not found", {"draft_id": draft_id})
        return draft

    def list_all(self) -> list[PolicyDraft]:
        """Drafts newest first."""
        with self._lock:
            drafts = list(self._drafts.values())
        drafts.reverse()
        return sorted(drafts, key=lambda d: d.created_at, reverse=True)

    def list_by_status(self, status: PolicyStatus) -> list[PolicyDraft]:
        return [d for d in self.list_all() if d.status == status]

    def _require_pending(self, draft_id: str) -> PolicyDraft:
        draft = self.get(draft_id)
        if draft.status != PolicyStatus.pending:
            raise InvalidStateError(
                f"Policy draft is already {draft.status.value}",
                {"draft_id": draft_id, "status": draft.status.value},
            )
        if draft_id in self._in_flight:
            raise InvalidStateError(
                "Policy draft approval is already in progress",
                {"draft_id": draft_id},
            )
        return draft

    def claim_for_approval(self, draft_id: str) -> PolicyDraft:
        """Reserve a pending draft for a single approver."""
        with self._lock:
            draft = self._require_pending(draft_id)
            self._in_flight.add(draft_id)
            return draft

    def release(self, draft_id: str) -> None:
        with self._lock:
            self._in_flight.discard(draft_id)

    def is_claimed(self, draft_id: str) -> bool:
        with self._lock:
            return draft_id in self._in_flight

    def commit_approval(self, draft_id: str, **changes: Any) -> PolicyDraft:
        """Finish a claimed approval, moving the draft to ``applied``."""
        with self._lock:
            if draft_id not in self._in_flight:
                raise InvalidStateError(
                    "Policy draft was not claimed for approval", {"draft_id": draft_id}
                )
            updated = dataclasses.replace(
                self._drafts[draft_id], status=PolicyStatus.applied, **changes
            )
            self._drafts[draft_id] = updated
            self._in_flight.discard(draft_id)
            return updated

    def transition(self, draft_id: str, status: PolicyStatus, **changes: Any) -> PolicyDraft:
        """Move a pending, unclaimed draft to ``status`` in one step."""
        with self._lock:
            draft = self._require_pending(draft_id)
            updated = dataclasses.replace(draft, status=status, **changes)
            self._drafts[draft_id] = updated
            return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._drafts)
