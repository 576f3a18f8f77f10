"""
Policy audit trail.

Append-only: entries are never edited or removed.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from meshguard.telemetry.models import utcnow


class HistoryAction(StrEnum):
    created = "created"
    approved = "approved"
    rejected = "rejected"
    applied = "applied"
    deleted = "deleted"


@dataclass(frozen=True)
class PolicyHistoryEntry:
    policy_id: str
    action: HistoryAction
    user_id: str
    details: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "policy_id": self.policy_id,
            "action": self.action.value,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "details": self.details,
        }


class PolicyHistoryLog:
    """Ordered log of every draft transition."""

    def __init__(self) -> None:
        self._entries: list[PolicyHistoryEntry] = []
        self._lock = threading.RLock()

    def append(
        self,
        policy_id: str,
        action: HistoryAction,
        user_id: str,
        details: str = "",
    ) -> PolicyHistoryEntry:
        entry = PolicyHistoryEntry(
            policy_id=policy_id, action=action, user_id=user_id, details=details
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self, policy_id: str | None = None) -> list[PolicyHistoryEntry]:
        """Entries for one policy in append order, or the full log newest first."""
        with self._lock:
            if policy_id is not None:
                return [e for e in self._entries if e.policy_id == policy_id]
            return list(reversed(self._entries))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
