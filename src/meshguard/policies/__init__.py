"""
Policy drafting: rule generation, manifest rendering, and the reviewed
draft lifecycle with its audit trail.
"""

from meshguard.policies.audit import HistoryAction, PolicyHistoryEntry, PolicyHistoryLog
from meshguard.policies.generator import generate_rules, generate_rules_from_anomaly
from meshguard.policies.lifecycle import PolicyDraftLifecycle
from meshguard.policies.models import (
    AuthorizationRule,
    Condition,
    Operation,
    PolicyDraft,
    PolicyStatus,
    RuleFrom,
    RuleTo,
    Source,
)
from meshguard.policies.renderer import (
    manifest_name_for,
    render_authorization_policy,
    render_peer_authentication,
)
from meshguard.policies.repository import DraftRepository

__all__ = [
    "AuthorizationRule",
    "Condition",
    "DraftRepository",
    "HistoryAction",
    "Operation",
    "PolicyDraft",
    "PolicyDraftLifecycle",
    "PolicyHistoryEntry",
    "PolicyHistoryLog",
    "PolicyStatus",
    "RuleFrom",
    "RuleTo",
    "Source",
    "generate_rules",
    "generate_rules_from_anomaly",
    "manifest_name_for",
    "render_authorization_policy",
    "render_peer_authentication",
]
