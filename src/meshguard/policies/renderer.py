"""
Istio manifest rendering.

Pure functions: identical inputs always yield byte-identical YAML. Anything
time- or identity-dependent (manifest name, generation timestamp) is passed
in by the caller.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import yaml

from meshguard.policies.models import AuthorizationRule

AUTHZ_API_VERSION = "security.istio.io/v1beta1"
AUTHZ_KIND = "AuthorizationPolicy"
PEER_AUTH_KIND = "PeerAuthentication"
GENERATED_ANNOTATION = "meshguard.io/generated"
GENERATED_AT_ANNOTATION = "meshguard.io/generated-at"
MTLS_MODES = ("STRICT", "PERMISSIVE", "DISABLE")


def manifest_name_for(service: str, draft_id: str) -> str:
    """Stable resource name for a draft's policy."""
    return f"{service}-authz-{draft_id[:8]}"


def generation_annotations(description: str, generated_at: str) -> dict[str, str]:
    return {
        "description": description,
        GENERATED_ANNOTATION: "true",
        GENERATED_AT_ANNOTATION: generated_at,
    }


def _dump(manifest: dict[str, Any]) -> str:
    return yaml.dump(manifest, default_flow_style=False, sort_keys=False)


def render_authorization_policy(
    service: str,
    namespace: str,
    rules: Iterable[AuthorizationRule],
    *,
    name: str,
    annotations: Mapping[str, str] | None = None,
    action: str = "DENY",
) -> str:
    """
    Render an AuthorizationPolicy selecting ``app: <service>``.

    Args:
        service: Workload the policy applies to
        namespace: Namespace of the policy resource
        rules: Rules placed under ``spec.rules`` in order
        name: Resource name
        annotations: Metadata annotations
        action: Policy action

    Returns:
        YAML document text
    """
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if annotations:
        metadata["annotations"] = dict(annotations)

    manifest = {
        "apiVersion": AUTHZ_API_VERSION,
        "kind": AUTHZ_KIND,
        "metadata": metadata,
        "spec": {
            "selector": {"matchLabels": {"app": service}},
            "action": action,
            "rules": [rule.to_manifest() for rule in rules],
        },
    }
    return _dump(manifest)


def render_peer_authentication(
    service: str,
    namespace: str,
    mtls_mode: str = "STRICT",
    *,
    name: str | None = None,
) -> str:
    """Render a PeerAuthentication enforcing the given mTLS mode for a workload."""
    mode = mtls_mode.upper()
    if mode not in MTLS_MODES:
        raise ValueError(f"Unsupported mTLS mode: {mtls_mode}")

    manifest = {
        "apiVersion": AUTHZ_API_VERSION,
        "kind": PEER_AUTH_KIND,
        "metadata": {"name": name or f"{service}-mtls", "namespace": namespace},
        "spec": {
            "selector": {"matchLabels": {"app": service}},
            "mtls": {"mode": mode},
        },
    }
    return _dump(manifest)
