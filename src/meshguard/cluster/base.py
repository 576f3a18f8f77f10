"""
Cluster client interface.

A cluster client accepts rendered manifest text and records it as an
applied resource. Implementations only check structural presence of
``kind`` and ``metadata.name``; no schema validation is performed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol

import yaml

from meshguard.core.errors import InvalidManifestError
from meshguard.telemetry.models import utcnow


class ManifestStatus(StrEnum):
    active = "active"
    deleted = "deleted"


@dataclass
class AppliedManifest:
    """A manifest as recorded by the cluster."""

    kind: str
    api_version: str
    name: str
    namespace: str
    spec: dict[str, Any]
    applied_by: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    applied_at: datetime = field(default_factory=utcnow)
    status: ManifestStatus = ManifestStatus.active

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "api_version": self.api_version,
            "name": self.name,
            "namespace": self.namespace,
            "spec": self.spec,
            "applied_at": self.applied_at.isoformat(),
            "applied_by": self.applied_by,
            "status": self.status.value,
        }


class ClusterClient(Protocol):
    async def apply(self, manifest: str, applied_by: str) -> AppliedManifest: ...

    def exists(self, name: str, namespace: str, kind: str) -> bool: ...

    def list_applied(self) -> list[AppliedManifest]: ...

    def delete(self, manifest_id: str) -> bool: ...


@dataclass(frozen=True)
class ParsedManifest:
    kind: str
    api_version: str
    name: str
    namespace: str
    spec: dict[str, Any]
    body: dict[str, Any]


def parse_manifest(manifest: str, default_namespace: str = "default") -> ParsedManifest:
    """
    Parse manifest YAML and check the fields a cluster needs to address it.

    Raises:
        InvalidManifestError: If the text is not a YAML mapping or lacks
            ``kind`` or ``metadata.name``
    """
    try:
        body = yaml.safe_load(manifest)
    except yaml.YAMLError as e:
        raise InvalidManifestError(f"Manifest is not valid YAML: {e}") from e

    if not isinstance(body, dict):
        raise InvalidManifestError("Manifest must be a YAML mapping")

    metadata = body.get("metadata")
    if not isinstance(metadata, dict):
        raise InvalidManifestError("Manifest is missing metadata")
    if not body.get("kind"):
        raise InvalidManifestError("Manifest is missing kind")
    if not metadata.get("name"):
        raise InvalidManifestError("Manifest is missing metadata.name")

    return ParsedManifest(
        kind=str(body["kind"]),
        api_version=str(body.get("apiVersion", "")),
        name=str(metadata["name"]),
        namespace=str(metadata.get("namespace") or default_namespace),
        spec=body.get("spec") or {},
        body=body,
    )
