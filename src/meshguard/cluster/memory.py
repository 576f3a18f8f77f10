"""
Simulated cluster.

Keeps applied manifests in memory. Used for local runs and tests, and as
the default backend.
"""

from __future__ import annotations

import threading

import structlog

from meshguard.cluster.base import AppliedManifest, ManifestStatus, parse_manifest
from meshguard.core.errors import NotFoundError

logger = structlog.get_logger()


class InMemoryClusterClient:
    """Cluster client that records manifests instead of sending them anywhere."""

    def __init__(self) -> None:
        self._manifests: dict[str, AppliedManifest] = {}
        self._lock = threading.RLock()

    async def apply(self, manifest: str, applied_by: str) -> AppliedManifest:
        parsed = parse_manifest(manifest)
        applied = AppliedManifest(
            kind=parsed.kind,
            api_version=parsed.api_version,
            name=parsed.name,
            namespace=parsed.namespace,
            spec=parsed.spec,
            applied_by=applied_by,
        )
        with self._lock:
            self._manifests[applied.id] = applied
        logger.info(
            "manifest_applied",
            manifest_id=applied.id,
            kind=applied.kind,
            name=applied.name,
            namespace=applied.namespace,
        )
        return applied

    def exists(self, name: str, namespace: str, kind: str) -> bool:
        with self._lock:
            return any(
                m.name == name
                and m.namespace == namespace
                and m.kind == kind
                and m.status == ManifestStatus.active
                for m in self._manifests.values()
            )

    def get(self, manifest_id: str) -> AppliedManifest:
        with self._lock:
            manifest = self._manifests.get(manifest_id)
        if manifest is None:
            raise NotFoundError(f"Manifest {manifest_id} not found")
        return manifest

    def list_applied(self) -> list[AppliedManifest]:
        with self._lock:
            return [m for m in self._manifests.values() if m.status == ManifestStatus.active]

    def delete(self, manifest_id: str) -> bool:
        with self._lock:
            manifest = self._manifests.get(manifest_id)
            if manifest is None or manifest.status == ManifestStatus.deleted:
                return False
            manifest.status = ManifestStatus.deleted
        logger.info("manifest_deleted", manifest_id=manifest_id, name=manifest.name)
        return True
