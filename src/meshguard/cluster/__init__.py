"""
Cluster clients for applying approved policy manifests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from meshguard.cluster.base import (
    AppliedManifest,
    ClusterClient,
    ManifestStatus,
    parse_manifest,
)
from meshguard.cluster.kubernetes import KubernetesClusterClient
from meshguard.cluster.memory import InMemoryClusterClient
from meshguard.core.errors import ConfigurationError

if TYPE_CHECKING:
    from meshguard.config.settings import Settings


def create_cluster_client(settings: Settings) -> ClusterClient:
    """Build the cluster client selected by ``cluster_backend``."""
    backend = settings.cluster_backend.lower()
    if backend == "memory":
        return InMemoryClusterClient()
    if backend == "kubernetes":
        return KubernetesClusterClient(
            kubeconfig=settings.kubeconfig,
            context=settings.kube_context,
        )
    raise ConfigurationError(
        f"Unknown cluster backend: {settings.cluster_backend}",
        {"supported": "memory, kubernetes"},
    )


__all__ = [
    "AppliedManifest",
    "ClusterClient",
    "InMemoryClusterClient",
    "KubernetesClusterClient",
    "ManifestStatus",
    "create_cluster_client",
    "parse_manifest",
]
