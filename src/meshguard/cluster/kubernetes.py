"""
Kubernetes-backed cluster client.

Creates or replaces Istio security resources as custom objects through the
Kubernetes API and marks them with an applied-by annotation so they can be
listed and deleted later. The ``kubernetes`` package is optional and
imported lazily.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any

import structlog

from meshguard.cluster.base import AppliedManifest, parse_manifest
from meshguard.core.errors import ClusterError, InvalidManifestError

logger = structlog.get_logger()

MANAGED_GROUP = "security.istio.io"
MANAGED_VERSION = "v1beta1"
MANAGED_KINDS = ("AuthorizationPolicy", "PeerAuthentication")
APPLIED_BY_ANNOTATION = "meshguard.io/applied-by"

# Lazy import kubernetes to allow optional installation
_kubernetes_available: bool | None = None


def _check_kubernetes_available() -> bool:
    """Check if kubernetes package is installed."""
    global _kubernetes_available
    if _kubernetes_available is None:
        try:
            import kubernetes  # noqa: F401

            _kubernetes_available = True
        except ImportError:
            _kubernetes_available = False
    return _kubernetes_available


def plural_for(kind: str) -> str:
    """Resource plural for a custom object kind (AuthorizationPolicy -> authorizationpolicies)."""
    lowered = kind.lower()
    if lowered.endswith("y"):
        return lowered[:-1] + "ies"
    return lowered + "s"


def split_api_version(api_version: str) -> tuple[str, str]:
    if "/" not in api_version:
        raise InvalidManifestError(
            f"Manifest apiVersion must be group/version, got {api_version!r}"
        )
    group, version = api_version.split("/", 1)
    return group, version


@dataclass
class KubernetesClusterClient:
    """
    Apply manifests to a live cluster.

    Configuration:
        kubeconfig: Path to kubeconfig file (optional)
        context: Kubeconfig context to use (optional)
    """

    kubeconfig: str | None = None
    context: str | None = None

    _api_client: Any = field(default=None, repr=False, compare=False)

    def _ensure_initialized(self) -> None:
        if self._api_client is not None:
            return

        if not _check_kubernetes_available():
            raise ClusterError(
                "kubernetes package not installed. "
                "Install with: pip install meshguard[kubernetes]"
            )

        from kubernetes import client, config

        # Try in-cluster config first, then kubeconfig
        try:
            config.load_incluster_config()
        except config.ConfigException:
            try:
                config.load_kube_config(config_file=self.kubeconfig, context=self.context)
            except config.ConfigException as e:
                raise ClusterError(f"Failed to load Kubernetes config: {e}") from e

        self._api_client = client.ApiClient()

    def _custom_objects(self) -> Any:
        self._ensure_initialized()
        from kubernetes import client

        return client.CustomObjectsApi(self._api_client)

    async def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run synchronous kubernetes API call in executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def apply(self, manifest: str, applied_by: str) -> AppliedManifest:
        """Create the resource, or replace it when one with the same name exists."""
        parsed = parse_manifest(manifest)
        group, version = split_api_version(parsed.api_version)
        plural = plural_for(parsed.kind)
        api = self._custom_objects()

        from kubernetes.client.rest import ApiException

        body = copy.deepcopy(parsed.body)
        annotations = dict(body["metadata"].get("annotations") or {})
        annotations[APPLIED_BY_ANNOTATION] = applied_by
        body["metadata"]["annotations"] = annotations
        body["metadata"]["namespace"] = parsed.namespace
        target = {
            "group": group,
            "version": version,
            "namespace": parsed.namespace,
            "plural": plural,
        }

        try:
            result = await self._run_sync(api.create_namespaced_custom_object, body=body, **target)
        except ApiException as e:
            if e.status != 409:
                raise _api_error(e, f"create {parsed.kind} {parsed.name}") from e
            result = await self._replace(api, body, parsed.name, target)

        applied = AppliedManifest(
            kind=parsed.kind,
            api_version=parsed.api_version,
            name=parsed.name,
            namespace=parsed.namespace,
            spec=parsed.spec,
            applied_by=applied_by,
        )
        uid = (result or {}).get("metadata", {}).get("uid")
        if uid:
            applied.id = uid
        logger.info(
            "manifest_applied",
            manifest_id=applied.id,
            kind=applied.kind,
            name=applied.name,
            namespace=applied.namespace,
            backend="kubernetes",
        )
        return applied

    async def _replace(
        self, api: Any, body: dict[str, Any], name: str, target: dict[str, str]
    ) -> Any:
        from kubernetes.client.rest import ApiException

        try:
            current = await self._run_sync(api.get_namespaced_custom_object, name=name, **target)
            body["metadata"]["resourceVersion"] = current["metadata"]["resourceVersion"]
            replaced = await self._run_sync(
                api.replace_namespaced_custom_object, name=name, body=body, **target
            )
        except ApiException as e:
            raise _api_error(e, f"replace {body.get('kind')} {name}") from e
        logger.info("manifest_replaced", name=name, namespace=target["namespace"])
        return replaced

    def exists(self, name: str, namespace: str, kind: str) -> bool:
        api = self._custom_objects()

        from kubernetes.client.rest import ApiException

        try:
            api.get_namespaced_custom_object(
                group=MANAGED_GROUP,
                version=MANAGED_VERSION,
                namespace=namespace,
                plural=plural_for(kind),
                name=name,
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise _api_error(e, f"look up {kind} {name}") from e
        return True

    def list_applied(self) -> list[AppliedManifest]:
        """Resources of the managed kinds that carry meshguard's applied-by annotation."""
        api = self._custom_objects()

        from kubernetes.client.rest import ApiException

        applied: list[AppliedManifest] = []
        for kind in MANAGED_KINDS:
            try:
                listing = api.list_cluster_custom_object(
                    group=MANAGED_GROUP, version=MANAGED_VERSION, plural=plural_for(kind)
                )
            except ApiException as e:
                raise _api_error(e, f"list {kind}") from e
            for item in listing.get("items", []):
                item.setdefault("kind", kind)
                annotations = item.get("metadata", {}).get("annotations") or {}
                if APPLIED_BY_ANNOTATION in annotations:
                    applied.append(_to_applied(item))
        return applied

    def delete(self, manifest_id: str) -> bool:
        """Delete a meshguard-applied resource by uid; False when it is not there."""
        manifest = next((m for m in self.list_applied() if m.id == manifest_id), None)
        if manifest is None:
            return False

        api = self._custom_objects()

        from kubernetes.client.rest import ApiException

        try:
            api.delete_namespaced_custom_object(
                group=MANAGED_GROUP,
                version=MANAGED_VERSION,
                namespace=manifest.namespace,
                plural=plural_for(manifest.kind),
                name=manifest.name,
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise _api_error(e, f"delete {manifest.kind} {manifest.name}") from e
        logger.info("manifest_deleted", manifest_id=manifest_id, name=manifest.name)
        return True


def _api_error(e: Any, action: str) -> ClusterError:
    return ClusterError(f"Kubernetes API failed to {action}: {e.reason}", {"status": e.status})


def _to_applied(obj: dict[str, Any]) -> AppliedManifest:
    metadata = obj.get("metadata") or {}
    annotations = metadata.get("annotations") or {}
    applied = AppliedManifest(
        kind=str(obj.get("kind", "")),
        api_version=str(obj.get("apiVersion", f"{MANAGED_GROUP}/{MANAGED_VERSION}")),
        name=str(metadata.get("name", "")),
        namespace=str(metadata.get("namespace", "")),
        spec=obj.get("spec") or {},
        applied_by=annotations.get(APPLIED_BY_ANNOTATION, ""),
    )
    if metadata.get("uid"):
        applied.id = metadata["uid"]
    created = metadata.get("creationTimestamp")
    if isinstance(created, str):
        applied.applied_at = datetime.fromisoformat(created.replace("Z", "+00:00"))
    elif isinstance(created, datetime):
        applied.applied_at = created
    return applied
