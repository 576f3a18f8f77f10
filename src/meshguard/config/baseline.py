"""
Detection baseline loading.

The baseline is the "known good" picture of the mesh that detection rules
compare live traffic against: source IPs already flagged as hostile, the
allow-listed service-to-service edges, the endpoints each service is known
to serve, and the service catalog used to seed metrics and synthetic
traffic.

A baseline may be loaded from YAML:

    suspicious_ips: [192.0.2.1]
    known_communications: ["frontend->api-gateway"]
    known_endpoints:
      auth-service: [/auth/login]
    services:
      - name: frontend
        dependencies: [api-gateway]
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from meshguard.core.errors import ConfigurationError

logger = structlog.get_logger()


class ServiceSpec(BaseModel):
    """A service known to the mesh."""

    name: str
    namespace: str = "default"
    dependencies: list[str] = Field(default_factory=list)
    endpoints: list[str] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)


DEFAULT_SUSPICIOUS_IPS = ["192.0.2.1", "198.51.100.42", "203.0.113.99"]

DEFAULT_KNOWN_COMMUNICATIONS = [
    "frontend->api-gateway",
    "api-gateway->auth-service",
    "api-gateway->payment-service",
    "api-gateway->inventory-service",
    "payment-service->billing-service",
    "inventory-service->notification-service",
]

DEFAULT_KNOWN_ENDPOINTS = {
    "auth-service": ["/auth/login", "/auth/verify", "/auth/refresh", "/auth/logout"],
    "payment-service": [
        "/payments",
        "/payments/process",
        "/payments/refund",
        "/payments/history",
    ],
    "billing-service": ["/billing/invoice", "/billing/statement", "/billing/calculate"],
    "inventory-service": ["/inventory/stock", "/inventory/update", "/inventory/check"],
    "notification-service": ["/notify/email", "/notify/sms", "/notify/push"],
}


def _default_services() -> list[ServiceSpec]:
    tiers = {"frontend": "frontend", "api-gateway": "gateway"}
    graph = {
        "frontend": ["api-gateway"],
        "api-gateway": ["auth-service", "payment-service", "inventory-service"],
        "auth-service": [],
        "payment-service": ["billing-service"],
        "billing-service": [],
        "inventory-service": ["notification-service"],
        "notification-service": [],
    }
    endpoints = dict(DEFAULT_KNOWN_ENDPOINTS)
    endpoints["api-gateway"] = ["/api/health", "/api/status", "/api/metrics"]
    return [
        ServiceSpec(
            name=name,
            dependencies=deps,
            endpoints=endpoints.get(name, []),
            labels={"app": name, "version": "v1", "tier": tiers.get(name, "backend")},
        )
        for name, deps in graph.items()
    ]


class Baseline(BaseModel):
    """Known-good reference data consumed by detection rules."""

    suspicious_ips: frozenset[str] = Field(default_factory=lambda: frozenset(DEFAULT_SUSPICIOUS_IPS))
    known_communications: frozenset[str] = Field(
        default_factory=lambda: frozenset(DEFAULT_KNOWN_COMMUNICATIONS)
    )
    known_endpoints: dict[str, frozenset[str]] = Field(
        default_factory=lambda: {k: frozenset(v) for k, v in DEFAULT_KNOWN_ENDPOINTS.items()}
    )
    services: list[ServiceSpec] = Field(default_factory=_default_services)

    model_config = {"frozen": True}

    def is_known_edge(self, source: str, dest: str) -> bool:
        return f"{source}->{dest}" in self.known_communications

    def endpoints_for(self, service: str) -> frozenset[str] | None:
        """Known endpoints of ``service``, or None when it is not tracked."""
        return self.known_endpoints.get(service)


def load_baseline(path: str | Path | None = None) -> Baseline:
    """
    Load a baseline from YAML, or return the built-in default.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or invalid.
    """
    if path is None:
        return Baseline()

    baseline_path = Path(path)
    if not baseline_path.exists():
        raise ConfigurationError(
            "Baseline file not found", details={"path": str(baseline_path)}
        )

    try:
        with open(baseline_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Baseline file is not valid YAML: {exc}", details={"path": str(baseline_path)}
        ) from exc

    try:
        baseline = Baseline.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigurationError(
            f"Invalid baseline: {exc.error_count()} error(s)",
            details={"path": str(baseline_path)},
        ) from exc

    logger.info(
        "baseline_loaded",
        path=str(baseline_path),
        suspicious_ips=len(baseline.suspicious_ips),
        known_communications=len(baseline.known_communications),
        services=len(baseline.services),
    )
    return baseline
