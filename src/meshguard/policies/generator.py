"""
Policy rule generation.

Maps an anomaly's type and free-text details to the authorization rules a
reviewer would most likely want. Values such as IPs, service names and
paths are recovered from the details text by pattern matching; when a
pattern does not match, a fixed default is used instead of failing.
"""

from __future__ import annotations

import re

from meshguard.detection.models import Anomaly, AnomalyType
from meshguard.policies.models import (
    AuthorizationRule,
    Condition,
    Operation,
    RuleFrom,
    RuleTo,
    Source,
)

IPV4_PATTERN = re.compile(r"(\d+\.\d+\.\d+\.\d+)")
IP_AFTER_LABEL_PATTERN = re.compile(r"IP\s+(\d+\.\d+\.\d+\.\d+)")
EDGE_PATTERN = re.compile(r"([\w.-]+)\s*->\s*([\w.-]+)")
PATH_PATTERN = re.compile(r"(/[\w/]+)")

DEFAULT_SOURCE_BLOCK = "192.0.2.0/24"
DEFAULT_DENY_ALL_BLOCK = "0.0.0.0/0"
DEFAULT_SOURCE_SERVICE = "unknown"
DEFAULT_PATH = "/api/*"
FORWARDED_FOR_KEY = "request.headers[x-forwarded-for]"

RATE_LIMIT_TYPES = frozenset({AnomalyType.HIGH_ERROR_RATE, AnomalyType.UNAUTHORIZED_ACCESS})


def _first_group(pattern: re.Pattern[str], text: str, default: str) -> str:
    match = pattern.search(text)
    return match.group(1) if match else default


def workload_principal(service: str, namespace: str = "default") -> str:
    return f"cluster.local/ns/{namespace}/sa/{service}"


def _all_methods() -> RuleTo:
    return RuleTo(operation=Operation(methods=["*"]))


def generate_rules(
    anomaly_type: AnomalyType | str,
    details: str,
    namespace: str = "default",
) -> list[AuthorizationRule]:
    """
    Build authorization rules for an anomaly.

    Args:
        anomaly_type: Detected anomaly type (unknown values get the fallback rule)
        details: Anomaly details text the values are extracted from
        namespace: Namespace of workload identities in generated principals

    Returns:
        List of rules; never empty
    """
    if anomaly_type == AnomalyType.UNUSUAL_SOURCE:
        ip = _first_group(IPV4_PATTERN, details, DEFAULT_SOURCE_BLOCK)
        return [
            AuthorizationRule(
                from_=RuleFrom(source=Source(ip_blocks=[ip])),
                to=_all_methods(),
            )
        ]

    if anomaly_type == AnomalyType.UNEXPECTED_COMMUNICATION:
        source_service = _first_group(EDGE_PATTERN, details, DEFAULT_SOURCE_SERVICE)
        return [
            AuthorizationRule(
                from_=RuleFrom(
                    source=Source(principals=[workload_principal(source_service, namespace)])
                ),
                to=_all_methods(),
            )
        ]

    if anomaly_type == AnomalyType.NEW_ENDPOINT:
        path = _first_group(PATH_PATTERN, details, DEFAULT_PATH)
        return [
            AuthorizationRule(
                to=RuleTo(operation=Operation(paths=[path], methods=["GET", "POST"])),
            )
        ]

    if anomaly_type in RATE_LIMIT_TYPES:
        # rate-limiting intent keyed on the client address
        return [
            AuthorizationRule(
                to=_all_methods(),
                when=[Condition(key=FORWARDED_FOR_KEY, values=["*"])],
            )
        ]

    if anomaly_type == AnomalyType.SUSPICIOUS_PATTERN:
        ip = _first_group(IP_AFTER_LABEL_PATTERN, details, DEFAULT_DENY_ALL_BLOCK)
        return [AuthorizationRule(from_=RuleFrom(source=Source(ip_blocks=[ip])))]

    # Placeholder, carries no restrictive intent
    return [
        AuthorizationRule(
            to=RuleTo(operation=Operation(methods=["GET", "POST", "PUT", "DELETE"])),
        )
    ]


def generate_rules_from_anomaly(
    anomaly: Anomaly, namespace: str = "default"
) -> list[AuthorizationRule]:
    return generate_rules(anomaly.type, anomaly.details, namespace=namespace)
