"""
Anomaly detection over the telemetry window.

Provides the fixed rule set, the engine that evaluates it once per tick,
and the repository detected anomalies are stored in.
"""

from meshguard.detection.engine import RuleEngine
from meshguard.detection.models import Anomaly, AnomalySeverity, AnomalyType, TickReport
from meshguard.detection.repository import AnomalyRepository
from meshguard.detection.rules import DetectionRule, default_rules

__all__ = [
    "Anomaly",
    "AnomalyRepository",
    "AnomalySeverity",
    "AnomalyType",
    "DetectionRule",
    "RuleEngine",
    "TickReport",
    "default_rules",
]
