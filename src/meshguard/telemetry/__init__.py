"""
Telemetry ingestion: request records, the bounded window, service metrics,
and a synthetic traffic producer.
"""

from meshguard.telemetry.models import ServiceMetrics, TelemetryRecord
from meshguard.telemetry.services import ServiceRegistry
from meshguard.telemetry.synthetic import TrafficGenerator
from meshguard.telemetry.window import TelemetryWindow, WindowSnapshot

__all__ = [
    "ServiceMetrics",
    "ServiceRegistry",
    "TelemetryRecord",
    "TelemetryWindow",
    "TrafficGenerator",
    "WindowSnapshot",
]
