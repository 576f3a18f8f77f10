"""
Runtime container.

Builds every store and component once and wires them together, so each
component receives its collaborators explicitly instead of reaching for
shared global state. Background work (detection ticks, metrics refresh,
synthetic traffic) runs as periodic tasks owned by the runtime.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

import structlog

from meshguard.cluster import ClusterClient, create_cluster_client
from meshguard.clients.webhook import WebhookClient
from meshguard.config.baseline import Baseline, load_baseline
from meshguard.config.settings import Settings, get_settings
from meshguard.detection.engine import RuleEngine
from meshguard.detection.repository import AnomalyRepository
from meshguard.detection.rules import default_rules
from meshguard.notify.sink import (
    BroadcastSink,
    CompositeSink,
    LoggingSink,
    MemorySink,
    NotificationSink,
)
from meshguard.notify.webhook import WebhookSink
from meshguard.policies.audit import PolicyHistoryLog
from meshguard.policies.lifecycle import PolicyDraftLifecycle
from meshguard.policies.repository import DraftRepository
from meshguard.scheduler import PeriodicTask
from meshguard.telemetry.services import ServiceRegistry
from meshguard.telemetry.synthetic import TrafficGenerator
from meshguard.telemetry.window import TelemetryWindow

logger = structlog.get_logger()


@dataclass
class Runtime:
    settings: Settings
    baseline: Baseline
    window: TelemetryWindow
    services: ServiceRegistry
    anomalies: AnomalyRepository
    policies: PolicyDraftLifecycle
    engine: RuleEngine
    cluster: ClusterClient
    sink: NotificationSink
    events: MemorySink
    broadcast: BroadcastSink
    generator: TrafficGenerator
    webhook: WebhookSink | None = None
    tasks: list[PeriodicTask] = field(default_factory=list)

    def generate_traffic(self, size: int | None = None) -> int:
        records = self.generator.pump(
            self.window, size or self.settings.synthetic_burst_size, self.sink
        )
        return len(records)

    def build_tasks(self) -> list[PeriodicTask]:
        tasks = [
            PeriodicTask(
                "detection", self.settings.detection_interval_seconds, self.engine.run_tick
            ),
            PeriodicTask(
                "service-metrics", self.settings.metrics_interval_seconds, self.services.refresh
            ),
        ]
        if self.settings.synthetic_enabled:
            tasks.append(
                PeriodicTask(
                    "synthetic-traffic",
                    self.settings.synthetic_interval_seconds,
                    self.generate_traffic,
                )
            )
        return tasks

    async def start(self) -> None:
        if self.tasks:
            return
        self.tasks = self.build_tasks()
        for task in self.tasks:
            task.start()
        logger.info("runtime_started", tasks=[t.name for t in self.tasks])

    async def stop(self) -> None:
        for task in self.tasks:
            await task.stop()
        self.tasks = []
        if self.webhook is not None:
            await self.webhook.drain()
        logger.info("runtime_stopped")


def build_runtime(
    settings: Settings | None = None,
    *,
    sink: NotificationSink | None = None,
    cluster: ClusterClient | None = None,
    baseline: Baseline | None = None,
    rng: random.Random | None = None,
) -> Runtime:
    """
    Construct a fully wired runtime.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        sink: Extra sink receiving every published event
        cluster: Cluster client (defaults to the configured backend)
        baseline: Detection baseline (defaults to ``settings.baseline_file`` or built-ins)
        rng: Random source for synthetic traffic

    Returns:
        Runtime with no background tasks started
    """
    settings = settings or get_settings()
    baseline = baseline or load_baseline(settings.baseline_file)
    cluster = cluster or create_cluster_client(settings)

    events = MemorySink()
    broadcast = BroadcastSink(queue_size=settings.broadcast_queue_size)
    sinks: list[NotificationSink] = [LoggingSink(), events, broadcast]

    webhook = None
    if settings.webhook_url:
        webhook = WebhookSink(
            WebhookClient(
                settings.webhook_url,
                token=settings.webhook_token,
                timeout=settings.http_timeout,
                max_retries=settings.http_max_retries,
                backoff_factor=settings.http_retry_backoff_factor,
            )
        )
        sinks.append(webhook)
    if sink is not None:
        sinks.append(sink)
    composite = CompositeSink(sinks)

    window = TelemetryWindow(capacity=settings.window_capacity)
    services = ServiceRegistry(window, composite, sample_size=settings.metrics_sample_size)
    for spec in baseline.services:
        services.register(spec)

    anomalies = AnomalyRepository()
    policies = PolicyDraftLifecycle(
        DraftRepository(),
        PolicyHistoryLog(),
        cluster,
        composite,
        default_namespace=settings.default_namespace,
        system_author=settings.system_author,
    )
    engine = RuleEngine(
        window,
        anomalies,
        composite,
        default_rules(baseline),
        analysis_window=settings.analysis_window,
        drafter=policies.auto_draft if settings.auto_draft else None,
    )
    generator = TrafficGenerator(
        baseline, suspicious_ratio=settings.synthetic_suspicious_ratio, rng=rng
    )

    logger.debug(
        "runtime_built",
        cluster_backend=type(cluster).__name__,
        services=len(baseline.services),
        webhook=bool(webhook),
    )
    return Runtime(
        settings=settings,
        baseline=baseline,
        window=window,
        services=services,
        anomalies=anomalies,
        policies=policies,
        engine=engine,
        cluster=cluster,
        sink=composite,
        events=events,
        broadcast=broadcast,
        generator=generator,
        webhook=webhook,
    )
