"""
meshguard command line.

Usage:
    meshguard serve                       # Run the HTTP API with background detection
    meshguard simulate --ticks 10         # Local synthetic traffic + detection run
    meshguard render --service S ...      # Print the policy drafted for an anomaly
"""

from __future__ import annotations

import argparse
import random
import sys
from typing import Sequence

from rich.console import Console
from rich.table import Table

from meshguard.config import get_settings
from meshguard.core.errors import main_with_error_handling
from meshguard.detection.models import AnomalySeverity, AnomalyType
from meshguard.logging import configure_logging
from meshguard.policies.generator import generate_rules
from meshguard.policies.renderer import generation_annotations, render_authorization_policy
from meshguard.telemetry.models import utcnow

console = Console()

SEVERITY_STYLES = {
    AnomalySeverity.low: "dim",
    AnomalySeverity.medium: "yellow",
    AnomalySeverity.high: "red",
    AnomalySeverity.critical: "red bold",
}


@main_with_error_handling()
def serve_command(host: str | None = None, port: int | None = None) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "meshguard.api.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


@main_with_error_handling()
def simulate_command(ticks: int = 10, burst: int = 50, seed: int | None = None) -> int:
    """Feed synthetic bursts through detection and summarize what was found."""
    from meshguard.runtime import build_runtime

    settings = get_settings()
    configure_logging(settings.log_level, json=False)
    runtime = build_runtime(settings, rng=random.Random(seed))

    for _ in range(ticks):
        runtime.generate_traffic(burst)
        runtime.engine.run_tick()
    runtime.services.refresh()

    anomalies = runtime.anomalies.list()
    console.print()
    console.print(
        f"[bold]Simulated {ticks} ticks[/bold] "
        f"({len(runtime.window)} records in window, {len(anomalies)} anomalies, "
        f"{len(runtime.policies.list_pending())} pending drafts)"
    )
    console.print()

    if not anomalies:
        console.print("[green]No anomalies detected.[/green]")
        return 0

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Type", style="bold")
    table.add_column("Service")
    table.add_column("Severity")
    table.add_column("Details", max_width=60)
    table.add_column("Draft")

    for anomaly in anomalies:
        style = SEVERITY_STYLES.get(anomaly.severity, "")
        table.add_row(
            anomaly.type.value,
            anomaly.service,
            f"[{style}]{anomaly.severity.value.upper()}[/{style}]",
            anomaly.details,
            (anomaly.suggested_draft_id or "-")[:8],
        )

    console.print(table)
    return 0


@main_with_error_handling()
def render_command(
    service: str,
    anomaly_type: str,
    details: str = "",
    namespace: str | None = None,
) -> int:
    namespace = namespace or get_settings().default_namespace
    rules = generate_rules(anomaly_type, details, namespace)
    manifest = render_authorization_policy(
        service,
        namespace,
        rules,
        name=f"{service}-authz-preview",
        annotations=generation_annotations(
            f"Generated from anomaly: {anomaly_type}", utcnow().isoformat()
        ),
    )
    sys.stdout.write(manifest)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="meshguard", description="Service mesh anomaly guard")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default from settings)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default from settings)")

    simulate_parser = subparsers.add_parser(
        "simulate", help="Run detection over synthetic traffic"
    )
    simulate_parser.add_argument("--ticks", type=int, default=10, help="Detection ticks to run")
    simulate_parser.add_argument("--burst", type=int, default=50, help="Records per tick")
    simulate_parser.add_argument("--seed", type=int, help="Random seed for reproducible runs")

    render_parser = subparsers.add_parser(
        "render", help="Print the AuthorizationPolicy drafted for an anomaly"
    )
    render_parser.add_argument("--service", required=True, help="Target service")
    render_parser.add_argument(
        "--anomaly-type",
        required=True,
        choices=[t.value for t in AnomalyType],
        help="Anomaly type",
    )
    render_parser.add_argument("--details", default="", help="Anomaly details text")
    render_parser.add_argument("--namespace", help="Policy namespace")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        sys.exit(serve_command(host=args.host, port=args.port))

    if args.command == "simulate":
        sys.exit(simulate_command(ticks=args.ticks, burst=args.burst, seed=args.seed))

    if args.command == "render":
        sys.exit(
            render_command(
                service=args.service,
                anomaly_type=args.anomaly_type,
                details=args.details,
                namespace=args.namespace,
            )
        )

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
