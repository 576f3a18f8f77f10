"""Telemetry and service metrics API routes."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from meshguard.api.deps import get_runtime
from meshguard.runtime import Runtime

router = APIRouter()


class TelemetryRecordItem(BaseModel):
    id: str
    timestamp: datetime
    source_service: str
    source_ip: str
    method: str
    path: str
    status_code: int
    latency_ms: float
    service: str
    dest_service: str | None = None
    user_agent: str | None = None
    request_size: int | None = None
    response_size: int | None = None


class ServiceMetricsItem(BaseModel):
    name: str
    namespace: str
    requests_per_second: float
    error_rate_pct: float
    avg_latency_ms: float
    last_seen: datetime | None = None
    dependencies: list[str]
    labels: dict[str, str]


@router.get("/telemetry/live", response_model=list[TelemetryRecordItem])
async def live_telemetry(
    limit: int = Query(default=100, ge=1, le=1000),
    service: str | None = None,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> list[TelemetryRecordItem]:
    """Most recent records, newest first."""
    records = runtime.window.query(limit=limit, service=service)
    return [TelemetryRecordItem(**r.to_dict()) for r in records]


@router.get("/telemetry/services", response_model=list[ServiceMetricsItem])
async def list_services(runtime: Runtime = Depends(get_runtime)) -> list[ServiceMetricsItem]:  # noqa: B008
    return [ServiceMetricsItem(**m.to_dict()) for m in runtime.services.list()]


@router.get("/telemetry/services/{name}", response_model=ServiceMetricsItem)
async def get_service(
    name: str,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> ServiceMetricsItem:
    return ServiceMetricsItem(**runtime.services.get(name).to_dict())
