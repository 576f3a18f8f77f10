from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from meshguard.api.deps import get_runtime
from meshguard.runtime import Runtime

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str = "0.1.0"
    records: int
    anomalies: int
    pending_drafts: int
    detection_ticks: int
    tasks: list[str]


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check(runtime: Runtime = Depends(get_runtime)) -> HealthResponse:  # noqa: B008
    """Basic health check with pipeline counters."""
    return HealthResponse(
        status="healthy",
        records=len(runtime.window),
        anomalies=len(runtime.anomalies),
        pending_drafts=len(runtime.policies.list_pending()),
        detection_ticks=runtime.engine.ticks,
        tasks=[t.name for t in runtime.tasks if t.running],
    )
