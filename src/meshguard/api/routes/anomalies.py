from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from meshguard.api.deps import get_runtime
from meshguard.runtime import Runtime

router = APIRouter()


class AnomalyItem(BaseModel):
    id: str
    timestamp: datetime
    service: str
    type: str
    severity: str
    details: str
    associated_record_ids: list[str]
    suggested_draft_id: str | None = None


@router.get("/anomalies", response_model=list[AnomalyItem])
async def list_anomalies(
    limit: int = Query(default=50, ge=1, le=1000),
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> list[AnomalyItem]:
    return [AnomalyItem(**a.to_dict()) for a in runtime.anomalies.list(limit)]


@router.get("/anomalies/service/{service}", response_model=list[AnomalyItem])
async def anomalies_for_service(
    service: str,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> list[AnomalyItem]:
    return [AnomalyItem(**a.to_dict()) for a in runtime.anomalies.by_service(service)]


@router.get("/anomalies/{anomaly_id}", response_model=AnomalyItem)
async def get_anomaly(
    anomaly_id: str,
    runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> AnomalyItem:
    return AnomalyItem(**runtime.anomalies.get(anomaly_id).to_dict())
