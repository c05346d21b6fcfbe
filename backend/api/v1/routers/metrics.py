"""
Metrics Router — fleet KPIs for the operations dashboard.

The dashboard polls this endpoint (every 5s in the reference UI); each
call reduces a fresh point-in-time read of all shipments.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_policy
from core.config import get_settings
from lifecycle import service
from lifecycle.policy import LifecyclePolicy

router = APIRouter(prefix="/api/v1", tags=["metrics"])


class MetricsResponse(BaseModel):
    total_shipments: int
    completed_shipments: int
    success_rate: float
    avg_processing_minutes: float | None
    shipments_at_risk: int
    flagged_shipments: int
    total_cost_saved: int
    avg_margin: int | None
    avg_efficiency: float
    total_tasks: int
    email_shipments: int

    model_config = {"from_attributes": True}


class ActivityFeedItem(BaseModel):
    shipment_id: str
    event_type: str
    from_phase: str | None
    to_phase: str
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
):
    snapshot = await service.snapshot_metrics(db, policy=policy)
    return MetricsResponse.model_validate(snapshot)


@router.get("/activity", response_model=list[ActivityFeedItem])
async def get_activity_feed(
    limit: int | None = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Most recent lifecycle activity across all shipments, newest first."""
    return await service.recent_activity(db, limit=limit or get_settings().activity_feed_limit)
