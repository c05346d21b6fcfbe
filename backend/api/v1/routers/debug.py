"""
Debug Router — batch phase advancement for demos and local testing.

Mounted only when DEBUG=true. Each endpoint applies one lifecycle event
to every shipment whose pointer sits at the matching phase; shipments
that reject the event are reported, not fatal.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_event_publisher, get_policy
from api.v1.routers.compliance import BatchResult
from lifecycle import service
from lifecycle.notifications import EventPublisher
from lifecycle.phases import ARRIVAL, MONITORING
from lifecycle.policy import LifecyclePolicy
from lifecycle.state_machine import ARRIVAL_CONFIRMED, BILLING_PROCESSED

router = APIRouter(prefix="/api/v1/debug/phase", tags=["debug"])


@router.post("/arrival-release", response_model=BatchResult)
async def arrival_release(
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Confirm arrival for every shipment in monitoring."""
    return await service.advance_phase_batch(db, MONITORING, ARRIVAL_CONFIRMED, policy=policy, publisher=publisher)


@router.post("/billing-processed", response_model=BatchResult)
async def billing_processed(
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Release and close billing for every shipment in arrival."""
    return await service.advance_phase_batch(db, ARRIVAL, BILLING_PROCESSED, policy=policy, publisher=publisher)
