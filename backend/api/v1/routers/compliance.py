"""
Compliance Router — on-demand compliance checks.

A check re-runs the full rule set. Passing advances the phase pointer
out of compliance; failing pins it back to compliance.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_event_publisher, get_policy
from api.v1.routers.shipments import ShipmentResponse, http_error, to_response
from lifecycle import service
from lifecycle.errors import LifecycleError
from lifecycle.notifications import EventPublisher
from lifecycle.policy import LifecyclePolicy

router = APIRouter(prefix="/api/v1/compliance-check", tags=["compliance"])


class BatchFailure(BaseModel):
    shipment_id: str
    error: str
    detail: str


class BatchResult(BaseModel):
    ok: bool
    matched: int
    updated: int
    failed: list[BatchFailure]


@router.post("", response_model=BatchResult)
async def recheck_all(
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Re-run compliance for every shipment currently held in compliance."""
    return await service.recheck_compliance(db, policy=policy, publisher=publisher)


@router.post("/{shipment_id}", response_model=ShipmentResponse)
async def run_compliance_check(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    try:
        record = await service.run_compliance_check_for(db, shipment_id, policy=policy, publisher=publisher)
    except LifecycleError as exc:
        raise http_error(exc) from exc
    return to_response(record)
