"""
Shipments Router — shipment collection, intake, and lifecycle events.

Lifecycle events accepted per shipment:
  1. arrival            monitoring → arrival
  2. release            arrival → billing (in progress)
  3. billing-processed  billing → done (from arrival: release + close)
  4. eta                record a new current ETA, reclassify risk
  5. flag               manual compliance review flag

Every event is serialized per shipment and either fully applied or
rejected with no change.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_event_publisher, get_policy
from lifecycle import service
from lifecycle.errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    LifecycleError,
    ShipmentNotFoundError,
    ShipmentValidationError,
)
from lifecycle.notifications import EventPublisher
from lifecycle.phases import PHASE_ORDER
from lifecycle.policy import LifecyclePolicy
from lifecycle.schemas import ShipmentIntake
from lifecycle.shipment import ShipmentRecord
from lifecycle.state_machine import (
    ARRIVAL_CONFIRMED,
    BILLING_PROCESSED,
    COMPLIANCE_FLAG,
    ETA_UPDATED,
    RELEASED,
    ShipmentEvent,
)

router = APIRouter(prefix="/api/v1/shipments", tags=["shipments"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ShipmentResponse(BaseModel):
    shipment_id: str
    container_no: str | None
    current_phase: str
    phase_progress: dict[str, str]
    compliance_status: str
    compliance_issues: list[str]
    monitoring_status: str
    eta_planned: datetime | None
    eta_current: datetime | None
    eta_variance_hours: float | None
    shipper: str | None
    consignee: str | None
    hs_code: str | None
    commodity: str | None
    port: str | None
    destination: str | None
    eta: datetime | None
    arrival_date: datetime | None
    promised_date: datetime | None
    weight_kg: float | None
    documents: list[str]
    isf_filed: bool
    carrier: str | None
    vessel: str | None
    voyage: str | None
    total_charges: float | None
    cost_saved: float | None
    gross_margin: float | None
    source: str
    email_metadata: dict[str, Any] | None
    version: int
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class EtaUpdateRequest(BaseModel):
    """New ETA reported by tracking. At least one field is required."""
    eta_current: datetime | None = None
    eta_planned: datetime | None = None


class FlagRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500, examples=["Consignee on internal watchlist"])


class EmailActivityResponse(BaseModel):
    shipment_id: str
    container_no: str | None
    subject: str | None
    sender: str | None
    received_at: str | None
    attachment_name: str | None
    attachment_size: int | None
    current_phase: str


class ActivityResponse(BaseModel):
    event_type: str
    from_phase: str | None
    to_phase: str
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Helpers ────────────────────────────────────────────────────────────────


def http_error(exc: LifecycleError) -> HTTPException:
    """Translate a lifecycle failure into the matching HTTP error."""
    if isinstance(exc, ShipmentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, ShipmentValidationError):
        return HTTPException(status_code=422, detail=exc.errors)
    if isinstance(exc, (InvalidTransitionError, ConcurrentModificationError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


def to_response(record: ShipmentRecord) -> ShipmentResponse:
    return ShipmentResponse.model_validate(record)


async def _apply(
    db: AsyncSession,
    shipment_id: str,
    event: ShipmentEvent,
    policy: LifecyclePolicy,
    publisher: EventPublisher,
) -> ShipmentResponse:
    try:
        record = await service.dispatch_event(db, shipment_id, event, policy=policy, publisher=publisher)
    except LifecycleError as exc:
        raise http_error(exc) from exc
    return to_response(record)


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("", response_model=list[ShipmentResponse])
async def list_shipments(
    phase: str | None = Query(None, description="Filter by current phase"),
    db: AsyncSession = Depends(get_db),
):
    """Full current shipment collection (UI and metrics pollers)."""
    if phase is not None and phase not in PHASE_ORDER:
        raise HTTPException(status_code=422, detail=f"Unknown phase '{phase}'")
    records = await service.list_shipments(db, phase=phase)
    return [to_response(record) for record in records]


@router.get("/email-activity", response_model=list[EmailActivityResponse])
async def list_email_activity(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Recently e-mailed arrival notices and where their shipments stand."""
    return await service.email_activity(db, limit=limit)


@router.get("/{shipment_id}", response_model=ShipmentResponse)
async def get_shipment(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
):
    try:
        record = await service.get_shipment(db, shipment_id)
    except LifecycleError as exc:
        raise http_error(exc) from exc
    return to_response(record)


@router.post("", response_model=ShipmentResponse)
async def upsert_shipment(
    body: ShipmentIntake,
    response: Response,
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """
    Create or update a shipment record delivered by ingestion.

    New shipments complete intake and get their first compliance check.
    Updates overwrite only the supplied fields and re-run compliance.
    """
    try:
        record, created = await service.upsert_shipment(db, body, policy=policy, publisher=publisher)
    except LifecycleError as exc:
        raise http_error(exc) from exc
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return to_response(record)


@router.get("/{shipment_id}/activity", response_model=list[ActivityResponse])
async def list_shipment_activity(
    shipment_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    try:
        await service.get_shipment(db, shipment_id)
    except LifecycleError as exc:
        raise http_error(exc) from exc
    return await service.recent_activity(db, limit=limit, shipment_id=shipment_id)


@router.post("/{shipment_id}/events/arrival", response_model=ShipmentResponse)
async def confirm_arrival(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Arrival confirmed: monitoring → arrival."""
    return await _apply(db, shipment_id, ShipmentEvent(ARRIVAL_CONFIRMED), policy, publisher)


@router.post("/{shipment_id}/events/release", response_model=ShipmentResponse)
async def release_for_billing(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Cargo released: arrival → billing."""
    return await _apply(db, shipment_id, ShipmentEvent(RELEASED), policy, publisher)


@router.post("/{shipment_id}/events/billing-processed", response_model=ShipmentResponse)
async def billing_processed(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Invoice processed: closes billing."""
    return await _apply(db, shipment_id, ShipmentEvent(BILLING_PROCESSED), policy, publisher)


@router.post("/{shipment_id}/events/eta", response_model=ShipmentResponse)
async def update_eta(
    shipment_id: str,
    body: EtaUpdateRequest,
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    if body.eta_current is None and body.eta_planned is None:
        raise HTTPException(status_code=422, detail="eta_current or eta_planned is required")
    event = ShipmentEvent(ETA_UPDATED, eta_current=body.eta_current, eta_planned=body.eta_planned)
    return await _apply(db, shipment_id, event, policy, publisher)


@router.post("/{shipment_id}/events/flag", response_model=ShipmentResponse)
async def flag_for_review(
    shipment_id: str,
    body: FlagRequest,
    db: AsyncSession = Depends(get_db),
    policy: LifecyclePolicy = Depends(get_policy),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Hold a shipment in compliance pending manual review."""
    return await _apply(db, shipment_id, ShipmentEvent(COMPLIANCE_FLAG, reason=body.reason), policy, publisher)
