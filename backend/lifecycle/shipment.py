"""In-memory shipment record the lifecycle engine operates on."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lifecycle.phases import (
    COMPLIANCE_PENDING,
    INTAKE,
    PHASE_ORDER,
    UNSET,
    default_phase_progress,
    normalize_phase_progress,
)


@dataclass
class ShipmentRecord:
    shipment_id: str
    container_no: str | None = None

    current_phase: str = INTAKE
    phase_progress: dict[str, str] = field(default_factory=default_phase_progress)
    compliance_status: str = COMPLIANCE_PENDING
    compliance_issues: list[str] = field(default_factory=list)
    monitoring_status: str = UNSET

    eta_planned: datetime | None = None
    eta_current: datetime | None = None
    eta_variance_hours: float | None = None

    # Attributes consumed by compliance rules
    shipper: str | None = None
    consignee: str | None = None
    hs_code: str | None = None
    commodity: str | None = None
    port: str | None = None
    destination: str | None = None
    eta: datetime | None = None
    arrival_date: datetime | None = None
    promised_date: datetime | None = None
    weight_kg: float | None = None
    documents: list[str] = field(default_factory=list)
    isf_filed: bool = False

    carrier: str | None = None
    vessel: str | None = None
    voyage: str | None = None
    total_charges: float | None = None

    cost_saved: float | None = None
    gross_margin: float | None = None

    source: str = "manual"
    email_metadata: dict[str, Any] | None = None

    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def clone(self) -> ShipmentRecord:
        return copy.deepcopy(self)

    @property
    def is_terminal(self) -> bool:
        return self.phase_progress.get("billing") == "done"


def ensure_defaults(shipment: ShipmentRecord) -> ShipmentRecord:
    """Fill lifecycle fields that a freshly ingested record may lack."""
    if shipment.current_phase not in PHASE_ORDER:
        shipment.current_phase = INTAKE
    shipment.phase_progress = normalize_phase_progress(shipment.phase_progress)
    if not shipment.compliance_status:
        shipment.compliance_status = COMPLIANCE_PENDING
    if shipment.compliance_issues is None:
        shipment.compliance_issues = []
    if not shipment.monitoring_status:
        shipment.monitoring_status = UNSET
    return shipment


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps (SQLite round-trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
