"""
Fleet metrics — a read-only, single-pass reduction over shipments.

Counts and rates mirror what the operations dashboard polls:
  - completion: current_phase == billing and billing progress done
  - success rate: completed / total (percent, 1 dp)
  - processing time: per completed e-mail shipment, min(now, received_at +
    offset) - received_at. The offset is a demo stand-in for a real
    completion timestamp and comes from LifecyclePolicy.
  - efficiency: completed / e-mail shipments (percent, 1 dp)

Rounding is half-up. A record with malformed fields contributes what it
can and is logged; it never aborts the scan.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog

from lifecycle.phases import AT_RISK, BILLING, COMPLIANCE_FLAGGED, COMPLIANCE_ISSUES, DONE
from lifecycle.shipment import ShipmentRecord, as_utc

logger = structlog.get_logger()

DEFAULT_COMPLETION_OFFSET_SECONDS = 15.0


@dataclass(frozen=True)
class MetricsSnapshot:
    total_shipments: int = 0
    completed_shipments: int = 0
    success_rate: float = 0.0
    avg_processing_minutes: float | None = None
    shipments_at_risk: int = 0
    flagged_shipments: int = 0
    total_cost_saved: int = 0
    avg_margin: int | None = None
    avg_efficiency: float = 0.0
    total_tasks: int = 0
    email_shipments: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_half_up_int(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _finite_amount(shipment: ShipmentRecord, field: str) -> float | None:
    value = getattr(shipment, field)
    if not _is_number(value):
        return None
    if not math.isfinite(value):
        logger.warning("metrics.record_skipped", shipment_id=shipment.shipment_id, field=field, value=str(value))
        return None
    return value


def parse_received_at(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str) and value.strip():
        return as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    return None


def is_completed(shipment: ShipmentRecord) -> bool:
    return shipment.current_phase == BILLING and (shipment.phase_progress or {}).get(BILLING) == DONE


def compute_metrics(
    shipments: Iterable[ShipmentRecord],
    now: datetime | None = None,
    completion_offset_seconds: float = DEFAULT_COMPLETION_OFFSET_SECONDS,
) -> MetricsSnapshot:
    """Summarize ``shipments`` into a MetricsSnapshot; empty input yields zeros."""
    now = as_utc(now) or datetime.now(timezone.utc)
    offset = timedelta(seconds=completion_offset_seconds)

    total = 0
    completed = 0
    total_duration_ms = 0.0
    at_risk = 0
    flagged = 0
    total_cost_saved = 0.0
    total_margin = 0.0
    margin_count = 0
    email_shipments = 0
    total_tasks = 0

    for shipment in shipments:
        total += 1

        if shipment.source == "email":
            email_shipments += 1
            if shipment.email_metadata:
                total_tasks += 1

        if is_completed(shipment):
            completed += 1
            received_raw = (shipment.email_metadata or {}).get("received_at")
            try:
                received_at = parse_received_at(received_raw)
            except ValueError:
                logger.warning(
                    "metrics.record_skipped",
                    shipment_id=shipment.shipment_id,
                    field="email_metadata.received_at",
                    value=str(received_raw),
                )
                received_at = None
            if received_at is not None:
                end = min(now, received_at + offset)
                total_duration_ms += (end - received_at).total_seconds() * 1000

        if shipment.monitoring_status == AT_RISK:
            at_risk += 1
        if shipment.compliance_status in (COMPLIANCE_FLAGGED, COMPLIANCE_ISSUES):
            flagged += 1

        cost_saved = _finite_amount(shipment, "cost_saved")
        if cost_saved is not None:
            total_cost_saved += cost_saved
        gross_margin = _finite_amount(shipment, "gross_margin")
        if gross_margin is not None:
            total_margin += gross_margin
            margin_count += 1

    if total == 0:
        return MetricsSnapshot()

    avg_processing = None
    if completed and total_duration_ms:
        avg_processing = round_half_up(total_duration_ms / completed / 60000)

    return MetricsSnapshot(
        total_shipments=total,
        completed_shipments=completed,
        success_rate=round_half_up(completed / total * 100),
        avg_processing_minutes=avg_processing,
        shipments_at_risk=at_risk,
        flagged_shipments=flagged,
        total_cost_saved=round_half_up_int(total_cost_saved),
        avg_margin=round_half_up_int(total_margin / margin_count) if margin_count else None,
        avg_efficiency=round_half_up(completed / email_shipments * 100) if email_shipments else 0.0,
        total_tasks=total_tasks,
        email_shipments=email_shipments,
    )
