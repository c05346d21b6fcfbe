"""
Phase State Machine — applies lifecycle events to a shipment record.

    intake ──created──► compliance ──check passes──► monitoring
                            ▲  │                          │
                            └──┘ check fails        arrival_confirmed
                                                          ▼
    billing (done) ◄──billing_processed── billing ◄──released── arrival

Events:
  created               intake → compliance, then a compliance check
  compliance_check      re-run the full rule set (allowed at any time)
  compliance_flagged    manual review flag, pins the pointer to compliance
  eta_updated           record a new current ETA and reclassify risk
  monitoring_heartbeat  reclassify risk while monitoring
  arrival_confirmed     monitoring → arrival
  released              arrival → billing (in progress)
  billing_processed     billing → done; from arrival it releases and
                        closes in one step

apply_event never mutates its input. A rejected event raises and the
caller's record stays exactly as it was.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from lifecycle.compliance import run_compliance_check
from lifecycle.errors import InvalidTransitionError
from lifecycle.phases import (
    ARRIVAL,
    BILLING,
    COMPLIANCE,
    COMPLIANCE_FLAGGED,
    DONE,
    IN_PROGRESS,
    INTAKE,
    MONITORING,
    PENDING,
    UNSET,
    advance_progress,
)
from lifecycle.policy import DEFAULT_POLICY, LifecyclePolicy
from lifecycle.risk import classify_variance, compute_eta_variance_hours
from lifecycle.shipment import ShipmentRecord, ensure_defaults

logger = structlog.get_logger()

CREATED = "created"
COMPLIANCE_CHECK = "compliance_check"
COMPLIANCE_FLAG = "compliance_flagged"
ETA_UPDATED = "eta_updated"
MONITORING_HEARTBEAT = "monitoring_heartbeat"
ARRIVAL_CONFIRMED = "arrival_confirmed"
RELEASED = "released"
BILLING_PROCESSED = "billing_processed"

EVENT_TYPES = (
    CREATED,
    COMPLIANCE_CHECK,
    COMPLIANCE_FLAG,
    ETA_UPDATED,
    MONITORING_HEARTBEAT,
    ARRIVAL_CONFIRMED,
    RELEASED,
    BILLING_PROCESSED,
)


@dataclass(frozen=True)
class ShipmentEvent:
    event_type: str
    eta_current: datetime | None = None
    eta_planned: datetime | None = None
    reason: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def refresh_monitoring_status(shipment: ShipmentRecord, policy: LifecyclePolicy) -> None:
    """Recompute ETA variance and, once monitoring has started, the risk label."""
    shipment.eta_variance_hours = compute_eta_variance_hours(shipment)
    if shipment.phase_progress[MONITORING] == PENDING:
        shipment.monitoring_status = UNSET
    else:
        shipment.monitoring_status = classify_variance(shipment.eta_variance_hours, policy.risk)


def _reject(shipment: ShipmentRecord, event: ShipmentEvent, reason: str = ""):
    raise InvalidTransitionError(shipment.shipment_id, event.event_type, shipment.current_phase, reason)


def _check_compliance(shipment: ShipmentRecord, policy: LifecyclePolicy) -> None:
    run_compliance_check(shipment, policy.compliance)
    refresh_monitoring_status(shipment, policy)


# ─── Handlers (operate on a private copy) ───────────────────────────────────


def _on_created(shipment, event, policy):
    if shipment.current_phase != INTAKE or shipment.phase_progress[INTAKE] == DONE:
        _reject(shipment, event, "shipment has already left intake")
    if shipment.eta_planned is None and shipment.eta is not None:
        shipment.eta_planned = shipment.eta
    advance_progress(shipment.phase_progress, INTAKE, DONE)
    shipment.current_phase = COMPLIANCE
    advance_progress(shipment.phase_progress, COMPLIANCE, IN_PROGRESS)
    _check_compliance(shipment, policy)


def _on_compliance_check(shipment, event, policy):
    _check_compliance(shipment, policy)


def _on_compliance_flag(shipment, event, policy):
    if shipment.is_terminal:
        _reject(shipment, event, "shipment is closed")
    reason = (event.reason or "").strip() or "Flagged for manual review"
    if reason not in shipment.compliance_issues:
        shipment.compliance_issues = [*shipment.compliance_issues, reason]
    shipment.compliance_status = COMPLIANCE_FLAGGED
    advance_progress(shipment.phase_progress, COMPLIANCE, IN_PROGRESS)
    shipment.current_phase = COMPLIANCE


def _on_eta_updated(shipment, event, policy):
    if shipment.is_terminal:
        _reject(shipment, event, "shipment is closed")
    if event.eta_current is None and event.eta_planned is None:
        _reject(shipment, event, "no ETA supplied")
    if event.eta_planned is not None:
        shipment.eta_planned = event.eta_planned
    if event.eta_current is not None:
        shipment.eta_current = event.eta_current
    refresh_monitoring_status(shipment, policy)


def _on_heartbeat(shipment, event, policy):
    if shipment.current_phase != MONITORING:
        _reject(shipment, event, "heartbeats only apply while monitoring")
    refresh_monitoring_status(shipment, policy)


def _on_arrival(shipment, event, policy):
    if shipment.current_phase != MONITORING:
        _reject(shipment, event)
    shipment.phase_progress[MONITORING] = DONE
    advance_progress(shipment.phase_progress, ARRIVAL, IN_PROGRESS)
    shipment.current_phase = ARRIVAL


def _on_released(shipment, event, policy):
    if shipment.current_phase != ARRIVAL:
        _reject(shipment, event)
    shipment.phase_progress[ARRIVAL] = DONE
    advance_progress(shipment.phase_progress, BILLING, IN_PROGRESS)
    shipment.current_phase = BILLING


def _on_billing_processed(shipment, event, policy):
    if shipment.current_phase == ARRIVAL:
        _on_released(shipment, event, policy)
    elif shipment.current_phase != BILLING:
        _reject(shipment, event)
    elif shipment.phase_progress[BILLING] == DONE:
        _reject(shipment, event, "billing already processed")
    shipment.phase_progress[BILLING] = DONE


_HANDLERS = {
    CREATED: _on_created,
    COMPLIANCE_CHECK: _on_compliance_check,
    COMPLIANCE_FLAG: _on_compliance_flag,
    ETA_UPDATED: _on_eta_updated,
    MONITORING_HEARTBEAT: _on_heartbeat,
    ARRIVAL_CONFIRMED: _on_arrival,
    RELEASED: _on_released,
    BILLING_PROCESSED: _on_billing_processed,
}


def apply_event(
    shipment: ShipmentRecord,
    event: ShipmentEvent,
    policy: LifecyclePolicy = DEFAULT_POLICY,
) -> ShipmentRecord:
    """
    Apply ``event`` to a copy of ``shipment`` and return the updated copy.

    Raises InvalidTransitionError when the event's guard is not satisfied.
    """
    handler = _HANDLERS.get(event.event_type)
    if handler is None:
        _reject(shipment, event, "unknown event type")

    updated = ensure_defaults(shipment.clone())
    from_phase = updated.current_phase
    handler(updated, event, policy)
    updated.updated_at = event.occurred_at

    logger.info(
        "lifecycle.transition",
        shipment_id=updated.shipment_id,
        event_type=event.event_type,
        from_phase=from_phase,
        to_phase=updated.current_phase,
        compliance_status=updated.compliance_status,
        monitoring_status=updated.monitoring_status,
    )
    return updated
