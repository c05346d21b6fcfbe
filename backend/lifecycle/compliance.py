"""
Compliance Component — runs the rule evaluator and gates the phase pointer.

A passing check marks compliance done and, when the shipment is still at
intake or compliance, moves the pointer to the next phase that has not
finished (normally monitoring). A failing check pins the pointer back to
compliance. Progress already marked done is never reverted.
"""

from __future__ import annotations

import structlog

from lifecycle.phases import (
    BILLING,
    COMPLIANCE,
    COMPLIANCE_ISSUES,
    COMPLIANCE_OK,
    DONE,
    IN_PROGRESS,
    INTAKE,
    MONITORING,
    PENDING,
    PHASE_ORDER,
    advance_progress,
    phase_index,
)
from lifecycle.policy import DEFAULT_POLICY, CompliancePolicy
from lifecycle.rules import evaluate
from lifecycle.shipment import ShipmentRecord, ensure_defaults

logger = structlog.get_logger()


def _resume_phase(progress: dict[str, str]) -> str:
    """First phase after compliance that has not finished."""
    for phase in PHASE_ORDER[phase_index(COMPLIANCE) + 1 :]:
        if progress[phase] != DONE:
            return phase
    return BILLING


def run_compliance_check(
    shipment: ShipmentRecord,
    policy: CompliancePolicy = DEFAULT_POLICY.compliance,
) -> ShipmentRecord:
    """Evaluate compliance rules and update status, issues, and phase pointer in place."""
    ensure_defaults(shipment)

    issues = evaluate(shipment, policy)
    shipment.compliance_issues = issues
    progress = shipment.phase_progress

    if not issues:
        shipment.compliance_status = COMPLIANCE_OK
        advance_progress(progress, COMPLIANCE, DONE)
        if shipment.current_phase in (INTAKE, COMPLIANCE):
            advance_progress(progress, INTAKE, DONE)
            shipment.current_phase = _resume_phase(progress)
            if shipment.current_phase == MONITORING and progress[MONITORING] == PENDING:
                progress[MONITORING] = IN_PROGRESS
    else:
        shipment.compliance_status = COMPLIANCE_ISSUES
        advance_progress(progress, COMPLIANCE, IN_PROGRESS)
        shipment.current_phase = COMPLIANCE

    logger.info(
        "compliance.completed",
        shipment_id=shipment.shipment_id,
        container_no=shipment.container_no,
        issues=len(issues),
        status=shipment.compliance_status,
        phase=shipment.current_phase,
    )
    return shipment
