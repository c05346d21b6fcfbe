"""
Shipment lifecycle vocabulary.

Phases run strictly in order:
  intake → compliance → monitoring → arrival → billing (terminal)

Each phase carries a progress sub-state that only moves forward:
  pending → in_progress → done
"""

from __future__ import annotations

# ─── Phases ─────────────────────────────────────────────────────────────────

INTAKE = "intake"
COMPLIANCE = "compliance"
MONITORING = "monitoring"
ARRIVAL = "arrival"
BILLING = "billing"

PHASE_ORDER = (INTAKE, COMPLIANCE, MONITORING, ARRIVAL, BILLING)

# ─── Phase progress ─────────────────────────────────────────────────────────

PENDING = "pending"
IN_PROGRESS = "in_progress"
DONE = "done"

PROGRESS_ORDER = (PENDING, IN_PROGRESS, DONE)

# ─── Compliance / monitoring / provenance ───────────────────────────────────

COMPLIANCE_PENDING = "pending"
COMPLIANCE_OK = "ok"
COMPLIANCE_ISSUES = "issues"
COMPLIANCE_FLAGGED = "flagged"

COMPLIANCE_STATUSES = (COMPLIANCE_PENDING, COMPLIANCE_OK, COMPLIANCE_ISSUES, COMPLIANCE_FLAGGED)

ON_TRACK = "on_track"
EARLY = "early"
AT_RISK = "at_risk"
UNSET = "unset"

MONITORING_STATUSES = (ON_TRACK, EARLY, AT_RISK, UNSET)

SOURCES = ("email", "manual", "api")


def default_phase_progress() -> dict[str, str]:
    return {phase: PENDING for phase in PHASE_ORDER}


def phase_index(phase: str) -> int:
    return PHASE_ORDER.index(phase)


def advance_progress(progress: dict[str, str], phase: str, target: str) -> None:
    """Move ``progress[phase]`` forward to ``target``; never backwards."""
    current = progress.get(phase, PENDING)
    if PROGRESS_ORDER.index(target) > PROGRESS_ORDER.index(current):
        progress[phase] = target


def normalize_phase_progress(progress: dict[str, str] | None) -> dict[str, str]:
    """Return a progress map with exactly the five canonical keys."""
    normalized = default_phase_progress()
    for phase, status in (progress or {}).items():
        if phase in normalized and status in PROGRESS_ORDER:
            normalized[phase] = status
    return normalized
