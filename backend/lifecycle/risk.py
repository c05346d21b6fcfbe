"""Delivery risk classification from ETA variance."""

from __future__ import annotations

from lifecycle.phases import AT_RISK, EARLY, ON_TRACK, UNSET
from lifecycle.policy import RiskThresholds
from lifecycle.shipment import ShipmentRecord, as_utc


def compute_eta_variance_hours(shipment: ShipmentRecord) -> float | None:
    """Signed hours between current and planned ETA (positive = late)."""
    planned = as_utc(shipment.eta_planned)
    current = as_utc(shipment.eta_current)
    if planned is None or current is None:
        return None
    return (current - planned).total_seconds() / 3600


def classify_variance(variance_hours: float | None, thresholds: RiskThresholds) -> str:
    if variance_hours is None:
        return UNSET
    if variance_hours <= -thresholds.early_hours:
        return EARLY
    if variance_hours >= thresholds.at_risk_hours:
        return AT_RISK
    return ON_TRACK


def classify_risk(shipment: ShipmentRecord, thresholds: RiskThresholds | None = None) -> str:
    """Return the monitoring label for ``shipment``; does not touch its phase."""
    return classify_variance(compute_eta_variance_hours(shipment), thresholds or RiskThresholds())
