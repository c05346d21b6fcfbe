from datetime import datetime, timedelta, timezone

import pytest

from lifecycle.policy import RiskThresholds
from lifecycle.risk import classify_risk, classify_variance, compute_eta_variance_hours
from lifecycle.shipment import ShipmentRecord

PLANNED = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)


def _shipment(hours_late: float | None) -> ShipmentRecord:
    current = None if hours_late is None else PLANNED + timedelta(hours=hours_late)
    return ShipmentRecord(shipment_id="R", eta_planned=PLANNED, eta_current=current)


@pytest.mark.parametrize(
    "hours_late, expected",
    [
        (-6.0, "early"),
        (-10.0, "early"),
        (-5.9, "on_track"),
        (0.0, "on_track"),
        (11.9, "on_track"),
        (12.0, "at_risk"),
        (48.0, "at_risk"),
    ],
)
def test_default_bands(hours_late, expected):
    assert classify_risk(_shipment(hours_late)) == expected


def test_missing_eta_is_unset():
    assert classify_risk(_shipment(None)) == "unset"
    assert classify_risk(ShipmentRecord(shipment_id="R", eta_current=PLANNED)) == "unset"


def test_variance_is_signed_hours():
    assert compute_eta_variance_hours(_shipment(-3.5)) == pytest.approx(-3.5)
    assert compute_eta_variance_hours(_shipment(None)) is None


def test_naive_timestamps_are_treated_as_utc():
    shipment = ShipmentRecord(
        shipment_id="R",
        eta_planned=PLANNED.replace(tzinfo=None),
        eta_current=PLANNED + timedelta(hours=2),
    )
    assert compute_eta_variance_hours(shipment) == pytest.approx(2.0)


def test_custom_thresholds():
    thresholds = RiskThresholds(early_hours=1.0, at_risk_hours=2.0)
    assert classify_variance(-1.0, thresholds) == "early"
    assert classify_variance(1.5, thresholds) == "on_track"
    assert classify_variance(2.0, thresholds) == "at_risk"


def test_zero_thresholds_leave_no_on_track_band():
    thresholds = RiskThresholds(early_hours=0.0, at_risk_hours=0.0)
    assert classify_variance(0.0, thresholds) == "early"
