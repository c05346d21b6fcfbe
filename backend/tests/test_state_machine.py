"""
Tests for the phase state machine.

Covers:
  - the happy path intake → billing done
  - guard rejections leave the input untouched
  - ETA updates and heartbeats drive the risk label
  - manual compliance flags
"""

from datetime import timedelta

import pytest

from lifecycle.errors import InvalidTransitionError
from lifecycle.phases import ARRIVAL, BILLING, COMPLIANCE, DONE, IN_PROGRESS, INTAKE, MONITORING, PENDING, PHASE_ORDER
from lifecycle.policy import LifecyclePolicy, RiskThresholds
from lifecycle.state_machine import (
    ARRIVAL_CONFIRMED,
    BILLING_PROCESSED,
    COMPLIANCE_CHECK,
    COMPLIANCE_FLAG,
    CREATED,
    ETA_UPDATED,
    MONITORING_HEARTBEAT,
    RELEASED,
    ShipmentEvent,
    apply_event,
)


def _through(shipment, *event_types):
    for event_type in event_types:
        shipment = apply_event(shipment, ShipmentEvent(event_type))
    return shipment


class TestHappyPath:
    def test_created_runs_intake_and_compliance(self, make_record):
        shipment = apply_event(make_record(), ShipmentEvent(CREATED))
        assert shipment.current_phase == MONITORING
        assert shipment.phase_progress == {
            "intake": DONE,
            "compliance": DONE,
            "monitoring": IN_PROGRESS,
            "arrival": PENDING,
            "billing": PENDING,
        }

    def test_created_with_issues_stops_at_compliance(self, make_record):
        shipment = apply_event(make_record(shipper=None), ShipmentEvent(CREATED))
        assert shipment.current_phase == COMPLIANCE
        assert shipment.phase_progress[INTAKE] == DONE
        assert shipment.phase_progress[COMPLIANCE] == IN_PROGRESS
        assert shipment.monitoring_status == "unset"

    def test_created_plans_eta_from_eta(self, make_record):
        original = make_record()
        shipment = apply_event(original, ShipmentEvent(CREATED))
        assert shipment.eta_planned == original.eta

    def test_full_lifecycle(self, make_record):
        shipment = _through(make_record(), CREATED, ARRIVAL_CONFIRMED)
        assert shipment.current_phase == ARRIVAL
        assert shipment.phase_progress[MONITORING] == DONE
        assert shipment.phase_progress[ARRIVAL] == IN_PROGRESS

        shipment = apply_event(shipment, ShipmentEvent(RELEASED))
        assert shipment.current_phase == BILLING
        assert shipment.phase_progress[ARRIVAL] == DONE
        assert shipment.phase_progress[BILLING] == IN_PROGRESS

        shipment = apply_event(shipment, ShipmentEvent(BILLING_PROCESSED))
        assert shipment.is_terminal
        assert all(status == DONE for status in shipment.phase_progress.values())

    def test_billing_processed_from_arrival_releases_and_closes(self, make_record):
        shipment = _through(make_record(), CREATED, ARRIVAL_CONFIRMED, BILLING_PROCESSED)
        assert shipment.current_phase == BILLING
        assert shipment.phase_progress[ARRIVAL] == DONE
        assert shipment.phase_progress[BILLING] == DONE

    def test_apply_event_never_mutates_input(self, make_record):
        original = make_record()
        snapshot = original.clone()
        apply_event(original, ShipmentEvent(CREATED))
        assert original == snapshot


class TestGuards:
    @pytest.mark.parametrize("event_type", [ARRIVAL_CONFIRMED, RELEASED, BILLING_PROCESSED, MONITORING_HEARTBEAT])
    def test_events_rejected_while_in_compliance(self, make_record, event_type):
        shipment = apply_event(make_record(consignee=None), ShipmentEvent(CREATED))
        before = shipment.clone()

        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_event(shipment, ShipmentEvent(event_type))

        assert exc_info.value.current_phase == COMPLIANCE
        assert shipment == before

    def test_created_twice_is_rejected(self, make_record):
        shipment = apply_event(make_record(), ShipmentEvent(CREATED))
        with pytest.raises(InvalidTransitionError):
            apply_event(shipment, ShipmentEvent(CREATED))

    def test_second_billing_processed_is_rejected(self, make_record):
        shipment = _through(make_record(), CREATED, ARRIVAL_CONFIRMED, RELEASED, BILLING_PROCESSED)
        with pytest.raises(InvalidTransitionError, match="already processed"):
            apply_event(shipment, ShipmentEvent(BILLING_PROCESSED))

    def test_release_requires_arrival(self, make_record):
        shipment = apply_event(make_record(), ShipmentEvent(CREATED))
        with pytest.raises(InvalidTransitionError):
            apply_event(shipment, ShipmentEvent(RELEASED))

    def test_unknown_event_type(self, make_record):
        with pytest.raises(InvalidTransitionError, match="unknown event type"):
            apply_event(make_record(), ShipmentEvent("teleported"))

    def test_closed_shipment_rejects_eta_and_flag(self, make_record):
        shipment = _through(make_record(), CREATED, ARRIVAL_CONFIRMED, BILLING_PROCESSED)
        with pytest.raises(InvalidTransitionError):
            apply_event(shipment, ShipmentEvent(ETA_UPDATED, eta_current=shipment.eta))
        with pytest.raises(InvalidTransitionError):
            apply_event(shipment, ShipmentEvent(COMPLIANCE_FLAG, reason="late paperwork"))

    def test_compliance_check_allowed_on_closed_shipment(self, make_record):
        shipment = _through(make_record(), CREATED, ARRIVAL_CONFIRMED, BILLING_PROCESSED)
        rechecked = apply_event(shipment, ShipmentEvent(COMPLIANCE_CHECK))
        assert rechecked.current_phase == BILLING
        assert rechecked.is_terminal


class TestMonitoring:
    def test_eta_update_classifies_risk(self, make_record):
        shipment = apply_event(make_record(), ShipmentEvent(CREATED))
        late = apply_event(shipment, ShipmentEvent(ETA_UPDATED, eta_current=shipment.eta_planned + timedelta(hours=13)))
        assert late.eta_variance_hours == pytest.approx(13.0)
        assert late.monitoring_status == "at_risk"
        assert late.current_phase == MONITORING

    def test_eta_update_before_monitoring_keeps_label_unset(self, make_record):
        shipment = apply_event(make_record(hs_code="0000"), ShipmentEvent(CREATED))
        updated = apply_event(shipment, ShipmentEvent(ETA_UPDATED, eta_current=shipment.eta_planned + timedelta(hours=20)))
        assert updated.eta_variance_hours == pytest.approx(20.0)
        assert updated.monitoring_status == "unset"

    def test_eta_update_without_values_is_rejected(self, make_record):
        shipment = apply_event(make_record(), ShipmentEvent(CREATED))
        with pytest.raises(InvalidTransitionError, match="no ETA"):
            apply_event(shipment, ShipmentEvent(ETA_UPDATED))

    def test_heartbeat_uses_policy_thresholds(self, make_record):
        shipment = apply_event(make_record(), ShipmentEvent(CREATED))
        shipment.eta_current = shipment.eta_planned + timedelta(hours=3)
        strict = LifecyclePolicy(risk=RiskThresholds(early_hours=1.0, at_risk_hours=2.0))

        assert apply_event(shipment, ShipmentEvent(MONITORING_HEARTBEAT)).monitoring_status == "on_track"
        assert apply_event(shipment, ShipmentEvent(MONITORING_HEARTBEAT), strict).monitoring_status == "at_risk"

    def test_risk_label_survives_arrival(self, make_record):
        shipment = apply_event(make_record(), ShipmentEvent(CREATED))
        shipment = apply_event(shipment, ShipmentEvent(ETA_UPDATED, eta_current=shipment.eta_planned - timedelta(hours=8)))
        shipment = apply_event(shipment, ShipmentEvent(ARRIVAL_CONFIRMED))
        assert shipment.monitoring_status == "early"


class TestComplianceFlag:
    def test_flag_pins_pointer_to_compliance(self, make_record):
        shipment = apply_event(make_record(), ShipmentEvent(CREATED))
        flagged = apply_event(shipment, ShipmentEvent(COMPLIANCE_FLAG, reason="Consignee on internal watchlist"))

        assert flagged.current_phase == COMPLIANCE
        assert flagged.compliance_status == "flagged"
        assert flagged.compliance_issues == ["Consignee on internal watchlist"]
        assert flagged.phase_progress[COMPLIANCE] == DONE

    def test_recheck_clears_manual_flag(self, make_record):
        shipment = _through(make_record(), CREATED)
        shipment = apply_event(shipment, ShipmentEvent(COMPLIANCE_FLAG, reason="manual hold"))
        cleared = apply_event(shipment, ShipmentEvent(COMPLIANCE_CHECK))

        assert cleared.compliance_status == "ok"
        assert cleared.compliance_issues == []
        assert cleared.current_phase == MONITORING


def test_every_transition_keeps_five_progress_keys(make_record):
    shipment = make_record()
    for event_type in (CREATED, COMPLIANCE_CHECK, MONITORING_HEARTBEAT, ARRIVAL_CONFIRMED, RELEASED, BILLING_PROCESSED):
        shipment = apply_event(shipment, ShipmentEvent(event_type))
        assert tuple(shipment.phase_progress) == PHASE_ORDER
