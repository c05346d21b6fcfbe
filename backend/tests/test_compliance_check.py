from datetime import datetime, timezone

from lifecycle.compliance import run_compliance_check
from lifecycle.phases import (
    ARRIVAL,
    BILLING,
    COMPLIANCE,
    DONE,
    IN_PROGRESS,
    INTAKE,
    MONITORING,
    PENDING,
    PHASE_ORDER,
)
from lifecycle.rules import INVALID_HS_CODE
from lifecycle.shipment import ShipmentRecord


def test_clean_shipment_advances_to_monitoring():
    shipment = ShipmentRecord(
        shipment_id="A",
        container_no="TEST1234567",
        shipper="ACME",
        consignee="Umbrella",
        hs_code="1234.56",
        eta=datetime.now(timezone.utc),
        port="Rotterdam",
    )

    result = run_compliance_check(shipment)

    assert result is shipment
    assert result.compliance_status == "ok"
    assert result.compliance_issues == []
    assert result.current_phase == MONITORING
    assert result.phase_progress[INTAKE] == DONE
    assert result.phase_progress[COMPLIANCE] == DONE
    assert result.phase_progress[MONITORING] == IN_PROGRESS


def test_only_container_stays_in_compliance_with_five_issues():
    shipment = run_compliance_check(ShipmentRecord(shipment_id="B", container_no="TEST7654321"))

    assert shipment.compliance_status == "issues"
    assert len(shipment.compliance_issues) == 5
    assert shipment.current_phase == COMPLIANCE
    assert shipment.phase_progress[COMPLIANCE] == IN_PROGRESS


def test_placeholder_hs_code_holds_in_compliance(make_record):
    shipment = run_compliance_check(make_record(hs_code="0000"))
    assert shipment.compliance_issues == [INVALID_HS_CODE]
    assert shipment.current_phase == COMPLIANCE


def test_second_check_on_compliant_shipment_is_noop(make_record):
    first = run_compliance_check(make_record()).clone()
    second = run_compliance_check(first.clone())
    assert second == first


def test_failing_recheck_moves_pointer_back_but_keeps_done_phases(make_record):
    shipment = run_compliance_check(make_record())
    shipment.phase_progress[MONITORING] = DONE
    shipment.phase_progress[ARRIVAL] = IN_PROGRESS
    shipment.current_phase = ARRIVAL

    shipment.consignee = None
    run_compliance_check(shipment)

    assert shipment.current_phase == COMPLIANCE
    assert shipment.compliance_status == "issues"
    assert shipment.phase_progress[COMPLIANCE] == DONE
    assert shipment.phase_progress[MONITORING] == DONE
    assert shipment.phase_progress[ARRIVAL] == IN_PROGRESS


def test_passing_recheck_resumes_at_first_unfinished_phase(make_record):
    shipment = run_compliance_check(make_record())
    shipment.phase_progress[MONITORING] = DONE
    shipment.phase_progress[ARRIVAL] = IN_PROGRESS
    shipment.current_phase = ARRIVAL
    shipment.consignee = None
    run_compliance_check(shipment)

    shipment.consignee = "Harbor Retail Inc"
    run_compliance_check(shipment)

    assert shipment.current_phase == ARRIVAL
    assert shipment.phase_progress[BILLING] == PENDING


def test_passing_check_past_compliance_does_not_move_pointer(make_record):
    shipment = run_compliance_check(make_record())
    shipment.phase_progress[MONITORING] = DONE
    shipment.phase_progress[ARRIVAL] = DONE
    shipment.phase_progress[BILLING] = IN_PROGRESS
    shipment.current_phase = BILLING

    run_compliance_check(shipment)

    assert shipment.current_phase == BILLING
    assert shipment.phase_progress[BILLING] == IN_PROGRESS


def test_issues_empty_iff_status_ok(make_record):
    records = [
        make_record(),
        make_record(hs_code="9999"),
        ShipmentRecord(shipment_id="x"),
        make_record(port="Tartus, Syria"),
    ]
    for record in records:
        run_compliance_check(record)
        assert (record.compliance_issues == []) == (record.compliance_status == "ok")


def test_partial_progress_map_is_normalized(make_record):
    shipment = make_record(phase_progress={"intake": "done", "bogus": "done"})
    run_compliance_check(shipment)
    assert tuple(shipment.phase_progress) == PHASE_ORDER
