"""
Compliance Rule Evaluator — pure checks over a shipment record.

Rules fire in a fixed order and each fires at most once, so the
violation list is deterministic. UI and tests match on the wording;
extend the list without rewording existing messages.

Base rules:
  1. container number present
  2. shipper present
  3. consignee present
  4. HS code or commodity description present
  5. some ETA (eta / arrival_date / promised_date) present
  6. discharge port or destination present
  7. route does not touch a watchlist port
  8. HS code is not a placeholder

Extended US-import rules (opt-in via CompliancePolicy.extended_rules):
  9. heavy cargo at LA/Long Beach needs manual clearance
  10. ISF filed for US imports
  11. Bill of Lading and Commercial Invoice on file
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from lifecycle.policy import (
    DEFAULT_POLICY,
    HEAVY_CARGO_LIMIT_KG,
    HEAVY_CARGO_PORTS,
    REQUIRED_DOCUMENTS,
    US_PORTS,
    CompliancePolicy,
)
from lifecycle.shipment import ShipmentRecord

MISSING_CONTAINER = "Missing container number"
MISSING_SHIPPER = "Missing shipper"
MISSING_CONSIGNEE = "Missing consignee"
MISSING_HS_OR_COMMODITY = "Missing HS code or commodity description"
MISSING_ETA = "Missing ETA"
MISSING_PORT = "Missing discharge port"
HIGH_RISK_PORT = "Route involves a high-risk port (manual review required)"
INVALID_HS_CODE = "HS code appears invalid or generic"
HEAVY_CARGO = "Heavy cargo (>25,000kg) – needs manual clearance"
MISSING_ISF = "Missing ISF filing (required for US imports)"

PLACEHOLDER_HS_CODES = {"0000", "9999"}

Rule = Callable[[ShipmentRecord, CompliancePolicy], "str | None"]


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _route_text(shipment: ShipmentRecord) -> list[str]:
    return [str(v).upper() for v in (shipment.port, shipment.destination) if not is_missing(v)]


def _port_matches(shipment: ShipmentRecord, ports: tuple[str, ...]) -> bool:
    port = str(shipment.port or "").upper()
    return bool(port) and any(p.upper() in port for p in ports)


# ─── Base rules ─────────────────────────────────────────────────────────────


def _container_rule(shipment, policy):
    return MISSING_CONTAINER if is_missing(shipment.container_no) else None


def _shipper_rule(shipment, policy):
    return MISSING_SHIPPER if is_missing(shipment.shipper) else None


def _consignee_rule(shipment, policy):
    return MISSING_CONSIGNEE if is_missing(shipment.consignee) else None


def _hs_or_commodity_rule(shipment, policy):
    if is_missing(shipment.hs_code) and is_missing(shipment.commodity):
        return MISSING_HS_OR_COMMODITY
    return None


def _eta_rule(shipment, policy):
    if all(is_missing(v) for v in (shipment.eta, shipment.arrival_date, shipment.promised_date)):
        return MISSING_ETA
    return None


def _port_rule(shipment, policy):
    if is_missing(shipment.port) and is_missing(shipment.destination):
        return MISSING_PORT
    return None


def _watchlist_rule(shipment, policy):
    for text in _route_text(shipment):
        if any(entry.upper() in text for entry in policy.watchlist_ports):
            return HIGH_RISK_PORT
    return None


def _hs_code_rule(shipment, policy):
    if is_missing(shipment.hs_code):
        return None
    code = str(shipment.hs_code).strip()
    if code in PLACEHOLDER_HS_CODES or len(code) < 4:
        return INVALID_HS_CODE
    return None


# ─── Extended US-import rules ───────────────────────────────────────────────


def _heavy_cargo_rule(shipment, policy):
    if _port_matches(shipment, HEAVY_CARGO_PORTS) and (shipment.weight_kg or 0) > HEAVY_CARGO_LIMIT_KG:
        return HEAVY_CARGO
    return None


def _isf_rule(shipment, policy):
    if not _port_matches(shipment, US_PORTS):
        return None
    if "ISF" in (shipment.documents or []) or shipment.isf_filed:
        return None
    return MISSING_ISF


def _documents_rule(shipment, policy):
    on_file = [doc.lower() for doc in (shipment.documents or [])]
    missing = [doc for doc in REQUIRED_DOCUMENTS if not any(doc.lower() in have for have in on_file)]
    if missing:
        return f"Missing documents: {', '.join(missing)}"
    return None


BASE_RULES: tuple[Rule, ...] = (
    _container_rule,
    _shipper_rule,
    _consignee_rule,
    _hs_or_commodity_rule,
    _eta_rule,
    _port_rule,
    _watchlist_rule,
    _hs_code_rule,
)

EXTENDED_RULES: tuple[Rule, ...] = (
    _heavy_cargo_rule,
    _isf_rule,
    _documents_rule,
)


def evaluate(shipment: ShipmentRecord, policy: CompliancePolicy = DEFAULT_POLICY.compliance) -> list[str]:
    """Return the ordered list of compliance violations for ``shipment``."""
    rules = BASE_RULES + EXTENDED_RULES if policy.extended_rules else BASE_RULES
    violations = []
    for rule in rules:
        violation = rule(shipment, policy)
        if violation:
            violations.append(violation)
    return violations
