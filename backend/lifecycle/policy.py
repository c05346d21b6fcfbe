"""Tunable knobs for compliance, risk classification, and metrics."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_WATCHLIST_PORTS = ("IRAN", "NORTH KOREA", "SYRIA")

# Extended US-import rule set
HEAVY_CARGO_PORTS = ("LAX", "Long Beach", "Los Angeles", "LGB")
HEAVY_CARGO_LIMIT_KG = 25000
US_PORTS = ("LAX", "Long Beach", "Los Angeles", "LGB", "NYC", "New York", "Savannah", "Charleston", "Miami")
REQUIRED_DOCUMENTS = ("Bill of Lading", "Commercial Invoice")


@dataclass(frozen=True)
class RiskThresholds:
    early_hours: float = 6.0
    at_risk_hours: float = 12.0


@dataclass(frozen=True)
class CompliancePolicy:
    watchlist_ports: tuple[str, ...] = DEFAULT_WATCHLIST_PORTS
    extended_rules: bool = False


@dataclass(frozen=True)
class LifecyclePolicy:
    compliance: CompliancePolicy = field(default_factory=CompliancePolicy)
    risk: RiskThresholds = field(default_factory=RiskThresholds)
    # Demo-only stand-in for a real completion timestamp.
    completion_offset_seconds: float = 15.0


DEFAULT_POLICY = LifecyclePolicy()


def policy_from_settings(settings) -> LifecyclePolicy:
    return LifecyclePolicy(
        compliance=CompliancePolicy(
            watchlist_ports=tuple(p.strip().upper() for p in settings.compliance_watchlist_ports if p.strip()),
            extended_rules=settings.compliance_extended_rules,
        ),
        risk=RiskThresholds(
            early_hours=settings.risk_early_threshold_hours,
            at_risk_hours=settings.risk_at_risk_threshold_hours,
        ),
        completion_offset_seconds=settings.metrics_completion_offset_seconds,
    )
