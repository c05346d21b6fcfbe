import pytest

from core import config as config_module
from lifecycle.policy import policy_from_settings


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()


def test_non_local_debug_mode_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "true")

    with pytest.raises(ValueError, match="debug=true"):
        config_module.get_settings()


def test_local_allows_debug(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("DEBUG", "true")

    assert config_module.get_settings().debug is True


def test_negative_risk_threshold_is_rejected(monkeypatch):
    monkeypatch.setenv("RISK_AT_RISK_THRESHOLD_HOURS", "-1")

    with pytest.raises(ValueError, match="non-negative"):
        config_module.get_settings()


def test_negative_completion_offset_is_rejected(monkeypatch):
    monkeypatch.setenv("METRICS_COMPLETION_OFFSET_SECONDS", "-15")

    with pytest.raises(ValueError, match="metrics_completion_offset_seconds"):
        config_module.get_settings()


def test_policy_reflects_environment(monkeypatch):
    monkeypatch.setenv("RISK_EARLY_THRESHOLD_HOURS", "4")
    monkeypatch.setenv("RISK_AT_RISK_THRESHOLD_HOURS", "24")
    monkeypatch.setenv("COMPLIANCE_WATCHLIST_PORTS", '["Iran", " Crimea "]')
    monkeypatch.setenv("COMPLIANCE_EXTENDED_RULES", "true")

    policy = policy_from_settings(config_module.get_settings())

    assert policy.risk.early_hours == 4.0
    assert policy.risk.at_risk_hours == 24.0
    assert policy.compliance.watchlist_ports == ("IRAN", "CRIMEA")
    assert policy.compliance.extended_rules is True
    assert policy.completion_offset_seconds == 15.0
