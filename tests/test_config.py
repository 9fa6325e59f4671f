import pydantic
import pytest

from tripsplit.config import Settings, get_settings
from tripsplit.models import (
    AllocationRule,
    CarryOverPolicy,
    RemainderStrategy,
    RoundingConfig,
    RoundingMode,
    SettlementAlgorithm,
)


def test_defaults(monkeypatch):
    for name in ("ROUNDING_MODE", "REMAINDER_STRATEGY", "DEFAULT_CURRENCY", "CARRY_OVER", "ALGORITHM"):
        monkeypatch.delenv(f"TRIPSPLIT_{name}", raising=False)

    settings = get_settings()

    assert settings.default_currency == "USD"
    assert settings.carry_over_policy is CarryOverPolicy.PAIR
    assert settings.settlement_algorithm is SettlementAlgorithm.GREEDY
    assert settings.rounding_config() == RoundingConfig()
    assert settings.allocation_rule() == AllocationRule()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TRIPSPLIT_ROUNDING_MODE", "bankers")
    monkeypatch.setenv("TRIPSPLIT_REMAINDER_STRATEGY", "First-Listed")
    monkeypatch.setenv("TRIPSPLIT_DEFAULT_CURRENCY", " vnd ")
    monkeypatch.setenv("TRIPSPLIT_ALGORITHM", "pairwise")
    monkeypatch.setenv("TRIPSPLIT_CARRY_OVER", "pair-and-amount")

    settings = get_settings()

    assert settings.rounding_mode is RoundingMode.HALF_EVEN
    assert settings.remainder_strategy is RemainderStrategy.FIRST_LISTED
    assert settings.default_currency == "VND"
    assert settings.settlement_algorithm is SettlementAlgorithm.PAIRS
    assert settings.carry_over_policy is CarryOverPolicy.PAIR_AND_AMOUNT
    assert settings.rounding_config() == RoundingConfig(RoundingMode.HALF_EVEN, RemainderStrategy.FIRST_LISTED)


@pytest.mark.parametrize(
    "name, value",
    [
        ("TRIPSPLIT_ROUNDING_MODE", "sideways"),
        ("TRIPSPLIT_DEFAULT_CURRENCY", "dollars"),
        ("TRIPSPLIT_PERCENT_BASE", "post_tax"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(pydantic.ValidationError):
        Settings()
