from __future__ import annotations

from decimal import Decimal

import pytest

from builders import entry
from trade_ledger.config import BASE, SOLANA, LedgerSettings
from trade_ledger.models import Direction, LedgerInvariantError


def test_defaults_and_environment_overrides(monkeypatch):
    monkeypatch.setenv("SYNC_INTERVAL_SECONDS", "15")
    monkeypatch.setenv("HELIUS_API_KEY", "secret")

    settings = LedgerSettings(_env_file=None)

    assert settings.sync_interval_seconds == 15
    assert settings.max_pages_for(SOLANA) == 100
    assert settings.max_pages_for(BASE) == 10
    assert settings.max_pages_for("other") == 10
    assert settings.fallback_native_prices["SOL"] == Decimal("100")
    assert settings.dict_for_logging()["helius_api_key"] == "***"


def test_entry_validation_rejects_inconsistent_values():
    row = entry("TOKX", Direction.BUY, 1000, "2")
    row.validate()

    row.total_value_base = Decimal("2.5")
    with pytest.raises(LedgerInvariantError):
        row.validate()

    row = entry("TOKX", Direction.BUY, 1000, "2")
    row.quantity = Decimal("0")
    with pytest.raises(LedgerInvariantError):
        row.validate()


def test_unit_price_usd_is_derived():
    row = entry("TOKX", Direction.BUY, 1000, "2", rate="150")

    assert row.unit_price_usd == Decimal("0.3")
    assert row.asset.identity == "TOKX"
