"""Portfolio summary and report filtering tests."""

from __future__ import annotations

from decimal import Decimal

import pytest

from builders import TOKX_MINT, entry, ts
from trade_ledger.engine import PositionAggregator
from trade_ledger.models import Direction
from trade_ledger.providers import StaticPriceSource
from trade_ledger.services.reporting import build_portfolio_summary, load_positions, reportable_entries
from trade_ledger.services.repository import InMemoryLedgerRepository


def test_reportable_entries_drop_fees_base_assets_and_shadowed_legacy_rows(registry, settings):
    traced = entry("TOKX", Direction.BUY, 100, "1", origin_id="sig-1", when=ts(1))
    legacy = entry("TOKX", Direction.BUY, 50, "1", when=ts(2))
    fee = entry("ABC", Direction.BUY, 10, "0.95", base="USDC", rate="1")
    base_asset = entry("USDC", Direction.BUY, 10, "0.1")
    zero = entry("ZERO", Direction.BUY, 10, "0")

    kept = reportable_entries([traced, legacy, fee, base_asset, zero], registry, settings)

    assert kept == [traced]


def test_summary_totals_win_rate_and_monthly_pnl(registry, settings):
    settings = settings.model_copy(update={"initial_capital": Decimal("1000"), "wallet_balance": Decimal("900")})
    entries = [
        entry("WIN", Direction.BUY, 100, "100", base="USDC", rate="1", when=ts(1)),
        entry("WIN", Direction.SELL, 100, "150", base="USDC", rate="1", when=ts(2)),
        entry("LOSE", Direction.BUY, 100, "100", base="USDC", rate="1", when=ts(3)),
        entry("LOSE", Direction.SELL, 50, "20", base="USDC", rate="1", when=ts(4)),
    ]
    positions = PositionAggregator(registry).aggregate(entries, {"LOSE": Decimal("0.5")})

    summary = build_portfolio_summary(positions, registry, settings)

    assert summary.position_count == 2
    assert summary.open_position_count == 1
    assert summary.trade_count == 4
    assert summary.total_realized_pnl_usd == Decimal("20")
    assert summary.win_rate == Decimal("50")
    assert summary.best_position.symbol == "WIN"
    assert summary.worst_position.symbol == "LOSE"
    assert summary.monthly_realized_pnl_usd == {"2024-05": Decimal("20")}
    assert summary.open_positions_value_usd == Decimal("25")
    assert summary.portfolio_pnl_usd == Decimal("-75")


@pytest.mark.asyncio
async def test_load_positions_quotes_live_prices(registry, settings):
    repository = InMemoryLedgerRepository(
        [entry("TOKX", Direction.BUY, 1000, "100", base="USDC", rate="1", contract_id=TOKX_MINT)]
    )
    prices = StaticPriceSource(tokens={TOKX_MINT: "0.25"})

    [position] = await load_positions(repository, registry, settings, prices)

    assert position.current_price == Decimal("0.25")
    assert position.unrealized_pnl_usd == Decimal("150")
