"""Portfolio-level reporting built on top of position aggregation."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Sequence

from trade_ledger.config import LedgerSettings
from trade_ledger.engine.assets import AssetRegistry
from trade_ledger.engine.positions import Position, PositionAggregator, resolve_usd_value
from trade_ledger.models import Direction, LedgerEntry
from trade_ledger.providers.errors import ProviderError
from trade_ledger.providers.feeds import PriceSource
from trade_ledger.services.repository import LedgerRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class PositionHighlight:
    symbol: str
    identity: str
    pnl_usd: Decimal


@dataclass
class PortfolioSummary:
    position_count: int = 0
    open_position_count: int = 0
    trade_count: int = 0
    total_invested_usd: Decimal = ZERO
    total_returned_usd: Decimal = ZERO
    total_realized_pnl_usd: Decimal = ZERO
    total_unrealized_pnl_usd: Decimal = ZERO
    open_positions_value_usd: Decimal = ZERO
    open_cost_basis_usd: Decimal = ZERO
    win_rate: Decimal | None = None
    best_position: PositionHighlight | None = None
    worst_position: PositionHighlight | None = None
    monthly_realized_pnl_usd: dict[str, Decimal] = field(default_factory=dict)
    portfolio_pnl_usd: Decimal | None = None


def reportable_entries(
    entries: Iterable[LedgerEntry],
    registry: AssetRegistry,
    settings: LedgerSettings,
) -> list[LedgerEntry]:
    """Drop rows that should not count towards positions."""

    rows = list(entries)
    traced = {e.asset.identity for e in rows if e.origin_id}
    kept = []
    for entry in rows:
        if registry.is_base(entry.asset.symbol, entry.asset.contract_id):
            continue
        if entry.total_value_base == 0 and entry.unit_price == 0:
            continue
        if registry.is_stablecoin(entry.base_currency_symbol) and (
            abs(entry.total_value_base - settings.platform_fee_usd) <= settings.platform_fee_tolerance
        ):
            continue
        if not entry.origin_id and entry.asset.identity in traced:
            continue
        kept.append(entry)
    return kept


def _monthly_realized(positions: Sequence[Position], registry: AssetRegistry) -> dict[str, Decimal]:
    monthly: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for position in positions:
        for entry in position.entries:
            if entry.direction is not Direction.SELL:
                continue
            pnl = resolve_usd_value(entry, registry) - position.avg_buy_price * entry.quantity
            monthly[entry.occurred_at.strftime("%Y-%m")] += pnl
    return dict(sorted(monthly.items()))


def build_portfolio_summary(
    positions: Sequence[Position],
    registry: AssetRegistry,
    settings: LedgerSettings,
) -> PortfolioSummary:
    summary = PortfolioSummary(position_count=len(positions))
    for position in positions:
        summary.trade_count += len(position.entries)
        summary.total_invested_usd += position.total_invested_usd
        summary.total_returned_usd += position.total_returned_usd
        summary.total_realized_pnl_usd += position.realized_pnl_usd
        summary.total_unrealized_pnl_usd += position.unrealized_pnl_usd
        if position.has_open_position:
            summary.open_position_count += 1
            summary.open_positions_value_usd += position.unrealized_value_usd
            summary.open_cost_basis_usd += position.open_cost_basis_usd

    traded = [p for p in positions if p.total_sold > 0]
    if traded:
        winners = sum(1 for p in traded if p.realized_pnl_usd > 0)
        summary.win_rate = Decimal(winners) / Decimal(len(traded)) * 100

    if positions:
        best = max(positions, key=lambda p: p.total_pnl_usd)
        worst = min(positions, key=lambda p: p.total_pnl_usd)
        summary.best_position = PositionHighlight(best.symbol, best.identity, best.total_pnl_usd)
        summary.worst_position = PositionHighlight(worst.symbol, worst.identity, worst.total_pnl_usd)

    summary.monthly_realized_pnl_usd = _monthly_realized(positions, registry)

    if settings.initial_capital is not None and settings.wallet_balance is not None:
        summary.portfolio_pnl_usd = (
            settings.wallet_balance + summary.open_positions_value_usd - settings.initial_capital
        )
    return summary


async def load_positions(
    repository: LedgerRepository,
    registry: AssetRegistry,
    settings: LedgerSettings,
    price_source: PriceSource | None = None,
) -> list[Position]:
    """Aggregate reportable entries, quoting live prices when a source is given."""

    entries = reportable_entries(await repository.list(), registry, settings)
    live_prices: dict[str, Decimal] = {}
    if price_source is not None:
        contracts = {e.asset.contract_id for e in entries if e.asset.contract_id}
        if contracts:
            try:
                live_prices = await price_source.token_prices(sorted(contracts))
            except ProviderError:
                logger.warning("Live price lookup failed; unrealized P&L left at zero", exc_info=True)
    return PositionAggregator(registry).aggregate(entries, live_prices)


__all__ = [
    "PortfolioSummary",
    "PositionHighlight",
    "build_portfolio_summary",
    "load_positions",
    "reportable_entries",
]
