"""Fold ledger entries into per-asset positions with realized/unrealized P&L."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping

from trade_ledger.engine.assets import AssetRegistry
from trade_ledger.models import Direction, EntryStatus, LedgerEntry, UNKNOWN_SYMBOL

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class Position:
    identity: str
    symbol: str
    entries: list[LedgerEntry] = field(default_factory=list)
    name: str | None = None
    contract_id: str | None = None
    image: str | None = None
    chain: str | None = None
    total_bought: Decimal = ZERO
    total_sold: Decimal = ZERO
    total_invested_usd: Decimal = ZERO
    total_returned_usd: Decimal = ZERO
    avg_buy_price: Decimal = ZERO
    avg_sell_price: Decimal = ZERO
    net_quantity: Decimal = ZERO
    realized_pnl_usd: Decimal = ZERO
    unrealized_pnl_usd: Decimal = ZERO
    unrealized_value_usd: Decimal = ZERO
    current_price: Decimal | None = None
    has_open_position: bool = False
    first_trade_at: datetime | None = None
    last_trade_at: datetime | None = None

    @property
    def open_cost_basis_usd(self) -> Decimal:
        if not self.has_open_position:
            return ZERO
        return self.avg_buy_price * self.net_quantity

    @property
    def total_pnl_usd(self) -> Decimal:
        return self.realized_pnl_usd + self.unrealized_pnl_usd


def resolve_usd_value(entry: LedgerEntry, registry: AssetRegistry) -> Decimal:
    """USD value of an entry using the best information stored on it."""

    if entry.total_value_usd is not None:
        return entry.total_value_usd
    if registry.is_stablecoin(entry.base_currency_symbol):
        return entry.unit_price * entry.quantity
    if entry.base_currency_usd_price is not None:
        return entry.total_value_base * entry.base_currency_usd_price
    return entry.total_value_base


class PositionAggregator:
    def __init__(self, registry: AssetRegistry) -> None:
        self._registry = registry

    def aggregate(
        self,
        entries: Iterable[LedgerEntry],
        live_prices: Mapping[str, Decimal] | None = None,
    ) -> list[Position]:
        groups: dict[str, list[LedgerEntry]] = defaultdict(list)
        for entry in entries:
            groups[entry.asset.identity].append(entry)

        positions = [self._fold(identity, group, live_prices or {}) for identity, group in groups.items()]
        positions.sort(key=lambda p: p.last_trade_at, reverse=True)
        return positions

    def _fold(self, identity: str, group: list[LedgerEntry], live_prices: Mapping[str, Decimal]) -> Position:
        group = sorted(group, key=lambda e: e.occurred_at)
        symbol = next((e.asset.symbol for e in group if not e.asset.is_unknown), UNKNOWN_SYMBOL)
        position = Position(
            identity=identity,
            symbol=symbol,
            entries=group,
            name=next((e.asset.name for e in group if e.asset.name), None),
            contract_id=next((e.asset.contract_id for e in group if e.asset.contract_id), None),
            image=next((e.asset.image for e in group if e.asset.image), None),
            chain=next((e.asset.chain for e in group if e.asset.chain), None),
            first_trade_at=group[0].occurred_at,
            last_trade_at=group[-1].occurred_at,
        )

        for entry in group:
            value = resolve_usd_value(entry, self._registry)
            if entry.direction is Direction.BUY:
                position.total_bought += entry.quantity
                position.total_invested_usd += value
            else:
                position.total_sold += entry.quantity
                position.total_returned_usd += value

        if position.total_bought > 0:
            position.avg_buy_price = position.total_invested_usd / position.total_bought
        if position.total_sold > 0:
            position.avg_sell_price = position.total_returned_usd / position.total_sold
        position.net_quantity = position.total_bought - position.total_sold

        all_closed = all(e.status is EntryStatus.CLOSED for e in group)
        position.has_open_position = position.net_quantity > 0 and not all_closed

        if position.total_sold > 0:
            if position.total_sold > position.total_bought:
                # Unverified path: history before the first tracked buy is missing.
                logger.warning(
                    "Sold %s exceeds bought %s for %s; realized P&L falls back to returned - invested",
                    position.total_sold,
                    position.total_bought,
                    position.symbol,
                )
                position.realized_pnl_usd = position.total_returned_usd - position.total_invested_usd
            else:
                cost_of_sold = position.avg_buy_price * position.total_sold
                position.realized_pnl_usd = position.total_returned_usd - cost_of_sold

        live = live_prices.get(identity)
        if live is None and position.symbol != UNKNOWN_SYMBOL:
            live = live_prices.get(position.symbol.upper())
        position.current_price = live
        if position.has_open_position and live is not None:
            position.unrealized_value_usd = live * position.net_quantity
            position.unrealized_pnl_usd = (live - position.avg_buy_price) * position.net_quantity
        return position


__all__ = ["Position", "PositionAggregator", "resolve_usd_value"]
