"""Convert a classified leg into base-currency and USD values."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Mapping

from trade_ledger.engine.assets import AssetRegistry
from trade_ledger.engine.classifier import Classification
from trade_ledger.models import (
    AssetAmount,
    AssetRef,
    Direction,
    EntryStatus,
    LedgerEntry,
)

logger = logging.getLogger(__name__)

UNRESOLVED_NOTE = "usd conversion unresolved"


@dataclass(frozen=True)
class ValuedTrade:
    direction: Direction
    trade_asset: AssetAmount
    base_asset: AssetAmount
    quantity: Decimal
    total_value_base: Decimal
    unit_price: Decimal
    base_currency_symbol: str
    base_currency_usd_price: Decimal | None
    total_value_usd: Decimal | None
    notes: str | None = None

    @property
    def unit_price_usd(self) -> Decimal | None:
        if self.total_value_usd is None:
            return None
        return self.total_value_usd / self.quantity


class CurrencyNormalizer:
    def __init__(self, registry: AssetRegistry) -> None:
        self._registry = registry

    def value(self, classification: Classification, native_prices: Mapping[str, Decimal]) -> ValuedTrade:
        if classification.direction is None:
            raise ValueError(f"cannot value unclassified leg {classification.leg.origin_id}")
        trade = classification.trade_asset
        base = classification.base_asset
        base_symbol = self._canonical_base_symbol(base)
        rate = self._registry.usd_rate(base_symbol, native_prices)

        quantity = trade.amount
        total_base = base.amount
        unit_price = total_base / quantity
        notes = None
        total_usd = None
        if rate is None:
            notes = UNRESOLVED_NOTE
            logger.warning(
                "No USD price for %s on %s; keeping native-denominated values",
                base_symbol,
                classification.leg.origin_id,
            )
        else:
            total_usd = total_base * rate
        return ValuedTrade(
            direction=classification.direction,
            trade_asset=trade,
            base_asset=base,
            quantity=quantity,
            total_value_base=total_base,
            unit_price=unit_price,
            base_currency_symbol=base_symbol,
            base_currency_usd_price=rate,
            total_value_usd=total_usd,
            notes=notes,
        )

    def to_entry(
        self,
        trade: ValuedTrade,
        *,
        origin_id: str | None,
        occurred_at: datetime,
        chain: str | None = None,
        venue: str | None = None,
    ) -> LedgerEntry:
        asset = AssetRef(
            symbol=trade.trade_asset.symbol,
            contract_id=trade.trade_asset.contract_id,
            name=trade.trade_asset.name,
            chain=chain,
        )
        return LedgerEntry(
            asset=asset,
            direction=trade.direction,
            unit_price=trade.unit_price,
            quantity=trade.quantity,
            base_currency_symbol=trade.base_currency_symbol,
            base_currency_usd_price=trade.base_currency_usd_price,
            total_value_base=trade.total_value_base,
            total_value_usd=trade.total_value_usd,
            occurred_at=occurred_at,
            origin_id=origin_id,
            status=EntryStatus.OPEN if trade.direction is Direction.BUY else EntryStatus.CLOSED,
            venue=venue,
            notes=trade.notes,
        )

    def revalue(self, entry: LedgerEntry, native_prices: Mapping[str, Decimal]) -> LedgerEntry | None:
        """Recompute the USD fields of ``entry``; None when nothing changes."""

        rate = self._registry.usd_rate(entry.base_currency_symbol, native_prices)
        if rate is None:
            return None
        total_usd = entry.total_value_base * rate
        if entry.base_currency_usd_price == rate and entry.total_value_usd == total_usd:
            return None
        notes = None if entry.notes == UNRESOLVED_NOTE else entry.notes
        return replace(entry, base_currency_usd_price=rate, total_value_usd=total_usd, notes=notes)

    def _canonical_base_symbol(self, base: AssetAmount) -> str:
        known = self._registry.base_symbol_for_contract(base.contract_id)
        if known and not self._registry.is_base(base.symbol):
            return known
        return base.symbol


__all__ = ["CurrencyNormalizer", "UNRESOLVED_NOTE", "ValuedTrade"]
