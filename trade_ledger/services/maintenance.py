"""Housekeeping passes over the stored ledger."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from trade_ledger.engine.currency import CurrencyNormalizer
from trade_ledger.services.repository import LedgerRepository

logger = logging.getLogger(__name__)


async def remove_duplicates(repository: LedgerRepository, quantity_places: int = 2) -> int:
    """Delete repeated entries, keeping the oldest row of each group.

    Rows are duplicates when they share an origin id, or when they share
    symbol, direction, quantity (rounded) and trade date.
    """

    entries = sorted(await repository.list(), key=lambda e: e.created_at)
    step = Decimal(1).scaleb(-quantity_places)
    seen_origins: set[str] = set()
    seen_keys: set[tuple[str, str, Decimal, str]] = set()
    removed = 0
    for entry in entries:
        key = (
            entry.asset.symbol.upper(),
            entry.direction.value,
            entry.quantity.quantize(step, rounding=ROUND_HALF_UP),
            entry.occurred_at.date().isoformat(),
        )
        duplicate = (entry.origin_id is not None and entry.origin_id in seen_origins) or key in seen_keys
        if duplicate:
            await repository.delete(entry.id)
            removed += 1
            continue
        if entry.origin_id:
            seen_origins.add(entry.origin_id)
        seen_keys.add(key)
    logger.info("Removed %d duplicate ledger entries", removed)
    return removed


async def recalculate_usd_values(
    repository: LedgerRepository,
    normalizer: CurrencyNormalizer,
    native_prices: Mapping[str, Decimal],
) -> int:
    """Re-derive USD fields from ``native_prices``; stablecoin bases stay 1:1."""

    updated = 0
    for entry in await repository.list():
        revalued = normalizer.revalue(entry, native_prices)
        if revalued is None:
            continue
        await repository.patch(
            entry.id,
            {
                "base_currency_usd_price": revalued.base_currency_usd_price,
                "total_value_usd": revalued.total_value_usd,
                "notes": revalued.notes,
            },
        )
        updated += 1
    logger.info("Recalculated USD values on %d ledger entries", updated)
    return updated


__all__ = ["recalculate_usd_values", "remove_duplicates"]
