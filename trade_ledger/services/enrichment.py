"""Fill placeholder token symbols and trade-time market caps from metadata sources."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from trade_ledger.models import AssetRef, LedgerEntry
from trade_ledger.providers.errors import ProviderError
from trade_ledger.providers.feeds import MetadataSource, TokenMetadata
from trade_ledger.services.repository import LedgerRepository

logger = logging.getLogger(__name__)


def _merged_asset(asset: AssetRef, meta: TokenMetadata) -> AssetRef:
    return AssetRef(
        symbol=meta.symbol if asset.is_unknown and meta.symbol else asset.symbol,
        contract_id=asset.contract_id,
        name=asset.name or meta.name,
        image=asset.image or meta.image,
        chain=asset.chain,
    )


class TokenEnricher:
    def __init__(self, source: MetadataSource | None) -> None:
        self._source = source

    async def _lookup(self, contract_ids: Iterable[str]) -> dict[str, TokenMetadata]:
        ids = list(dict.fromkeys(c for c in contract_ids if c))
        if self._source is None or not ids:
            return {}
        try:
            return await self._source.lookup(ids)
        except ProviderError:
            logger.warning("Token metadata lookup failed for %d contracts", len(ids), exc_info=True)
            return {}

    async def enrich_candidates(self, entries: list[LedgerEntry]) -> list[LedgerEntry]:
        """Return ``entries`` with metadata applied; inputs are left untouched."""

        metadata = await self._lookup(e.asset.contract_id for e in entries if e.asset.contract_id)
        if not metadata:
            return entries
        enriched = []
        for entry in entries:
            meta = metadata.get(entry.asset.contract_id or "")
            if meta is None:
                enriched.append(entry)
                continue
            enriched.append(
                replace(
                    entry,
                    asset=_merged_asset(entry.asset, meta),
                    market_cap_at_trade=entry.market_cap_at_trade or meta.market_cap,
                )
            )
        return enriched

    async def enrich_existing(self, repository: LedgerRepository) -> int:
        """Patch stored entries still labelled Unknown; returns the number updated."""

        unknown = [e for e in await repository.list() if e.asset.is_unknown and e.asset.contract_id]
        if not unknown:
            return 0
        metadata = await self._lookup(e.asset.contract_id for e in unknown)
        updated = 0
        for entry in unknown:
            meta = metadata.get(entry.asset.contract_id or "")
            if meta is None or not meta.symbol:
                continue
            await repository.patch(entry.id, {"asset": _merged_asset(entry.asset, meta)})
            updated += 1
        if updated:
            logger.info("Resolved symbols for %d stored entries", updated)
        return updated


__all__ = ["TokenEnricher"]
