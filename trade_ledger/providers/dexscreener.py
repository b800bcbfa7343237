"""DexScreener quotes: native spot prices, token prices, metadata and market caps."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

import httpx

from trade_ledger.config import LedgerSettings
from trade_ledger.providers.errors import PriceSourceError
from trade_ledger.providers.feeds import TokenMetadata
from trade_ledger.providers.http import JsonClient

logger = logging.getLogger(__name__)


def _decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _liquidity(pair: dict[str, Any]) -> Decimal:
    return _decimal((pair.get("liquidity") or {}).get("usd")) or Decimal("0")


def best_pairs(pairs: Iterable[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Highest-liquidity pair per base token address (lower-cased)."""

    best: dict[str, dict[str, Any]] = {}
    for pair in pairs:
        address = ((pair.get("baseToken") or {}).get("address") or "").lower()
        if not address:
            continue
        current = best.get(address)
        if current is None or _liquidity(pair) > _liquidity(current):
            best[address] = pair
    return best


class DexScreenerClient(JsonClient):
    error_cls = PriceSourceError

    def __init__(
        self,
        *,
        base_url: str = "https://api.dexscreener.com",
        native_contracts: Mapping[str, str] | None = None,
        batch_size: int = 30,
        batch_delay_seconds: float = 0.5,
        timeout: float = 20.0,
        client: httpx.AsyncClient | Any | None = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, client=client)
        self._native_contracts = dict(native_contracts or {})
        self._batch_size = batch_size
        self._batch_delay = batch_delay_seconds

    @classmethod
    def from_settings(cls, settings: LedgerSettings, client: httpx.AsyncClient | None = None) -> DexScreenerClient:
        return cls(
            base_url=settings.dexscreener_base_url,
            native_contracts=settings.native_price_contracts,
            batch_size=settings.metadata_batch_size,
            batch_delay_seconds=settings.metadata_batch_delay_seconds,
            timeout=settings.http_timeout_seconds,
            client=client,
        )

    async def pairs(self, contract_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Best pair per requested contract, fetched in rate-limited batches."""

        ids = list(dict.fromkeys(contract_ids))
        found: dict[str, dict[str, Any]] = {}
        for start in range(0, len(ids), self._batch_size):
            if start and self._batch_delay:
                await asyncio.sleep(self._batch_delay)
            batch = ids[start:start + self._batch_size]
            payload = await self._request("GET", f"/latest/dex/tokens/{','.join(batch)}")
            found.update(best_pairs((payload or {}).get("pairs") or []))
        return found

    async def native_prices(self) -> dict[str, Decimal]:
        if not self._native_contracts:
            return {}
        by_contract = await self.pairs(self._native_contracts.values())
        prices: dict[str, Decimal] = {}
        for symbol, contract in self._native_contracts.items():
            pair = by_contract.get(contract.lower())
            price = _decimal(pair.get("priceUsd")) if pair else None
            if price is not None and price > 0:
                prices[symbol.upper()] = price
        return prices

    async def token_prices(self, contract_ids: Iterable[str]) -> dict[str, Decimal]:
        by_contract = await self.pairs(contract_ids)
        prices: dict[str, Decimal] = {}
        for address, pair in by_contract.items():
            price = _decimal(pair.get("priceUsd"))
            if price is not None:
                prices[address] = price
        return prices

    async def lookup(self, contract_ids: Iterable[str]) -> dict[str, TokenMetadata]:
        requested = list(dict.fromkeys(contract_ids))
        by_contract = await self.pairs(requested)
        result: dict[str, TokenMetadata] = {}
        for cid in requested:
            pair = by_contract.get(cid.lower())
            if pair is None:
                continue
            base_token = pair.get("baseToken") or {}
            result[cid] = TokenMetadata(
                contract_id=cid,
                symbol=base_token.get("symbol") or None,
                name=base_token.get("name") or None,
                image=(pair.get("info") or {}).get("imageUrl"),
                price_usd=_decimal(pair.get("priceUsd")),
                market_cap=_decimal(pair.get("marketCap")) or _decimal(pair.get("fdv")),
            )
        return result


__all__ = ["DexScreenerClient", "best_pairs"]
