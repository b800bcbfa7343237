"""Asset membership lookups shared by the classification engine."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from trade_ledger.config import LedgerSettings
from trade_ledger.models import AssetAmount


def _upper(values: Iterable[str]) -> frozenset[str]:
    return frozenset(v.upper() for v in values)


@dataclass(frozen=True)
class AssetRegistry:
    base_symbols: frozenset[str]
    stable_symbols: frozenset[str]
    native_symbols: Mapping[str, str]
    routing_symbols: frozenset[str]
    base_contracts: Mapping[str, str]
    wrapped_native_contracts: frozenset[str]
    chain_native_symbol: Mapping[str, str]

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> AssetRegistry:
        return cls(
            base_symbols=_upper(settings.base_currencies),
            stable_symbols=_upper(settings.stablecoins),
            native_symbols={k.upper(): v.upper() for k, v in settings.native_assets.items()},
            routing_symbols=_upper(settings.routing_tokens),
            base_contracts={k.lower(): v for k, v in settings.base_contracts.items()},
            wrapped_native_contracts=frozenset(c.lower() for c in settings.wrapped_native_contracts),
            chain_native_symbol=dict(settings.chain_native_symbol),
        )

    def is_base(self, symbol: str | None, contract_id: str | None = None) -> bool:
        if contract_id and contract_id.lower() in self.base_contracts:
            return True
        return bool(symbol) and symbol.upper() in self.base_symbols

    def is_base_amount(self, asset: AssetAmount) -> bool:
        return self.is_base(asset.symbol, asset.contract_id)

    def is_stablecoin(self, symbol: str | None) -> bool:
        return bool(symbol) and symbol.upper() in self.stable_symbols

    def is_native(self, symbol: str | None) -> bool:
        return bool(symbol) and symbol.upper() in self.native_symbols

    def is_routing(self, symbol: str | None) -> bool:
        return bool(symbol) and symbol.upper() in self.routing_symbols

    def is_wrapped_native(self, contract_id: str | None) -> bool:
        return bool(contract_id) and contract_id.lower() in self.wrapped_native_contracts

    def price_symbol(self, symbol: str) -> str | None:
        """Symbol whose USD spot price values ``symbol`` (e.g. WSOL -> SOL)."""

        return self.native_symbols.get(symbol.upper())

    def base_symbol_for_contract(self, contract_id: str | None) -> str | None:
        if not contract_id:
            return None
        return self.base_contracts.get(contract_id.lower())

    def native_symbol(self, chain: str) -> str:
        return self.chain_native_symbol.get(chain, "SOL")

    def usd_rate(self, symbol: str, native_prices: Mapping[str, Decimal]) -> Decimal | None:
        """USD value of one unit of a base currency, or None when unpriced."""

        if self.is_stablecoin(symbol):
            return Decimal("1")
        price_symbol = self.price_symbol(symbol)
        if price_symbol is None:
            return None
        return native_prices.get(price_symbol)


__all__ = ["AssetRegistry"]
