"""Interfaces the sync coordinator uses to reach external data."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping, Protocol

from trade_ledger.models import RawEvent


@dataclass
class EventPage:
    """One page of events, newest first, plus the cursor for the next page."""

    events: list[RawEvent] = field(default_factory=list)
    next_cursor: Any | None = None


@dataclass(frozen=True)
class TokenMetadata:
    contract_id: str
    symbol: str | None = None
    name: str | None = None
    image: str | None = None
    price_usd: Decimal | None = None
    market_cap: Decimal | None = None


class EventFeed(Protocol):
    """Paged access to an address's transaction history."""

    async def fetch_page(self, address: str, cursor: Any | None = None) -> EventPage:
        ...


class MetadataSource(Protocol):
    async def lookup(self, contract_ids: Iterable[str]) -> dict[str, TokenMetadata]:
        ...


class PriceSource(Protocol):
    async def native_prices(self) -> dict[str, Decimal]:
        ...

    async def token_prices(self, contract_ids: Iterable[str]) -> dict[str, Decimal]:
        ...


class StaticPriceSource:
    """Fixed prices for tests and offline use."""

    def __init__(
        self,
        native: Mapping[str, Decimal | str | float] | None = None,
        tokens: Mapping[str, Decimal | str | float] | None = None,
    ) -> None:
        self._native = {k.upper(): Decimal(str(v)) for k, v in (native or {}).items()}
        self._tokens = {k.lower(): Decimal(str(v)) for k, v in (tokens or {}).items()}

    async def native_prices(self) -> dict[str, Decimal]:
        return dict(self._native)

    async def token_prices(self, contract_ids: Iterable[str]) -> dict[str, Decimal]:
        return {cid.lower(): self._tokens[cid.lower()] for cid in contract_ids if cid.lower() in self._tokens}


class CompositeMetadataSource:
    """Ask each source in turn for the ids the previous ones could not resolve."""

    def __init__(self, *sources: MetadataSource) -> None:
        self._sources = sources

    async def lookup(self, contract_ids: Iterable[str]) -> dict[str, TokenMetadata]:
        remaining = list(dict.fromkeys(contract_ids))
        found: dict[str, TokenMetadata] = {}
        for source in self._sources:
            if not remaining:
                break
            result = await source.lookup(remaining)
            for cid, meta in result.items():
                if meta.symbol:
                    found[cid] = meta
            remaining = [cid for cid in remaining if cid not in found]
        return found


__all__ = [
    "CompositeMetadataSource",
    "EventFeed",
    "EventPage",
    "MetadataSource",
    "PriceSource",
    "StaticPriceSource",
    "TokenMetadata",
]
