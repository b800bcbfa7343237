"""Domain records for indexer events, classified legs and ledger entries.

Everything here is a plain dataclass with no persistence coupling so the
engine can be exercised without a database. Monetary values are ``Decimal``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

UNKNOWN_SYMBOL = "Unknown"


class Direction(str, Enum):
    BUY = "buy"
    SELL = "sell"


class EntryStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class LedgerInvariantError(ValueError):
    """Raised when a ledger entry violates its value invariants."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenTransfer:
    asset_id: str | None
    symbol: str | None
    amount: Decimal
    sender: str | None = None
    receiver: str | None = None
    name: str | None = None
    decimals: int | None = None


@dataclass(frozen=True)
class NativeTransfer:
    sender: str | None
    receiver: str | None
    amount: Decimal


@dataclass(frozen=True)
class SwapToken:
    asset_id: str | None
    symbol: str | None
    amount: Decimal
    name: str | None = None
    decimals: int | None = None


@dataclass(frozen=True)
class SwapSummary:
    """Decoded swap as reported by the indexer."""

    native_input: Decimal | None = None
    native_output: Decimal | None = None
    token_inputs: tuple[SwapToken, ...] = ()
    token_outputs: tuple[SwapToken, ...] = ()
    inner_swaps: tuple[tuple[tuple[SwapToken, ...], tuple[SwapToken, ...]], ...] = ()
    venue: str | None = None


@dataclass(frozen=True)
class RawEvent:
    """Indexer record for one on-chain transaction. Never mutated."""

    origin_id: str
    chain: str
    timestamp: datetime
    kind: str = "UNKNOWN"
    description: str | None = None
    native_transfers: tuple[NativeTransfer, ...] = ()
    token_transfers: tuple[TokenTransfer, ...] = ()
    swap: SwapSummary | None = None
    fee: Decimal = Decimal("0")
    venue: str | None = None
    method: str | None = None
    internal_transfers: tuple[TokenTransfer, ...] = ()
    decoded_params: Mapping[str, str] = field(default_factory=dict)
    # False when the transaction detail could not be loaded.
    complete: bool = True


@dataclass(frozen=True)
class AssetAmount:
    symbol: str
    amount: Decimal
    contract_id: str | None = None
    name: str | None = None
    decimals: int | None = None

    @property
    def is_unknown(self) -> bool:
        return not self.symbol or self.symbol == UNKNOWN_SYMBOL


@dataclass(frozen=True)
class RawLeg:
    """What the wallet received (``incoming``) and sent (``outgoing``).

    ``observed`` is False when only the pair of traded assets is known and
    the orientation has to be decided from counterparty addresses.
    """

    incoming: AssetAmount
    outgoing: AssetAmount
    event: RawEvent
    wallet: str
    transfers: tuple[TokenTransfer, ...] = ()
    observed: bool = True

    @property
    def origin_id(self) -> str:
        return self.event.origin_id


@dataclass(frozen=True)
class AssetRef:
    symbol: str
    contract_id: str | None = None
    name: str | None = None
    image: str | None = None
    chain: str | None = None

    @property
    def identity(self) -> str:
        return asset_identity(self.symbol, self.contract_id)

    @property
    def is_unknown(self) -> bool:
        return not self.symbol or self.symbol == UNKNOWN_SYMBOL


def asset_identity(symbol: str | None, contract_id: str | None) -> str:
    """Grouping key: lower-cased contract id, else upper-cased symbol."""

    if contract_id:
        return contract_id.lower()
    return (symbol or UNKNOWN_SYMBOL).upper()


@dataclass
class LedgerEntry:
    asset: AssetRef
    direction: Direction
    unit_price: Decimal
    quantity: Decimal
    base_currency_symbol: str
    total_value_base: Decimal
    occurred_at: datetime
    origin_id: str | None = None
    base_currency_usd_price: Decimal | None = None
    total_value_usd: Decimal | None = None
    status: EntryStatus = EntryStatus.OPEN
    venue: str | None = None
    market_cap_at_trade: Decimal | None = None
    notes: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def unit_price_usd(self) -> Decimal | None:
        if self.total_value_usd is None or not self.quantity:
            return None
        return self.total_value_usd / self.quantity

    def validate(self, tolerance: Decimal = Decimal("0.000001")) -> None:
        """Raise ``LedgerInvariantError`` when the stored values disagree."""

        if self.quantity <= 0:
            raise LedgerInvariantError(f"quantity must be positive for {self.origin_id or self.id}")
        if self.total_value_base < 0 or self.unit_price < 0:
            raise LedgerInvariantError(f"negative value on {self.origin_id or self.id}")
        expected = self.unit_price * self.quantity
        scale = max(abs(self.total_value_base), abs(expected), Decimal("1"))
        if abs(self.total_value_base - expected) > tolerance * scale:
            raise LedgerInvariantError(
                f"total_value_base {self.total_value_base} != unit_price x quantity {expected} "
                f"on {self.origin_id or self.id}"
            )

    def with_changes(self, changes: Mapping[str, Any]) -> LedgerEntry:
        updated = replace(self, **dict(changes))
        updated.updated_at = _utcnow()
        return updated


@dataclass(frozen=True)
class SyncCursor:
    address: str
    chain: str
    last_seen_origin_id: str | None = None


@dataclass(frozen=True)
class WatchedWallet:
    address: str
    chain: str
    label: str | None = None


__all__ = [
    "AssetAmount",
    "AssetRef",
    "Direction",
    "EntryStatus",
    "LedgerEntry",
    "LedgerInvariantError",
    "NativeTransfer",
    "RawEvent",
    "RawLeg",
    "SwapSummary",
    "SwapToken",
    "SyncCursor",
    "TokenTransfer",
    "UNKNOWN_SYMBOL",
    "WatchedWallet",
    "asset_identity",
]
