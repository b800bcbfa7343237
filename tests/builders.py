"""Shared constructors for events and ledger entries used across the suite."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

from trade_ledger.config import SOLANA
from trade_ledger.models import (
    AssetRef,
    Direction,
    EntryStatus,
    LedgerEntry,
    NativeTransfer,
    RawEvent,
    SwapSummary,
    SwapToken,
    TokenTransfer,
)

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
POOL = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
TOKX_MINT = "ToKX1111111111111111111111111111111111111111"


def ts(day: int = 1, hour: int = 12, minute: int = 0) -> datetime:
    return datetime(2024, 5, day, hour, minute, tzinfo=timezone.utc)


def token(symbol: str | None, amount, asset_id: str | None = None, name: str | None = None) -> SwapToken:
    return SwapToken(asset_id=asset_id, symbol=symbol, amount=Decimal(str(amount)), name=name)


def transfer(symbol: str | None, amount, sender: str, receiver: str, asset_id: str | None = None) -> TokenTransfer:
    return TokenTransfer(
        asset_id=asset_id,
        symbol=symbol,
        amount=Decimal(str(amount)),
        sender=sender,
        receiver=receiver,
    )


def native(amount, sender: str = WALLET, receiver: str = POOL) -> NativeTransfer:
    return NativeTransfer(sender=sender, receiver=receiver, amount=Decimal(str(amount)))


def swap_event(
    origin_id: str,
    *,
    native_input=None,
    native_output=None,
    token_inputs: tuple[SwapToken, ...] = (),
    token_outputs: tuple[SwapToken, ...] = (),
    inner_swaps=(),
    token_transfers: tuple[TokenTransfer, ...] = (),
    description: str | None = None,
    when: datetime | None = None,
    chain: str = SOLANA,
) -> RawEvent:
    return RawEvent(
        origin_id=origin_id,
        chain=chain,
        timestamp=when or ts(),
        kind="SWAP",
        description=description,
        token_transfers=token_transfers,
        swap=SwapSummary(
            native_input=Decimal(str(native_input)) if native_input is not None else None,
            native_output=Decimal(str(native_output)) if native_output is not None else None,
            token_inputs=token_inputs,
            token_outputs=token_outputs,
            inner_swaps=inner_swaps,
        ),
    )


def buy_tokx(origin_id: str, quantity, sol_spent, when: datetime | None = None) -> RawEvent:
    return swap_event(
        origin_id,
        native_input=sol_spent,
        token_outputs=(token("TOKX", quantity, TOKX_MINT),),
        when=when,
    )


def sell_tokx(origin_id: str, quantity, sol_received, when: datetime | None = None) -> RawEvent:
    return swap_event(
        origin_id,
        native_output=sol_received,
        token_inputs=(token("TOKX", quantity, TOKX_MINT),),
        when=when,
    )


def entry(
    symbol: str,
    direction: Direction,
    quantity,
    total_base,
    *,
    base: str = "SOL",
    rate="100",
    origin_id: str | None = None,
    contract_id: str | None = None,
    when: datetime | None = None,
    status: EntryStatus | None = None,
) -> LedgerEntry:
    quantity = Decimal(str(quantity))
    total_base = Decimal(str(total_base))
    usd_rate = Decimal(str(rate)) if rate is not None else None
    return LedgerEntry(
        asset=AssetRef(symbol=symbol, contract_id=contract_id, chain=SOLANA),
        direction=direction,
        unit_price=total_base / quantity,
        quantity=quantity,
        base_currency_symbol=base,
        total_value_base=total_base,
        base_currency_usd_price=usd_rate,
        total_value_usd=total_base * usd_rate if usd_rate is not None else None,
        occurred_at=when or ts(),
        origin_id=origin_id,
        status=status or (EntryStatus.OPEN if direction is Direction.BUY else EntryStatus.CLOSED),
    )


class StubResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class StubClient:
    """Stands in for ``httpx.AsyncClient``; ``handler`` answers each request."""

    def __init__(self, handler: Callable[[str, str, dict[str, Any]], StubResponse]) -> None:
        self.handler = handler
        self.calls: list[dict[str, Any]] = []

    async def request(self, method: str, url: str, *, params=None, json=None, headers=None, timeout=None):
        call = {"method": method, "url": url, "params": params, "json": json, "headers": headers}
        self.calls.append(call)
        return self.handler(method, url, call)

    async def aclose(self) -> None:  # pragma: no cover - included for interface completeness
        return None


def blockscout_item(tx_hash: str, symbol: str, value: str, sender: str, receiver: str, address: str) -> dict:
    return {
        "transaction_hash": tx_hash,
        "timestamp": "2024-05-01T12:00:00.000000Z",
        "method": "execute",
        "from": {"hash": sender},
        "to": {"hash": receiver},
        "token": {"address": address, "symbol": symbol, "decimals": "18"},
        "total": {"value": value, "decimals": "18"},
    }
