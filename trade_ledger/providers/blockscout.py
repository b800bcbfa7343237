"""Blockscout v2 client for Base wallets.

The address endpoint only lists transfers that touch the wallet. For trades
routed through a smart account the counter-asset never reaches the wallet, so
each transaction's full transfer list is fetched as well.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from trade_ledger.config import BASE, LedgerSettings
from trade_ledger.models import RawEvent, TokenTransfer
from trade_ledger.providers.errors import IndexerError
from trade_ledger.providers.feeds import EventPage
from trade_ledger.providers.http import JsonClient

logger = logging.getLogger(__name__)


def _hash_of(party: Any) -> str | None:
    if isinstance(party, dict):
        value = party.get("hash")
    else:
        value = party
    return value.lower() if isinstance(value, str) else None


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_transfer(item: dict[str, Any]) -> TokenTransfer:
    token = item.get("token") or {}
    total = item.get("total") or {}
    decimals_raw = total.get("decimals", token.get("decimals"))
    decimals = int(decimals_raw) if decimals_raw not in (None, "") else 18
    try:
        amount = Decimal(str(total.get("value") or "0")).scaleb(-decimals)
    except InvalidOperation:
        amount = Decimal("0")
    address = token.get("address") or token.get("address_hash")
    return TokenTransfer(
        asset_id=address.lower() if address else None,
        symbol=token.get("symbol") or None,
        name=token.get("name") or None,
        decimals=decimals,
        amount=amount,
        sender=_hash_of(item.get("from")),
        receiver=_hash_of(item.get("to")),
    )


def _tx_hash(item: dict[str, Any]) -> str | None:
    return item.get("transaction_hash") or item.get("tx_hash")


@dataclass(frozen=True)
class BlockscoutCursor:
    """Next-page parameters plus the transfers of a transaction cut off at the page end."""

    params: dict[str, Any]
    carry: tuple[dict[str, Any], ...] = ()


def decoded_parameters(detail: dict[str, Any]) -> dict[str, str]:
    decoded = detail.get("decoded_input") or {}
    params: dict[str, str] = {}
    for param in decoded.get("parameters") or []:
        name = param.get("name")
        value = param.get("value")
        if name and isinstance(value, str):
            params[name] = value.lower() if value.startswith("0x") else value
    return params


class BlockscoutClient(JsonClient):
    error_cls = IndexerError

    def __init__(
        self,
        *,
        base_url: str = "https://base.blockscout.com",
        detail_delay_seconds: float = 0.2,
        timeout: float = 20.0,
        client: httpx.AsyncClient | Any | None = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, client=client)
        self._detail_delay = detail_delay_seconds

    @classmethod
    def from_settings(cls, settings: LedgerSettings, client: httpx.AsyncClient | None = None) -> BlockscoutClient:
        return cls(
            base_url=settings.blockscout_base_url,
            detail_delay_seconds=settings.detail_request_delay_seconds,
            timeout=settings.http_timeout_seconds,
            client=client,
        )

    async def transaction(self, tx_hash: str) -> dict[str, Any]:
        payload = await self._request("GET", f"/api/v2/transactions/{tx_hash}")
        if not isinstance(payload, dict):
            raise IndexerError(f"unexpected transaction payload for {tx_hash}")
        return payload

    async def fetch_page(self, address: str, cursor: BlockscoutCursor | dict[str, Any] | None = None) -> EventPage:
        """Return one page of wallet transfers grouped into per-transaction events.

        The transfers of a transaction can straddle two pages, so the last
        group of a page that has a successor is carried into the next call.
        """

        if isinstance(cursor, dict):
            cursor = BlockscoutCursor(params=cursor)
        params: dict[str, Any] = {"type": "ERC-20"}
        carry: tuple[dict[str, Any], ...] = ()
        if cursor is not None:
            params.update(cursor.params)
            carry = cursor.carry
        payload = await self._request("GET", f"/api/v2/addresses/{address}/token-transfers", params=params)
        if not isinstance(payload, dict):
            raise IndexerError(f"unexpected token-transfers payload for {address}")

        grouped: OrderedDict[str, list[dict[str, Any]]] = OrderedDict()
        for item in (*carry, *(payload.get("items") or [])):
            tx_hash = _tx_hash(item)
            if tx_hash:
                grouped.setdefault(tx_hash, []).append(item)

        next_params = payload.get("next_page_params") or None
        next_cursor = None
        if next_params:
            held: tuple[dict[str, Any], ...] = ()
            if grouped:
                _, last_items = grouped.popitem(last=True)
                held = tuple(last_items)
            next_cursor = BlockscoutCursor(params=next_params, carry=held)

        events = []
        for tx_hash, items in grouped.items():
            events.append(await self._build_event(tx_hash, items))
        return EventPage(events=events, next_cursor=next_cursor)

    async def _build_event(self, tx_hash: str, items: list[dict[str, Any]]) -> RawEvent:
        internal: tuple[TokenTransfer, ...] = ()
        params: dict[str, str] = {}
        method = items[0].get("method")
        complete = True
        if self._detail_delay:
            await asyncio.sleep(self._detail_delay)
        try:
            detail = await self.transaction(tx_hash)
        except IndexerError:
            logger.warning("Could not load transaction detail for %s; it will be retried", tx_hash)
            complete = False
        else:
            internal = tuple(parse_transfer(t) for t in detail.get("token_transfers") or [])
            params = decoded_parameters(detail)
            method = method or detail.get("method")

        return RawEvent(
            origin_id=tx_hash,
            chain=BASE,
            timestamp=_parse_timestamp(items[0].get("timestamp")),
            kind="TRANSFER",
            token_transfers=tuple(parse_transfer(item) for item in items),
            method=method,
            internal_transfers=internal,
            decoded_params=params,
            complete=complete,
        )


__all__ = ["BlockscoutClient", "BlockscoutCursor", "decoded_parameters", "parse_transfer"]
