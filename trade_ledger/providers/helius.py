"""Helius enhanced-transactions client for Solana wallets."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import httpx

from trade_ledger.config import SOLANA, LedgerSettings
from trade_ledger.models import NativeTransfer, RawEvent, SwapSummary, SwapToken, TokenTransfer
from trade_ledger.providers.errors import IndexerError
from trade_ledger.providers.feeds import EventPage, TokenMetadata
from trade_ledger.providers.http import JsonClient

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = Decimal("1000000000")


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _token_amount(payload: dict[str, Any]) -> Decimal:
    raw = payload.get("rawTokenAmount")
    if isinstance(raw, dict) and raw.get("tokenAmount") is not None:
        decimals = int(raw.get("decimals") or 0)
        return _decimal(raw["tokenAmount"]).scaleb(-decimals)
    return _decimal(payload.get("tokenAmount"))


def _swap_token(payload: dict[str, Any]) -> SwapToken:
    raw = payload.get("rawTokenAmount") or {}
    decimals = raw.get("decimals") if isinstance(raw, dict) else None
    return SwapToken(
        asset_id=payload.get("mint"),
        symbol=payload.get("symbol") or None,
        name=payload.get("name") or None,
        amount=_token_amount(payload),
        decimals=int(decimals) if decimals is not None else None,
    )


def _native_amount(payload: dict[str, Any] | None) -> Decimal | None:
    if not payload or payload.get("amount") in (None, ""):
        return None
    return _decimal(payload["amount"]) / LAMPORTS_PER_SOL


def parse_transaction(payload: dict[str, Any]) -> RawEvent:
    """Build a ``RawEvent`` from one Helius enhanced transaction."""

    signature = payload.get("signature")
    if not signature:
        raise IndexerError("transaction without signature")

    swap_payload = (payload.get("events") or {}).get("swap")
    swap = None
    if swap_payload:
        inner = tuple(
            (
                tuple(_swap_token(t) for t in inner_swap.get("tokenInputs") or []),
                tuple(_swap_token(t) for t in inner_swap.get("tokenOutputs") or []),
            )
            for inner_swap in swap_payload.get("innerSwaps") or []
        )
        venue = None
        for inner_swap in swap_payload.get("innerSwaps") or []:
            venue = (inner_swap.get("programInfo") or {}).get("source") or venue
            if venue:
                break
        swap = SwapSummary(
            native_input=_native_amount(swap_payload.get("nativeInput")),
            native_output=_native_amount(swap_payload.get("nativeOutput")),
            token_inputs=tuple(_swap_token(t) for t in swap_payload.get("tokenInputs") or []),
            token_outputs=tuple(_swap_token(t) for t in swap_payload.get("tokenOutputs") or []),
            inner_swaps=inner,
            venue=venue,
        )

    token_transfers = tuple(
        TokenTransfer(
            asset_id=t.get("mint"),
            symbol=t.get("symbol") or None,
            name=t.get("name") or None,
            amount=_token_amount(t),
            sender=t.get("fromUserAccount"),
            receiver=t.get("toUserAccount"),
        )
        for t in payload.get("tokenTransfers") or []
    )
    native_transfers = tuple(
        NativeTransfer(
            sender=t.get("fromUserAccount"),
            receiver=t.get("toUserAccount"),
            amount=_decimal(t.get("amount")) / LAMPORTS_PER_SOL,
        )
        for t in payload.get("nativeTransfers") or []
    )
    timestamp = datetime.fromtimestamp(int(payload.get("timestamp") or 0), tz=timezone.utc)
    return RawEvent(
        origin_id=signature,
        chain=SOLANA,
        timestamp=timestamp,
        kind=payload.get("type") or "UNKNOWN",
        description=payload.get("description") or None,
        native_transfers=native_transfers,
        token_transfers=token_transfers,
        swap=swap,
        fee=_decimal(payload.get("fee")) / LAMPORTS_PER_SOL,
        venue=payload.get("source") or (swap.venue if swap else None),
    )


def _metadata_from(payload: dict[str, Any]) -> TokenMetadata | None:
    mint = payload.get("account")
    if not mint:
        return None
    on_chain = ((payload.get("onChainMetadata") or {}).get("metadata") or {}).get("data") or {}
    legacy = payload.get("legacyMetadata") or {}
    off_chain = (payload.get("offChainMetadata") or {}).get("metadata") or {}
    symbol = (on_chain.get("symbol") or legacy.get("symbol") or "").strip() or None
    name = (on_chain.get("name") or legacy.get("name") or "").strip() or None
    image = off_chain.get("image") or legacy.get("logoURI")
    return TokenMetadata(contract_id=mint, symbol=symbol, name=name, image=image)


class HeliusClient(JsonClient):
    """Enhanced transaction history and token metadata from Helius."""

    error_cls = IndexerError

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.helius.xyz",
        page_size: int = 100,
        timeout: float = 20.0,
        client: httpx.AsyncClient | Any | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Helius API key is required")
        super().__init__(base_url, timeout=timeout, client=client)
        self._api_key = api_key
        self._page_size = page_size

    @classmethod
    def from_settings(cls, settings: LedgerSettings, client: httpx.AsyncClient | None = None) -> HeliusClient:
        return cls(
            settings.helius_api_key or "",
            base_url=settings.helius_base_url,
            page_size=settings.page_size,
            timeout=settings.http_timeout_seconds,
            client=client,
        )

    async def fetch_page(self, address: str, cursor: Any | None = None) -> EventPage:
        params: dict[str, Any] = {"api-key": self._api_key, "limit": self._page_size}
        if cursor:
            params["before"] = cursor
        payload = await self._request("GET", f"/v0/addresses/{address}/transactions", params=params)
        if not isinstance(payload, list):
            raise IndexerError(f"unexpected transactions payload for {address}")

        events: list[RawEvent] = []
        for item in payload:
            try:
                events.append(parse_transaction(item))
            except (IndexerError, KeyError, TypeError, ValueError):
                logger.warning("Skipping unparseable transaction %s", item.get("signature"), exc_info=True)

        next_cursor = None
        if len(payload) >= self._page_size:
            next_cursor = payload[-1].get("signature")
        return EventPage(events=events, next_cursor=next_cursor)

    async def lookup(self, contract_ids: Iterable[str]) -> dict[str, TokenMetadata]:
        mints = list(dict.fromkeys(contract_ids))
        if not mints:
            return {}
        payload = await self._request(
            "POST",
            "/v0/token-metadata",
            params={"api-key": self._api_key},
            json={"mintAccounts": mints, "includeOffChain": True, "disableCache": False},
        )
        result: dict[str, TokenMetadata] = {}
        for item in payload or []:
            meta = _metadata_from(item)
            if meta is not None:
                result[meta.contract_id] = meta
        return result


__all__ = ["HeliusClient", "LAMPORTS_PER_SOL", "parse_transaction"]
