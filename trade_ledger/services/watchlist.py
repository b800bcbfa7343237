"""Watched wallet list stored as JSON under a single settings key."""

from __future__ import annotations

import json
import logging

from trade_ledger.config import BASE, SOLANA
from trade_ledger.models import WatchedWallet
from trade_ledger.services.settings_store import KeyValueStore

logger = logging.getLogger(__name__)

WATCHLIST_KEY = "watched_wallets"
SUPPORTED_CHAINS = (SOLANA, BASE)


def _normalize_address(address: str) -> str:
    address = address.strip()
    # EVM addresses are case-insensitive; Solana addresses are not.
    return address.lower() if address.startswith("0x") else address


class WalletWatchlist:
    def __init__(self, store: KeyValueStore, key: str = WATCHLIST_KEY) -> None:
        self._store = store
        self._key = key

    async def list(self) -> list[WatchedWallet]:
        raw = await self._store.get(self._key)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed %s setting", self._key)
            return []
        wallets = []
        for item in items:
            if isinstance(item, dict) and item.get("address"):
                wallets.append(
                    WatchedWallet(
                        address=item["address"],
                        chain=item.get("chain") or SOLANA,
                        label=item.get("label"),
                    )
                )
        return wallets

    async def add(self, address: str, chain: str = SOLANA, label: str | None = None) -> WatchedWallet:
        if chain not in SUPPORTED_CHAINS:
            raise ValueError(f"unsupported chain {chain!r}")
        if not address or not address.strip():
            raise ValueError("address is required")
        wallet = WatchedWallet(address=_normalize_address(address), chain=chain, label=label)
        wallets = await self.list()
        for existing in wallets:
            if existing.address == wallet.address and existing.chain == wallet.chain:
                return existing
        wallets.append(wallet)
        await self._save(wallets)
        logger.info("Watching %s wallet %s", chain, wallet.address)
        return wallet

    async def remove(self, address: str, chain: str | None = None) -> bool:
        target = _normalize_address(address)
        wallets = await self.list()
        kept = [w for w in wallets if not (w.address == target and (chain is None or w.chain == chain))]
        if len(kept) == len(wallets):
            return False
        await self._save(kept)
        return True

    async def _save(self, wallets: list[WatchedWallet]) -> None:
        payload = [{"address": w.address, "chain": w.chain, "label": w.label} for w in wallets]
        await self._store.set(self._key, json.dumps(payload))


__all__ = ["SUPPORTED_CHAINS", "WATCHLIST_KEY", "WalletWatchlist"]
