"""Service container shared by the API routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import Request

from trade_ledger.config import LedgerSettings
from trade_ledger.engine import AssetRegistry
from trade_ledger.providers.feeds import PriceSource
from trade_ledger.providers.http import JsonClient
from trade_ledger.services.repository import LedgerRepository
from trade_ledger.services.sync import SyncCoordinator
from trade_ledger.services.watchlist import WalletWatchlist

logger = logging.getLogger(__name__)


@dataclass
class LedgerServices:
    settings: LedgerSettings
    repository: LedgerRepository
    watchlist: WalletWatchlist
    coordinator: SyncCoordinator
    price_source: PriceSource | None = None
    clients: list[JsonClient] = field(default_factory=list)

    @property
    def registry(self) -> AssetRegistry:
        return self.coordinator.registry

    async def aclose(self) -> None:
        await self.coordinator.stop()
        for client in self.clients:
            await client.aclose()
        logger.info("Ledger services shut down")


def get_services(request: Request) -> LedgerServices:
    return request.app.state.services


__all__ = ["LedgerServices", "get_services"]
