"""Drop legs that are routing hops, fees or dust rather than trades."""

from __future__ import annotations

import logging

from trade_ledger.config import LedgerSettings
from trade_ledger.engine.assets import AssetRegistry
from trade_ledger.models import RawLeg

logger = logging.getLogger(__name__)


class RoutingFilter:
    def __init__(self, registry: AssetRegistry, settings: LedgerSettings) -> None:
        self._registry = registry
        self._settings = settings

    def check(self, leg: RawLeg) -> str | None:
        """Return the reason ``leg`` should be dropped, or None to keep it."""

        sides = (leg.incoming, leg.outgoing)
        for side in sides:
            if self._registry.is_routing(side.symbol):
                return f"routing token {side.symbol}"
        for side in sides:
            if self._registry.is_native(side.symbol) and side.amount < self._settings.native_dust_floor:
                return f"native amount {side.amount} below dust floor"
        for side in sides:
            if self._registry.is_stablecoin(side.symbol) and self._is_platform_fee(side.amount):
                return f"platform fee of {side.amount} {side.symbol}"
        for side in sides:
            if side.amount < self._settings.minimum_trade_amount:
                return f"{side.symbol} amount {side.amount} below minimum"
        return None

    def accept(self, leg: RawLeg) -> bool:
        reason = self.check(leg)
        if reason is not None:
            logger.debug("Dropping %s: %s", leg.origin_id, reason)
            return False
        return True

    def _is_platform_fee(self, amount) -> bool:
        return abs(amount - self._settings.platform_fee_usd) <= self._settings.platform_fee_tolerance


__all__ = ["RoutingFilter"]
