"""Per-run state threaded through the engine for one watched address."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class SyncContext:
    """Mutable state scoped to a single address within one sync pass.

    ``abstracted_account`` is the smart-account address learned on relayer
    chains; it is never shared between addresses or between passes.
    """

    wallet: str
    chain: str
    native_prices: dict[str, Decimal] = field(default_factory=dict)
    abstracted_account: str | None = None
    seen_origin_ids: set[str] = field(default_factory=set)

    def learn_abstracted_account(self, address: str | None) -> bool:
        if not address or self.abstracted_account is not None:
            return False
        self.abstracted_account = address.lower()
        return True


__all__ = ["SyncContext"]
