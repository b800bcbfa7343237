"""Domain records and ORM tables."""

from .ledger import (
    AssetAmount,
    AssetRef,
    Direction,
    EntryStatus,
    LedgerEntry,
    LedgerInvariantError,
    NativeTransfer,
    RawEvent,
    RawLeg,
    SwapSummary,
    SwapToken,
    SyncCursor,
    TokenTransfer,
    UNKNOWN_SYMBOL,
    WatchedWallet,
    asset_identity,
)
from .tables import LedgerEntryRecord, SettingRecord

__all__ = [
    "AssetAmount",
    "AssetRef",
    "Direction",
    "EntryStatus",
    "LedgerEntry",
    "LedgerEntryRecord",
    "LedgerInvariantError",
    "NativeTransfer",
    "RawEvent",
    "RawLeg",
    "SettingRecord",
    "SwapSummary",
    "SwapToken",
    "SyncCursor",
    "TokenTransfer",
    "UNKNOWN_SYMBOL",
    "WatchedWallet",
    "asset_identity",
]
