"""Pydantic schemas for the ledger HTTP API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from trade_ledger.engine.positions import Position
from trade_ledger.models import LedgerEntry, WatchedWallet
from trade_ledger.services.reporting import PortfolioSummary
from trade_ledger.services.sync import SyncReport


class LedgerEntrySchema(BaseModel):
    id: str
    origin_id: str | None = None
    symbol: str
    contract_id: str | None = None
    token_name: str | None = None
    token_image: str | None = None
    chain: str | None = None
    direction: str
    unit_price: Decimal
    unit_price_usd: Decimal | None = None
    quantity: Decimal
    base_currency_symbol: str
    base_currency_usd_price: Decimal | None = None
    total_value_base: Decimal
    total_value_usd: Decimal | None = None
    occurred_at: datetime
    status: str
    venue: str | None = None
    market_cap_at_trade: Decimal | None = None
    notes: str | None = None

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> LedgerEntrySchema:
        return cls(
            id=entry.id,
            origin_id=entry.origin_id,
            symbol=entry.asset.symbol,
            contract_id=entry.asset.contract_id,
            token_name=entry.asset.name,
            token_image=entry.asset.image,
            chain=entry.asset.chain,
            direction=entry.direction.value,
            unit_price=entry.unit_price,
            unit_price_usd=entry.unit_price_usd,
            quantity=entry.quantity,
            base_currency_symbol=entry.base_currency_symbol,
            base_currency_usd_price=entry.base_currency_usd_price,
            total_value_base=entry.total_value_base,
            total_value_usd=entry.total_value_usd,
            occurred_at=entry.occurred_at,
            status=entry.status.value,
            venue=entry.venue,
            market_cap_at_trade=entry.market_cap_at_trade,
            notes=entry.notes,
        )


class PositionSchema(BaseModel):
    identity: str
    symbol: str
    name: str | None = None
    contract_id: str | None = None
    image: str | None = None
    chain: str | None = None
    trade_count: int
    total_bought: Decimal
    total_sold: Decimal
    total_invested_usd: Decimal
    total_returned_usd: Decimal
    avg_buy_price: Decimal
    avg_sell_price: Decimal
    net_quantity: Decimal
    realized_pnl_usd: Decimal
    unrealized_pnl_usd: Decimal
    unrealized_value_usd: Decimal
    current_price: Decimal | None = None
    has_open_position: bool
    first_trade_at: datetime | None = None
    last_trade_at: datetime | None = None

    @classmethod
    def from_position(cls, position: Position) -> PositionSchema:
        return cls(
            identity=position.identity,
            symbol=position.symbol,
            name=position.name,
            contract_id=position.contract_id,
            image=position.image,
            chain=position.chain,
            trade_count=len(position.entries),
            total_bought=position.total_bought,
            total_sold=position.total_sold,
            total_invested_usd=position.total_invested_usd,
            total_returned_usd=position.total_returned_usd,
            avg_buy_price=position.avg_buy_price,
            avg_sell_price=position.avg_sell_price,
            net_quantity=position.net_quantity,
            realized_pnl_usd=position.realized_pnl_usd,
            unrealized_pnl_usd=position.unrealized_pnl_usd,
            unrealized_value_usd=position.unrealized_value_usd,
            current_price=position.current_price,
            has_open_position=position.has_open_position,
            first_trade_at=position.first_trade_at,
            last_trade_at=position.last_trade_at,
        )


class PositionHighlightSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    identity: str
    pnl_usd: Decimal


class PortfolioSummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position_count: int
    open_position_count: int
    trade_count: int
    total_invested_usd: Decimal
    total_returned_usd: Decimal
    total_realized_pnl_usd: Decimal
    total_unrealized_pnl_usd: Decimal
    open_positions_value_usd: Decimal
    open_cost_basis_usd: Decimal
    win_rate: Decimal | None = None
    best_position: PositionHighlightSchema | None = None
    worst_position: PositionHighlightSchema | None = None
    monthly_realized_pnl_usd: dict[str, Decimal] = Field(default_factory=dict)
    portfolio_pnl_usd: Decimal | None = None

    @classmethod
    def from_summary(cls, summary: PortfolioSummary) -> PortfolioSummarySchema:
        return cls.model_validate(summary)


class WalletCreateRequest(BaseModel):
    address: str = Field(..., min_length=1)
    chain: str = Field(default="solana", examples=["solana", "base"])
    label: str | None = None


class WalletSchema(BaseModel):
    address: str
    chain: str
    label: str | None = None

    @classmethod
    def from_wallet(cls, wallet: WatchedWallet) -> WalletSchema:
        return cls(address=wallet.address, chain=wallet.chain, label=wallet.label)


class AddressReportSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    chain: str
    pages: int
    events: int
    dropped: int
    inserted: int
    repaired: int
    superseded: int
    skipped: int
    rejected: int
    deferred: int = 0
    error: str | None = None


class SyncReportSchema(BaseModel):
    trigger: str
    skipped: bool
    started_at: datetime
    finished_at: datetime | None = None
    inserted: int
    repaired: int
    superseded: int
    rejected: int
    addresses: list[AddressReportSchema]

    @classmethod
    def from_report(cls, report: SyncReport) -> SyncReportSchema:
        return cls(
            trigger=report.trigger,
            skipped=report.skipped,
            started_at=report.started_at,
            finished_at=report.finished_at,
            inserted=report.inserted,
            repaired=report.repaired,
            superseded=report.superseded,
            rejected=report.rejected,
            addresses=[AddressReportSchema.model_validate(a) for a in report.addresses],
        )


class SyncStatusSchema(BaseModel):
    syncing: bool
    last_report: SyncReportSchema | None = None


class MaintenanceResultSchema(BaseModel):
    updated: int


__all__ = [
    "AddressReportSchema",
    "LedgerEntrySchema",
    "MaintenanceResultSchema",
    "PortfolioSummarySchema",
    "PositionHighlightSchema",
    "PositionSchema",
    "SyncReportSchema",
    "SyncStatusSchema",
    "WalletCreateRequest",
    "WalletSchema",
]
