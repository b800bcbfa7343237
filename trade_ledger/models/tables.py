"""SQLAlchemy tables for ledger entries and key-value settings."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from trade_ledger.db.base import Base


class LedgerEntryRecord(Base):
    __tablename__ = "ledger_entry"
    __table_args__ = (
        Index("ix_ledger_entry_symbol_direction", "symbol", "direction"),
        Index("ix_ledger_entry_contract", "contract_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    origin_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    symbol: Mapped[str] = mapped_column(String(64))
    contract_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    token_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token_image: Mapped[str | None] = mapped_column(String(512), nullable=True)
    chain: Mapped[str | None] = mapped_column(String(32), nullable=True)
    direction: Mapped[str] = mapped_column(String(8))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 18))
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 18))
    base_currency_symbol: Mapped[str] = mapped_column(String(16))
    base_currency_usd_price: Mapped[Decimal | None] = mapped_column(Numeric(38, 18), nullable=True)
    total_value_base: Mapped[Decimal] = mapped_column(Numeric(38, 18))
    total_value_usd: Mapped[Decimal | None] = mapped_column(Numeric(38, 18), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    status: Mapped[str] = mapped_column(String(8), default="open")
    venue: Mapped[str | None] = mapped_column(String(64), nullable=True)
    market_cap_at_trade: Mapped[Decimal | None] = mapped_column(Numeric(38, 6), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class SettingRecord(Base):
    __tablename__ = "setting"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


__all__ = ["LedgerEntryRecord", "SettingRecord"]
