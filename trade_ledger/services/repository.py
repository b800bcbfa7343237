"""Ledger entry storage: a CRUD contract with in-memory and SQL implementations."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trade_ledger.models import (
    AssetRef,
    Direction,
    EntryStatus,
    LedgerEntry,
    LedgerEntryRecord,
)

logger = logging.getLogger(__name__)


class LedgerRepository(Protocol):
    async def list(self) -> list[LedgerEntry]:
        ...

    async def get(self, entry_id: str) -> LedgerEntry | None:
        ...

    async def insert_many(self, entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
        ...

    async def patch(self, entry_id: str, changes: Mapping[str, Any]) -> LedgerEntry:
        ...

    async def delete(self, entry_id: str) -> bool:
        ...


class InMemoryLedgerRepository:
    """Dictionary-backed repository for tests and ephemeral runs."""

    def __init__(self, entries: Iterable[LedgerEntry] = (), tolerance: Decimal = Decimal("0.000001")) -> None:
        self._tolerance = tolerance
        self._entries: dict[str, LedgerEntry] = {}
        for entry in entries:
            self._entries[entry.id] = replace(entry)

    async def list(self) -> list[LedgerEntry]:
        return [replace(e) for e in sorted(self._entries.values(), key=lambda e: e.occurred_at)]

    async def get(self, entry_id: str) -> LedgerEntry | None:
        entry = self._entries.get(entry_id)
        return replace(entry) if entry else None

    async def insert_many(self, entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
        batch = list(entries)
        for entry in batch:
            entry.validate(self._tolerance)
            if entry.id in self._entries:
                raise ValueError(f"entry {entry.id} already exists")
        for entry in batch:
            self._entries[entry.id] = replace(entry)
        return batch

    async def patch(self, entry_id: str, changes: Mapping[str, Any]) -> LedgerEntry:
        current = self._entries.get(entry_id)
        if current is None:
            raise KeyError(entry_id)
        updated = current.with_changes(changes)
        updated.validate(self._tolerance)
        self._entries[entry_id] = updated
        return replace(updated)

    async def delete(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; values are written in UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def record_to_entry(record: LedgerEntryRecord) -> LedgerEntry:
    return LedgerEntry(
        id=record.id,
        origin_id=record.origin_id,
        asset=AssetRef(
            symbol=record.symbol,
            contract_id=record.contract_id,
            name=record.token_name,
            image=record.token_image,
            chain=record.chain,
        ),
        direction=Direction(record.direction),
        unit_price=Decimal(record.unit_price),
        quantity=Decimal(record.quantity),
        base_currency_symbol=record.base_currency_symbol,
        base_currency_usd_price=(
            Decimal(record.base_currency_usd_price) if record.base_currency_usd_price is not None else None
        ),
        total_value_base=Decimal(record.total_value_base),
        total_value_usd=Decimal(record.total_value_usd) if record.total_value_usd is not None else None,
        occurred_at=_aware(record.occurred_at),
        status=EntryStatus(record.status),
        venue=record.venue,
        market_cap_at_trade=(
            Decimal(record.market_cap_at_trade) if record.market_cap_at_trade is not None else None
        ),
        notes=record.notes,
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


def _apply(record: LedgerEntryRecord, entry: LedgerEntry) -> LedgerEntryRecord:
    record.origin_id = entry.origin_id
    record.symbol = entry.asset.symbol
    record.contract_id = entry.asset.contract_id
    record.token_name = entry.asset.name
    record.token_image = entry.asset.image
    record.chain = entry.asset.chain
    record.direction = entry.direction.value
    record.unit_price = entry.unit_price
    record.quantity = entry.quantity
    record.base_currency_symbol = entry.base_currency_symbol
    record.base_currency_usd_price = entry.base_currency_usd_price
    record.total_value_base = entry.total_value_base
    record.total_value_usd = entry.total_value_usd
    record.occurred_at = entry.occurred_at
    record.status = entry.status.value
    record.venue = entry.venue
    record.market_cap_at_trade = entry.market_cap_at_trade
    record.notes = entry.notes
    record.created_at = entry.created_at
    record.updated_at = entry.updated_at
    return record


class SqlLedgerRepository:
    """Repository over the ``ledger_entry`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tolerance: Decimal = Decimal("0.000001"),
    ) -> None:
        self._session_factory = session_factory
        self._tolerance = tolerance

    async def list(self) -> list[LedgerEntry]:
        async with self._session_factory() as session:
            result = await session.execute(select(LedgerEntryRecord).order_by(LedgerEntryRecord.occurred_at))
            return [record_to_entry(r) for r in result.scalars().all()]

    async def get(self, entry_id: str) -> LedgerEntry | None:
        async with self._session_factory() as session:
            record = await session.get(LedgerEntryRecord, entry_id)
            return record_to_entry(record) if record else None

    async def insert_many(self, entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
        batch = list(entries)
        for entry in batch:
            entry.validate(self._tolerance)
        if not batch:
            return batch
        async with self._session_factory() as session:
            try:
                session.add_all([_apply(LedgerEntryRecord(id=e.id), e) for e in batch])
                await session.commit()
            except SQLAlchemyError:
                logger.exception("Failed to insert %d ledger entries", len(batch))
                await session.rollback()
                raise
        return batch

    async def patch(self, entry_id: str, changes: Mapping[str, Any]) -> LedgerEntry:
        async with self._session_factory() as session:
            record = await session.get(LedgerEntryRecord, entry_id)
            if record is None:
                raise KeyError(entry_id)
            updated = record_to_entry(record).with_changes(changes)
            updated.validate(self._tolerance)
            _apply(record, updated)
            await session.commit()
            return updated

    async def delete(self, entry_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(LedgerEntryRecord).where(LedgerEntryRecord.id == entry_id))
            await session.commit()
            return bool(result.rowcount)


__all__ = [
    "InMemoryLedgerRepository",
    "LedgerRepository",
    "SqlLedgerRepository",
    "record_to_entry",
]
