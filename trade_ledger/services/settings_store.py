"""Generic key-value settings storage."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trade_ledger.models import SettingRecord


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self._values = dict(values or {})

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value


class SqlKeyValueStore:
    """Settings persisted in the ``setting`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        async with self._session_factory() as session:
            record = await session.get(SettingRecord, key)
            return record.value if record else None

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            record = await session.get(SettingRecord, key)
            now = datetime.now(timezone.utc)
            if record is None:
                session.add(SettingRecord(key=key, value=value, updated_at=now))
            else:
                record.value = value
                record.updated_at = now
            await session.commit()


__all__ = ["InMemoryKeyValueStore", "KeyValueStore", "SqlKeyValueStore"]
