"""Reconcile freshly classified entries against what the ledger already holds.

Matching happens in two steps. An origin-id match repairs the stored row in
place; a composite-key match (asset, direction, day, rounded quantity) is a
duplicate unless the stored row predates origin tracking, in which case the
stored row is superseded by the traceable one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Sequence

from trade_ledger.engine.currency import UNRESOLVED_NOTE
from trade_ledger.models import Direction, LedgerEntry

logger = logging.getLogger(__name__)

CompositeKey = tuple[str, str, date, Decimal]

_REPAIR_FIELDS = (
    "direction",
    "unit_price",
    "quantity",
    "total_value_base",
    "base_currency_symbol",
    "status",
)


def _quantize(quantity: Decimal, places: int) -> Decimal:
    return quantity.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def _trade_day(entry: LedgerEntry) -> date:
    occurred = entry.occurred_at
    if occurred.tzinfo is not None:
        occurred = occurred.astimezone(timezone.utc)
    return occurred.date()


def composite_key(entry: LedgerEntry, places: int, identity: str | None = None) -> CompositeKey:
    direction = entry.direction.value if isinstance(entry.direction, Direction) else str(entry.direction)
    return (
        identity or entry.asset.identity,
        direction,
        _trade_day(entry),
        _quantize(entry.quantity, places),
    )


def _differs(current: Any, value: Any) -> bool:
    if isinstance(current, Decimal) and isinstance(value, Decimal):
        scale = max(abs(current), abs(value), Decimal("1"))
        return abs(current - value) > scale * Decimal("1e-12")
    return current != value


def _symbol_identity(entry: LedgerEntry) -> str | None:
    if entry.asset.is_unknown:
        return None
    return entry.asset.symbol.upper()


@dataclass
class EntryPatch:
    entry_id: str
    changes: dict[str, Any]
    conflicting: bool = False


@dataclass
class ReconcilePlan:
    inserts: list[LedgerEntry] = field(default_factory=list)
    repairs: list[EntryPatch] = field(default_factory=list)
    supersessions: list[EntryPatch] = field(default_factory=list)
    skipped: list[LedgerEntry] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.repairs or self.supersessions)


class LedgerIndex:
    """Lookup tables over existing entries, updated as a plan is built."""

    def __init__(self, places: int) -> None:
        self._places = places
        self.by_origin: dict[str, LedgerEntry] = {}
        self.by_key: dict[CompositeKey, list[LedgerEntry]] = {}

    @classmethod
    def build(cls, entries: Iterable[LedgerEntry], places: int) -> LedgerIndex:
        index = cls(places)
        for entry in entries:
            index.add(entry)
        return index

    def _keys(self, entry: LedgerEntry) -> list[CompositeKey]:
        keys = [composite_key(entry, self._places)]
        symbol = _symbol_identity(entry)
        if entry.asset.contract_id and symbol:
            keys.append(composite_key(entry, self._places, identity=symbol))
        return keys

    def add(self, entry: LedgerEntry) -> None:
        if entry.origin_id:
            self.by_origin[entry.origin_id] = entry
        for key in self._keys(entry):
            self.by_key.setdefault(key, []).append(entry)

    def remove(self, entry: LedgerEntry) -> None:
        if entry.origin_id and self.by_origin.get(entry.origin_id) is entry:
            del self.by_origin[entry.origin_id]
        for key in self._keys(entry):
            bucket = self.by_key.get(key, [])
            self.by_key[key] = [e for e in bucket if e is not entry]

    def replace(self, old: LedgerEntry, new: LedgerEntry) -> None:
        self.remove(old)
        self.add(new)

    def find_composite(self, candidate: LedgerEntry) -> LedgerEntry | None:
        matches = self.by_key.get(composite_key(candidate, self._places))
        if matches:
            return matches[0]
        symbol = _symbol_identity(candidate)
        if candidate.asset.contract_id and symbol:
            legacy = self.by_key.get(composite_key(candidate, self._places, identity=symbol), [])
            for entry in legacy:
                if not entry.asset.contract_id:
                    return entry
        return None


class Deduplicator:
    def __init__(self, quantity_places: int = 4, repair_tolerance: Decimal = Decimal("0.01")) -> None:
        self._places = quantity_places
        self._repair_tolerance = repair_tolerance

    def reconcile(self, candidates: Sequence[LedgerEntry], existing: Iterable[LedgerEntry]) -> ReconcilePlan:
        index = LedgerIndex.build(existing, self._places)
        plan = ReconcilePlan()
        pending: set[str] = set()

        for candidate in candidates:
            if candidate.origin_id:
                current = index.by_origin.get(candidate.origin_id)
                if current is not None:
                    if current.id in pending:
                        plan.skipped.append(candidate)
                        continue
                    self._plan_repair(plan, index, current, candidate)
                    continue

            match = index.find_composite(candidate)
            if match is not None:
                if candidate.origin_id and not match.origin_id and match.id not in pending:
                    patch = EntryPatch(entry_id=match.id, changes=self._supersede_changes(match, candidate))
                    plan.supersessions.append(patch)
                    index.replace(match, match.with_changes(patch.changes))
                    logger.info("Superseding legacy entry %s with %s", match.id, candidate.origin_id)
                else:
                    plan.skipped.append(candidate)
                continue

            plan.inserts.append(candidate)
            pending.add(candidate.id)
            index.add(candidate)

        return plan

    def _plan_repair(
        self,
        plan: ReconcilePlan,
        index: LedgerIndex,
        current: LedgerEntry,
        candidate: LedgerEntry,
    ) -> None:
        changes = self._repair_changes(current, candidate)
        if not changes:
            plan.skipped.append(candidate)
            return
        conflicting = self._is_conflicting(current, candidate)
        if conflicting:
            logger.warning(
                "Re-classified %s: %s %s %s -> %s %s %s",
                current.origin_id,
                current.direction.value,
                current.quantity,
                current.total_value_base,
                candidate.direction.value,
                candidate.quantity,
                candidate.total_value_base,
            )
        else:
            logger.info("Repairing %s fields on %s", ", ".join(sorted(changes)), current.origin_id)
        plan.repairs.append(EntryPatch(entry_id=current.id, changes=changes, conflicting=conflicting))
        index.replace(current, current.with_changes(changes))

    def _repair_changes(self, current: LedgerEntry, candidate: LedgerEntry) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        for name in _REPAIR_FIELDS:
            value = getattr(candidate, name)
            if _differs(getattr(current, name), value):
                changes[name] = value

        # Keep the rate recorded at first sync unless it was never resolved.
        if current.base_currency_usd_price is not None and candidate.base_currency_symbol == current.base_currency_symbol:
            total_usd = candidate.total_value_base * current.base_currency_usd_price
            if current.total_value_usd is None or _differs(current.total_value_usd, total_usd):
                changes["total_value_usd"] = total_usd
        elif candidate.base_currency_usd_price is not None:
            changes["base_currency_usd_price"] = candidate.base_currency_usd_price
            changes["total_value_usd"] = candidate.total_value_usd
            if current.notes != candidate.notes:
                changes["notes"] = candidate.notes
        elif candidate.base_currency_symbol != current.base_currency_symbol:
            # A rate for the old base says nothing about the new one.
            for name in ("base_currency_usd_price", "total_value_usd"):
                if getattr(current, name) is not None:
                    changes[name] = None
            if current.notes != UNRESOLVED_NOTE:
                changes["notes"] = UNRESOLVED_NOTE

        if current.asset.is_unknown and not candidate.asset.is_unknown:
            changes["asset"] = candidate.asset
        return changes

    def _supersede_changes(self, legacy: LedgerEntry, candidate: LedgerEntry) -> dict[str, Any]:
        changes: dict[str, Any] = {"origin_id": candidate.origin_id}
        for name in _REPAIR_FIELDS + ("base_currency_usd_price", "total_value_usd", "venue", "occurred_at"):
            value = getattr(candidate, name)
            if value is not None and getattr(legacy, name) != value:
                changes[name] = value
        if candidate.base_currency_usd_price is None and candidate.base_currency_symbol != legacy.base_currency_symbol:
            changes.update(base_currency_usd_price=None, total_value_usd=None, notes=UNRESOLVED_NOTE)
        if not legacy.asset.contract_id or legacy.asset.is_unknown:
            changes["asset"] = candidate.asset
        return changes

    def _is_conflicting(self, current: LedgerEntry, candidate: LedgerEntry) -> bool:
        if current.direction != candidate.direction:
            return True
        scale = max(abs(current.total_value_base), Decimal("1e-18"))
        return abs(candidate.total_value_base - current.total_value_base) / scale > self._repair_tolerance


__all__ = [
    "CompositeKey",
    "Deduplicator",
    "EntryPatch",
    "LedgerIndex",
    "ReconcilePlan",
    "composite_key",
]
