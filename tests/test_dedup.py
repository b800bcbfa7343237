"""Reconciliation of candidates against the stored ledger."""

from __future__ import annotations

from decimal import Decimal

import pytest

from builders import TOKX_MINT, entry, ts
from trade_ledger.engine import Deduplicator
from trade_ledger.engine.currency import UNRESOLVED_NOTE
from trade_ledger.engine.dedup import composite_key
from trade_ledger.models import Direction


@pytest.fixture
def dedup() -> Deduplicator:
    return Deduplicator(quantity_places=4)


def _history():
    return [
        entry("TOKX", Direction.BUY, 1_000_000, "2", origin_id="sig-buy", contract_id=TOKX_MINT, when=ts(1)),
        entry("TOKX", Direction.SELL, 1_000_000, "3", origin_id="sig-sell", contract_id=TOKX_MINT, when=ts(2)),
    ]


def test_first_sync_inserts_everything(dedup):
    plan = dedup.reconcile(_history(), [])

    assert len(plan.inserts) == 2
    assert not plan.repairs and not plan.supersessions


def test_resync_of_same_events_changes_nothing(dedup):
    stored = dedup.reconcile(_history(), []).inserts

    plan = dedup.reconcile(_history(), stored)

    assert plan.is_empty
    assert len(plan.skipped) == 2


def test_duplicate_origin_within_one_batch_is_inserted_once(dedup):
    first, _ = _history()
    again = entry("TOKX", Direction.BUY, 1_000_000, "2", origin_id="sig-buy", contract_id=TOKX_MINT, when=ts(1))

    plan = dedup.reconcile([first, again], [])

    assert [e.id for e in plan.inserts] == [first.id]
    assert plan.skipped == [again]


def test_origin_match_repairs_but_keeps_recorded_rate(dedup):
    stored = entry("TOKX", Direction.SELL, 1000, "3", rate="100", origin_id="sig-1", contract_id=TOKX_MINT)
    candidate = entry("TOKX", Direction.SELL, 1000, "4", rate="150", origin_id="sig-1", contract_id=TOKX_MINT)

    plan = dedup.reconcile([candidate], [stored])

    assert not plan.inserts
    [patch] = plan.repairs
    assert patch.entry_id == stored.id
    assert patch.conflicting is True
    assert patch.changes["total_value_base"] == Decimal("4")
    assert patch.changes["total_value_usd"] == Decimal("400")
    assert "base_currency_usd_price" not in patch.changes


def test_direction_flip_is_repaired(dedup):
    stored = entry("TOKX", Direction.BUY, 1000, "3", origin_id="sig-1", contract_id=TOKX_MINT)
    candidate = entry("TOKX", Direction.SELL, 1000, "3", origin_id="sig-1", contract_id=TOKX_MINT)

    [patch] = dedup.reconcile([candidate], [stored]).repairs

    assert patch.changes["direction"] is Direction.SELL
    assert patch.conflicting is True


def test_unresolved_rate_is_filled_on_repair(dedup):
    stored = entry("TOKX", Direction.BUY, 1000, "3", rate=None, origin_id="sig-1", contract_id=TOKX_MINT)
    stored.notes = UNRESOLVED_NOTE
    candidate = entry("TOKX", Direction.BUY, 1000, "3", rate="100", origin_id="sig-1", contract_id=TOKX_MINT)

    [patch] = dedup.reconcile([candidate], [stored]).repairs

    assert patch.changes["base_currency_usd_price"] == Decimal("100")
    assert patch.changes["total_value_usd"] == Decimal("300")
    assert patch.changes["notes"] is None
    assert patch.conflicting is False


def test_base_change_without_rate_clears_stale_usd_values(dedup):
    stored = entry("TOKX", Direction.BUY, 1000, "3", base="SOL", rate="100", origin_id="sig-1", contract_id=TOKX_MINT)
    candidate = entry("TOKX", Direction.BUY, 1000, "450", base="USDC", rate=None, origin_id="sig-1", contract_id=TOKX_MINT)

    [patch] = dedup.reconcile([candidate], [stored]).repairs

    assert patch.changes["base_currency_symbol"] == "USDC"
    assert patch.changes["base_currency_usd_price"] is None
    assert patch.changes["total_value_usd"] is None
    assert patch.changes["notes"] == UNRESOLVED_NOTE
    repaired = stored.with_changes(patch.changes)
    repaired.validate()


def test_supersession_with_new_base_and_no_rate_clears_usd_values(dedup):
    legacy = entry("TOKX", Direction.BUY, 1000, "2", base="SOL", rate="100")
    candidate = entry("TOKX", Direction.BUY, 1000, "2", base="WSOL", rate=None, origin_id="sig-9", contract_id=TOKX_MINT)

    [patch] = dedup.reconcile([candidate], [legacy]).supersessions

    assert patch.changes["base_currency_usd_price"] is None
    assert patch.changes["total_value_usd"] is None
    assert patch.changes["notes"] == UNRESOLVED_NOTE


def test_legacy_row_without_origin_is_superseded(dedup):
    legacy = entry("TOKX", Direction.BUY, "1000.00001", "2", when=ts(3, 9))
    candidate = entry("TOKX", Direction.BUY, 1000, "2", origin_id="sig-9", contract_id=TOKX_MINT, when=ts(3, 18))

    plan = dedup.reconcile([candidate], [legacy])

    assert not plan.inserts
    [patch] = plan.supersessions
    assert patch.entry_id == legacy.id
    assert patch.changes["origin_id"] == "sig-9"
    assert patch.changes["asset"].contract_id == TOKX_MINT


def test_composite_match_with_other_origin_is_skipped(dedup):
    stored = entry("TOKX", Direction.BUY, 1000, "2", origin_id="sig-a", contract_id=TOKX_MINT)
    candidate = entry("TOKX", Direction.BUY, 1000, "2", origin_id="sig-b", contract_id=TOKX_MINT)

    plan = dedup.reconcile([candidate], [stored])

    assert plan.is_empty
    assert plan.skipped == [candidate]


def test_same_quantity_on_another_day_is_a_new_trade(dedup):
    stored = entry("TOKX", Direction.BUY, 1000, "2", origin_id="sig-a", contract_id=TOKX_MINT, when=ts(1))
    candidate = entry("TOKX", Direction.BUY, 1000, "2", origin_id="sig-b", contract_id=TOKX_MINT, when=ts(2))

    assert len(dedup.reconcile([candidate], [stored]).inserts) == 1


def test_composite_key_rounds_quantity_and_uses_utc_day():
    first = entry("TOKX", Direction.BUY, "1000.00004", "2", contract_id=TOKX_MINT, when=ts(3, 23, 59))
    second = entry("TOKX", Direction.BUY, "1000.00001", "2", contract_id=TOKX_MINT.lower(), when=ts(3, 0, 1))

    assert composite_key(first, 4) == composite_key(second, 4)
