"""Relayer-chain normalisation: abstracted account discovery and fallbacks."""

from __future__ import annotations

from decimal import Decimal

import pytest

from builders import transfer, ts
from trade_ledger.config import BASE, BASE_USDC_CONTRACT, BASE_WETH_CONTRACT
from trade_ledger.engine import (
    CurrencyNormalizer,
    DirectionClassifier,
    EventNormalizer,
    SyncContext,
)
from trade_ledger.models import Direction, RawEvent

EOA = "0xAbC0000000000000000000000000000000000001"
SMART_ACCOUNT = "0x5AFE000000000000000000000000000000000002"
OTHER_ACCOUNT = "0x5AFE000000000000000000000000000000000003"
POOL = "0x9000000000000000000000000000000000000009"
TOKB = "0x7000000000000000000000000000000000000007"


def _event(origin_id, token_transfers, internal=(), method="execute", decoded=None) -> RawEvent:
    return RawEvent(
        origin_id=origin_id,
        chain=BASE,
        timestamp=ts(),
        method=method,
        token_transfers=tuple(token_transfers),
        internal_transfers=tuple(internal),
        decoded_params=decoded or {},
    )


def _buy(origin_id="0xbuy", decoded=None, internal=None) -> RawEvent:
    if internal is None:
        internal = (transfer("USDC", 250, SMART_ACCOUNT, POOL, asset_id=BASE_USDC_CONTRACT),)
    return _event(
        origin_id,
        [transfer("TOKB", 5000, POOL, EOA, asset_id=TOKB)],
        internal=internal,
        decoded=decoded,
    )


def _sell(origin_id="0xsell") -> RawEvent:
    return _event(
        origin_id,
        [transfer("TOKB", 5000, EOA, POOL, asset_id=TOKB)],
        internal=(
            transfer("USDC", 300, POOL, SMART_ACCOUNT, asset_id=BASE_USDC_CONTRACT),
            transfer("USDC", 2, POOL, "0xfee0000000000000000000000000000000000000", asset_id=BASE_USDC_CONTRACT),
        ),
    )


@pytest.fixture
def normalizer(registry, settings) -> EventNormalizer:
    return EventNormalizer(registry, settings)


def _context() -> SyncContext:
    return SyncContext(wallet=EOA, chain=BASE)


def test_learns_account_from_decoded_user(normalizer):
    context = _context()

    leg = normalizer.normalize(_buy(decoded={"user": SMART_ACCOUNT}), EOA, context)

    assert context.abstracted_account == SMART_ACCOUNT.lower()
    assert leg.incoming.symbol == "TOKB"
    assert leg.outgoing.symbol == "USDC"
    assert leg.outgoing.amount == Decimal("250")


def test_learns_account_from_sole_stablecoin_sender(normalizer):
    context = _context()

    normalizer.normalize(_buy(), EOA, context)

    assert context.abstracted_account == SMART_ACCOUNT.lower()


def test_sell_uses_transfer_received_by_learned_account(normalizer):
    context = _context()
    normalizer.normalize(_buy(decoded={"user": SMART_ACCOUNT}), EOA, context)

    leg = normalizer.normalize(_sell(), EOA, context)

    assert leg.outgoing.symbol == "TOKB"
    assert leg.incoming.amount == Decimal("300")


def test_learned_account_does_not_leak_between_contexts(normalizer):
    learned = _context()
    normalizer.normalize(_buy(decoded={"user": SMART_ACCOUNT}), EOA, learned)
    fresh = SyncContext(wallet=EOA, chain=BASE)

    leg = normalizer.normalize(_sell(), EOA, fresh)

    assert fresh.abstracted_account is None
    # Without the account the last stablecoin movement is taken.
    assert leg.incoming.amount == Decimal("2")


def test_account_is_only_learned_once(normalizer):
    context = _context()
    normalizer.normalize(_buy("0x1", decoded={"user": SMART_ACCOUNT}), EOA, context)
    normalizer.normalize(_buy("0x2", decoded={"user": OTHER_ACCOUNT}), EOA, context)

    assert context.abstracted_account == SMART_ACCOUNT.lower()


def test_small_multicall_receipt_is_treated_as_airdrop(normalizer):
    event = _event("0xdrop", [transfer("TOKB", 50, POOL, EOA, asset_id=TOKB)], method="multicall")

    assert normalizer.normalize(event, EOA, _context()) is None


def test_base_asset_movement_alone_is_not_a_trade(normalizer):
    event = _event("0xusdc", [transfer("USDC", 100, POOL, EOA, asset_id=BASE_USDC_CONTRACT)])

    assert normalizer.normalize(event, EOA, _context()) is None


def test_wrapped_native_fallback_values_sells_with_eth_price(normalizer, registry):
    internal = (
        transfer("WETH", "0.02", POOL, SMART_ACCOUNT, asset_id=BASE_WETH_CONTRACT),
        transfer("WETH", "0.1", POOL, SMART_ACCOUNT, asset_id=BASE_WETH_CONTRACT),
    )
    event = _event("0xwethsell", [transfer("TOKB", 5000, EOA, POOL, asset_id=TOKB)], internal=internal)

    leg = normalizer.normalize(event, EOA, _context())

    assert leg.incoming.symbol == "WETH"
    assert leg.incoming.amount == Decimal("0.1")

    classification = DirectionClassifier(registry).classify(leg)
    trade = CurrencyNormalizer(registry).value(classification, {"ETH": Decimal("3000")})

    assert classification.direction is Direction.SELL
    assert trade.base_currency_symbol == "WETH"
    assert trade.total_value_usd == Decimal("300.0")


def test_buy_paid_only_through_wrapped_native_hop_is_dropped(normalizer):
    internal = (transfer("WETH", "0.1", SMART_ACCOUNT, POOL, asset_id=BASE_WETH_CONTRACT),)

    assert normalizer.normalize(_buy(internal=internal), EOA, _context()) is None
