from __future__ import annotations

from decimal import Decimal

import pytest

from builders import WALLET, swap_event
from trade_ledger.engine import RoutingFilter
from trade_ledger.models import AssetAmount, RawLeg


def _leg(incoming: tuple[str, str], outgoing: tuple[str, str]) -> RawLeg:
    return RawLeg(
        incoming=AssetAmount(symbol=incoming[0], amount=Decimal(incoming[1])),
        outgoing=AssetAmount(symbol=outgoing[0], amount=Decimal(outgoing[1])),
        event=swap_event("sig"),
        wallet=WALLET,
    )


@pytest.fixture
def routing(registry, settings) -> RoutingFilter:
    return RoutingFilter(registry, settings)


def test_accepts_ordinary_trade(routing):
    assert routing.accept(_leg(("TOKX", "1000"), ("SOL", "1.5")))


@pytest.mark.parametrize(
    "incoming, outgoing, reason",
    [
        (("BONK", "5000"), ("SOL", "1"), "routing token"),
        (("TOKX", "1000"), ("SOL", "0.01"), "dust"),
        (("TOKX", "1000"), ("USDC", "0.95"), "platform fee"),
        (("USDC", "1.02"), ("TOKX", "10"), "platform fee"),
        (("TOKX", "0.001"), ("USDC", "40"), "below minimum"),
    ],
)
def test_drops_non_trades(routing, incoming, outgoing, reason):
    leg = _leg(incoming, outgoing)

    assert reason in (routing.check(leg) or "")
    assert routing.accept(leg) is False
