"""Buy/sell direction rules.

Each rule is a pure function of the leg and the asset registry that returns a
tagged outcome. ``DirectionClassifier`` runs the structural rules in order,
then lets the transaction description override the result.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Sequence, Union

from trade_ledger.engine.assets import AssetRegistry
from trade_ledger.models import AssetAmount, Direction, RawLeg, TokenTransfer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Determined:
    direction: Direction
    rule: str


@dataclass(frozen=True)
class Undetermined:
    rule: str = ""


@dataclass(frozen=True)
class Rejected:
    reason: str


Outcome = Union[Determined, Undetermined, Rejected]
Rule = Callable[[RawLeg, AssetRegistry], Outcome]


@dataclass(frozen=True)
class Classification:
    leg: RawLeg
    direction: Direction | None = None
    rule: str | None = None
    overridden: bool = False
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.direction is not None

    @property
    def trade_asset(self) -> AssetAmount:
        return self.leg.incoming if self.direction is Direction.BUY else self.leg.outgoing

    @property
    def base_asset(self) -> AssetAmount:
        return self.leg.outgoing if self.direction is Direction.BUY else self.leg.incoming


def _addr(value: str | None) -> str:
    return (value or "").lower()


def split_sides(leg: RawLeg, registry: AssetRegistry) -> tuple[AssetAmount, AssetAmount] | None:
    """Return ``(trade, base)`` when exactly one side is a base currency."""

    in_base = registry.is_base_amount(leg.incoming)
    out_base = registry.is_base_amount(leg.outgoing)
    if in_base == out_base:
        return None
    return (leg.outgoing, leg.incoming) if in_base else (leg.incoming, leg.outgoing)


def base_membership_rule(leg: RawLeg, registry: AssetRegistry) -> Outcome:
    in_base = registry.is_base_amount(leg.incoming)
    out_base = registry.is_base_amount(leg.outgoing)
    if in_base and out_base:
        return Rejected(f"base-to-base swap {leg.outgoing.symbol} -> {leg.incoming.symbol}")
    if not leg.observed or in_base == out_base:
        return Undetermined("base_membership")
    return Determined(Direction.SELL if in_base else Direction.BUY, "base_membership")


def _matching_transfer(transfers: Sequence[TokenTransfer], asset: AssetAmount) -> TokenTransfer | None:
    for transfer in transfers:
        if asset.contract_id and transfer.asset_id:
            if transfer.asset_id.lower() == asset.contract_id.lower():
                return transfer
        elif transfer.symbol and transfer.symbol.upper() == asset.symbol.upper():
            return transfer
    return None


def counterparty_rule(leg: RawLeg, registry: AssetRegistry) -> Outcome:
    sides = split_sides(leg, registry)
    if sides is None or not leg.transfers:
        return Undetermined("counterparty")
    trade, base = sides
    me = _addr(leg.wallet)
    trade_transfer = _matching_transfer(leg.transfers, trade)
    base_transfer = _matching_transfer(leg.transfers, base)

    if trade_transfer is not None and _addr(trade_transfer.sender) == me:
        return Determined(Direction.SELL, "counterparty")
    if base_transfer is not None and _addr(base_transfer.sender) == me:
        return Determined(Direction.BUY, "counterparty")
    if trade_transfer is not None and _addr(trade_transfer.receiver) == me:
        return Determined(Direction.BUY, "counterparty")
    if base_transfer is not None and _addr(base_transfer.receiver) == me:
        return Determined(Direction.SELL, "counterparty")
    return Undetermined("counterparty")


_WORDS = re.compile(r"[a-z0-9]+")
_SELL_WORDS = frozenset({"sold", "sell", "sells"})
_BUY_WORDS = frozenset({"bought", "buy", "buys"})


def description_rule(leg: RawLeg, registry: AssetRegistry) -> Outcome:
    text = (leg.event.description or "").lower()
    if not text:
        return Undetermined("description")
    words = set(_WORDS.findall(text))
    if words & _SELL_WORDS:
        return Determined(Direction.SELL, "description")
    if words & _BUY_WORDS:
        return Determined(Direction.BUY, "description")

    start = text.find("swapped")
    sides = split_sides(leg, registry)
    if start < 0 or sides is None:
        return Undetermined("description")
    pivot = text.find(" for ", start)
    if pivot < 0:
        return Undetermined("description")

    trade_symbol = sides[0].symbol.lower()
    base_symbols = {symbol.lower() for symbol in registry.base_symbols}
    before = set(_WORDS.findall(text[start:pivot]))
    after = set(_WORDS.findall(text[pivot + len(" for "):]))
    if trade_symbol in before and after & base_symbols:
        return Determined(Direction.SELL, "description")
    if before & base_symbols and trade_symbol in after:
        return Determined(Direction.BUY, "description")
    return Undetermined("description")


DEFAULT_RULES: tuple[Rule, ...] = (base_membership_rule, counterparty_rule)


class DirectionClassifier:
    """Decide buy or sell for a leg; see module docstring for rule order."""

    def __init__(
        self,
        registry: AssetRegistry,
        rules: Sequence[Rule] = DEFAULT_RULES,
        override: Rule | None = description_rule,
    ) -> None:
        self._registry = registry
        self._rules = tuple(rules)
        self._override = override

    def classify(self, leg: RawLeg) -> Classification:
        decided: Determined | None = None
        for rule in self._rules:
            outcome = rule(leg, self._registry)
            if isinstance(outcome, Rejected):
                logger.debug("Dropping %s: %s", leg.origin_id, outcome.reason)
                return Classification(leg=leg, reason=outcome.reason)
            if isinstance(outcome, Determined):
                decided = outcome
                break

        overridden = False
        if self._override is not None:
            outcome = self._override(leg, self._registry)
            if isinstance(outcome, Determined) and (decided is None or outcome.direction != decided.direction):
                if decided is not None:
                    overridden = True
                    logger.info(
                        "Description overrides %s on %s: %s -> %s",
                        decided.rule,
                        leg.origin_id,
                        decided.direction.value,
                        outcome.direction.value,
                    )
                decided = outcome

        if decided is None:
            logger.debug("Dropping %s: direction undetermined", leg.origin_id)
            return Classification(leg=leg, reason="direction undetermined")

        sides = split_sides(leg, self._registry)
        if sides is None:
            logger.debug("Dropping %s: no base-currency side to value against", leg.origin_id)
            return Classification(leg=leg, reason="no base-currency side")
        trade, base = sides
        if decided.direction is Direction.BUY:
            oriented = RawLeg(
                incoming=trade, outgoing=base, event=leg.event, wallet=leg.wallet, transfers=leg.transfers
            )
        else:
            oriented = RawLeg(
                incoming=base, outgoing=trade, event=leg.event, wallet=leg.wallet, transfers=leg.transfers
            )
        return Classification(
            leg=oriented,
            direction=decided.direction,
            rule=decided.rule,
            overridden=overridden,
        )


__all__ = [
    "Classification",
    "DEFAULT_RULES",
    "Determined",
    "DirectionClassifier",
    "Rejected",
    "Undetermined",
    "base_membership_rule",
    "counterparty_rule",
    "description_rule",
    "split_sides",
]
