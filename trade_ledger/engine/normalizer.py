"""Reduce indexer events to a single received/sent leg for the watched wallet.

Three event shapes are handled:

* decoded swaps (native legs first, then first input / last output, then the
  inner-swap route),
* plain token transfers, either a clean one-out/one-in pair at the wallet or a
  looser set where only the traded pair is known,
* relayer-chain transfers where the wallet sees one side and the counter-asset
  settles through an abstracted smart account.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Sequence

from trade_ledger.config import LedgerSettings
from trade_ledger.engine.assets import AssetRegistry
from trade_ledger.engine.context import SyncContext
from trade_ledger.models import (
    AssetAmount,
    RawEvent,
    RawLeg,
    SwapToken,
    TokenTransfer,
    UNKNOWN_SYMBOL,
)

logger = logging.getLogger(__name__)


def _addr(value: str | None) -> str:
    return (value or "").lower()


def _same_asset(left: AssetAmount, right: AssetAmount) -> bool:
    if left.contract_id and right.contract_id:
        return left.contract_id.lower() == right.contract_id.lower()
    if left.is_unknown or right.is_unknown:
        return False
    return left.symbol.upper() == right.symbol.upper()


class EventNormalizer:
    """Turn a ``RawEvent`` into a ``RawLeg`` or ``None`` when no trade is visible."""

    def __init__(self, registry: AssetRegistry, settings: LedgerSettings) -> None:
        self._registry = registry
        self._settings = settings
        self._relayer_chains = frozenset(settings.relayer_chains)

    def normalize(self, event: RawEvent, wallet: str, context: SyncContext | None = None) -> RawLeg | None:
        if event.swap is not None:
            leg = self._from_swap(event, wallet)
        elif event.chain in self._relayer_chains and self._wallet_side_count(event, wallet) == 1:
            context = context or SyncContext(wallet=wallet, chain=event.chain)
            leg = self._from_relayer(event, wallet, context)
        else:
            leg = self._from_transfers(event, wallet)

        if leg is None:
            return None
        if _same_asset(leg.incoming, leg.outgoing):
            logger.debug("Dropping %s: both sides are the same asset", event.origin_id)
            return None
        return self._infer_unknown_native(leg)

    # Swap summaries

    def _from_swap(self, event: RawEvent, wallet: str) -> RawLeg | None:
        swap = event.swap
        assert swap is not None
        native = self._registry.native_symbol(event.chain)
        sent: AssetAmount | None = None
        received: AssetAmount | None = None

        if swap.native_input and swap.native_input > 0:
            sent = AssetAmount(symbol=native, amount=swap.native_input)
        if swap.native_output and swap.native_output > 0:
            received = AssetAmount(symbol=native, amount=swap.native_output)

        if sent is None:
            sent = self._first(swap.token_inputs, event, skip_wrapped=True)
        if received is None:
            received = self._first(reversed(swap.token_outputs), event, skip_wrapped=True)

        if (sent is None or received is None) and swap.inner_swaps:
            first_inputs = swap.inner_swaps[0][0]
            last_outputs = swap.inner_swaps[-1][1]
            if sent is None:
                sent = self._first(first_inputs, event, skip_wrapped=False)
            if received is None:
                received = self._first(reversed(last_outputs), event, skip_wrapped=False)

        # Wrapped native only counts when nothing else moved.
        if sent is None:
            sent = self._first(swap.token_inputs, event, skip_wrapped=False)
        if received is None:
            received = self._first(reversed(swap.token_outputs), event, skip_wrapped=False)

        if sent is None or received is None:
            logger.debug("Dropping %s: swap summary is missing a side", event.origin_id)
            return None
        return RawLeg(incoming=received, outgoing=sent, event=event, wallet=wallet)

    def _first(self, tokens: Iterable[SwapToken], event: RawEvent, *, skip_wrapped: bool) -> AssetAmount | None:
        for token in tokens:
            if token.amount <= 0:
                continue
            if self._registry.is_wrapped_native(token.asset_id):
                if skip_wrapped:
                    continue
                return AssetAmount(
                    symbol=self._registry.native_symbol(event.chain),
                    amount=token.amount,
                    contract_id=token.asset_id,
                    decimals=token.decimals,
                )
            return AssetAmount(
                symbol=self._symbol_for(token, event),
                amount=token.amount,
                contract_id=token.asset_id,
                name=token.name,
                decimals=token.decimals,
            )
        return None

    def _symbol_for(self, token: SwapToken, event: RawEvent) -> str:
        if token.symbol:
            return token.symbol
        if token.name:
            return token.name
        for transfer in event.token_transfers:
            if transfer.symbol and token.asset_id and transfer.asset_id == token.asset_id:
                return transfer.symbol
        return UNKNOWN_SYMBOL

    # Token transfers

    def _from_transfers(self, event: RawEvent, wallet: str) -> RawLeg | None:
        me = _addr(wallet)
        touching = [
            t for t in event.token_transfers
            if t.amount > 0 and me in (_addr(t.sender), _addr(t.receiver))
        ]
        outgoing = [t for t in touching if _addr(t.sender) == me]
        incoming = [t for t in touching if _addr(t.receiver) == me]
        if len(touching) >= 2 and len(outgoing) == 1 and len(incoming) == 1:
            sent = self._transfer_asset(outgoing[0], event)
            received = self._transfer_asset(incoming[0], event)
            if not _same_asset(sent, received):
                return RawLeg(
                    incoming=received,
                    outgoing=sent,
                    event=event,
                    wallet=wallet,
                    transfers=(outgoing[0], incoming[0]),
                )
        return self._from_loose_transfers(event, wallet)

    def _from_loose_transfers(self, event: RawEvent, wallet: str) -> RawLeg | None:
        transfers = [t for t in event.token_transfers if t.amount > 0]
        trade = next((t for t in transfers if not self._is_base_transfer(t)), None)
        if trade is None:
            logger.debug("Dropping %s: no non-base asset among transfers", event.origin_id)
            return None

        trade_transfers = [t for t in transfers if t.asset_id == trade.asset_id and t.symbol == trade.symbol]
        main = max(trade_transfers, key=lambda t: t.amount)

        base_transfer = next(
            (t for t in transfers if self._is_stable_transfer(t) and not self._looks_like_fee(t.amount)),
            None,
        )
        if base_transfer is None:
            base_transfer = next(
                (
                    t for t in transfers
                    if self._is_base_transfer(t)
                    and not self._is_stable_transfer(t)
                    and not self._registry.is_wrapped_native(t.asset_id)
                ),
                None,
            )

        if base_transfer is not None:
            base = self._transfer_asset(base_transfer, event)
            used: tuple[TokenTransfer, ...] = (main, base_transfer)
        else:
            native_total = sum(
                (n.amount for n in event.native_transfers if n.amount > self._settings.native_transfer_floor),
                Decimal("0"),
            )
            if native_total <= 0:
                logger.debug("Dropping %s: no counter-asset for %s", event.origin_id, trade.symbol)
                return None
            # Native movements are reported once per hop, so halve the sum.
            base = AssetAmount(symbol=self._registry.native_symbol(event.chain), amount=native_total / 2)
            used = (main,)

        me = _addr(wallet)
        if not any(me in (_addr(t.sender), _addr(t.receiver)) for t in used):
            logger.debug("Dropping %s: wallet is not a party to the transfers", event.origin_id)
            return None
        return RawLeg(
            incoming=self._transfer_asset(main, event),
            outgoing=base,
            event=event,
            wallet=wallet,
            transfers=used,
            observed=False,
        )

    # Relayer chains

    def _from_relayer(self, event: RawEvent, wallet: str, context: SyncContext) -> RawLeg | None:
        me = _addr(wallet)
        transfer = next(t for t in event.token_transfers if me in (_addr(t.sender), _addr(t.receiver)))
        is_buy = _addr(transfer.receiver) == me and _addr(transfer.sender) != me

        if self._is_base_transfer(transfer):
            logger.debug("Dropping %s: counter-asset movement without a trade", event.origin_id)
            return None
        if is_buy and self._looks_like_airdrop(event, transfer):
            logger.debug("Dropping %s: likely airdrop via %s", event.origin_id, event.method)
            return None

        stable = [t for t in event.internal_transfers if t.amount > 0 and self._is_stable_transfer(t)]
        if is_buy and context.abstracted_account is None:
            candidate = event.decoded_params.get("user")
            if not candidate and len(stable) == 1:
                candidate = stable[0].sender
            if context.learn_abstracted_account(candidate):
                logger.info("Learned abstracted account %s for %s", context.abstracted_account, wallet)

        counter = self._relayer_counter(stable, is_buy, context.abstracted_account)
        if counter is None and not is_buy:
            counter = self._largest_wrapped_native(event.internal_transfers)
        if counter is None:
            logger.debug("Dropping %s: counter-asset amount not found", event.origin_id)
            return None

        token = self._transfer_asset(transfer, event)
        base = self._transfer_asset(counter, event)
        if is_buy:
            return RawLeg(incoming=token, outgoing=base, event=event, wallet=wallet, transfers=(transfer, counter))
        return RawLeg(incoming=base, outgoing=token, event=event, wallet=wallet, transfers=(transfer, counter))

    def _relayer_counter(
        self,
        stable: Sequence[TokenTransfer],
        is_buy: bool,
        account: str | None,
    ) -> TokenTransfer | None:
        if account:
            if is_buy:
                matches = [t for t in stable if _addr(t.sender) == account]
            else:
                matches = [t for t in stable if _addr(t.receiver) == account]
            if matches:
                return matches[0] if is_buy else matches[-1]
        if not stable:
            return None
        return stable[0] if is_buy else stable[-1]

    def _largest_wrapped_native(self, transfers: Sequence[TokenTransfer]) -> TokenTransfer | None:
        wrapped = [t for t in transfers if t.amount > 0 and self._registry.is_wrapped_native(t.asset_id)]
        if not wrapped:
            return None
        return max(wrapped, key=lambda t: t.amount)

    def _looks_like_airdrop(self, event: RawEvent, transfer: TokenTransfer) -> bool:
        return (
            len(event.token_transfers) == 1
            and (event.method or "") in self._settings.airdrop_methods
            and transfer.amount <= self._settings.airdrop_max_amount
        )

    # Helpers

    def _wallet_side_count(self, event: RawEvent, wallet: str) -> int:
        me = _addr(wallet)
        return sum(1 for t in event.token_transfers if me in (_addr(t.sender), _addr(t.receiver)))

    def _transfer_asset(self, transfer: TokenTransfer, event: RawEvent) -> AssetAmount:
        symbol = transfer.symbol or transfer.name
        if not symbol:
            symbol = self._registry.base_symbol_for_contract(transfer.asset_id) or UNKNOWN_SYMBOL
        return AssetAmount(
            symbol=symbol,
            amount=transfer.amount,
            contract_id=transfer.asset_id,
            name=transfer.name,
            decimals=transfer.decimals,
        )

    def _is_base_transfer(self, transfer: TokenTransfer) -> bool:
        return self._registry.is_base(transfer.symbol, transfer.asset_id)

    def _is_stable_transfer(self, transfer: TokenTransfer) -> bool:
        symbol = transfer.symbol or self._registry.base_symbol_for_contract(transfer.asset_id)
        return self._registry.is_stablecoin(symbol)

    def _looks_like_fee(self, amount: Decimal) -> bool:
        return abs(amount - self._settings.platform_fee_usd) <= Decimal("0.01") or amount <= 1

    def _infer_unknown_native(self, leg: RawLeg) -> RawLeg:
        if not (leg.incoming.is_unknown and leg.outgoing.is_unknown):
            return leg
        ceiling = self._settings.unknown_native_ceiling
        floor = self._settings.unknown_token_floor
        native = self._registry.native_symbol(leg.event.chain)
        if leg.outgoing.amount < ceiling and leg.incoming.amount > floor:
            logger.debug("Treating small outgoing side of %s as %s", leg.origin_id, native)
            return RawLeg(
                incoming=leg.incoming,
                outgoing=AssetAmount(symbol=native, amount=leg.outgoing.amount),
                event=leg.event,
                wallet=leg.wallet,
                transfers=leg.transfers,
                observed=leg.observed,
            )
        if leg.incoming.amount < ceiling and leg.outgoing.amount > floor:
            logger.debug("Treating small incoming side of %s as %s", leg.origin_id, native)
            return RawLeg(
                incoming=AssetAmount(symbol=native, amount=leg.incoming.amount),
                outgoing=leg.outgoing,
                event=leg.event,
                wallet=leg.wallet,
                transfers=leg.transfers,
                observed=leg.observed,
            )
        return leg


__all__ = ["EventNormalizer"]
