"""Sync coordinator tests against in-memory stores and scripted feeds."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from builders import (
    TOKX_MINT,
    WALLET,
    StubClient,
    StubResponse,
    blockscout_item,
    buy_tokx,
    sell_tokx,
    swap_event,
    token,
    ts,
)
from trade_ledger.config import BASE, BASE_USDC_CONTRACT, SOLANA, SOLANA_USDC_MINT, SOLANA_USDT_MINT
from trade_ledger.core.telemetry import LedgerMetrics
from trade_ledger.models import Direction
from trade_ledger.providers import BlockscoutClient, EventPage, IndexerError, PriceSourceError, StaticPriceSource
from trade_ledger.services.repository import InMemoryLedgerRepository
from trade_ledger.services.settings_store import InMemoryKeyValueStore
from trade_ledger.services.sync import SyncCoordinator
from trade_ledger.services.watchlist import WalletWatchlist


class ScriptedFeed:
    """Serves pre-built pages keyed by cursor; ``None`` is the first page."""

    def __init__(self, pages: dict[object, EventPage], failures: dict[object, Exception] | None = None) -> None:
        self.pages = pages
        self.failures = failures or {}
        self.calls: list[tuple[str, object]] = []

    async def fetch_page(self, address: str, cursor=None) -> EventPage:
        self.calls.append((address, cursor))
        if cursor in self.failures:
            raise self.failures[cursor]
        return self.pages.get(cursor, EventPage())


class EndlessFeed:
    def __init__(self) -> None:
        self.calls = 0

    async def fetch_page(self, address: str, cursor=None) -> EventPage:
        self.calls += 1
        return EventPage(events=[], next_cursor=f"page-{self.calls}")


class BlockingFeed:
    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_page(self, address: str, cursor=None) -> EventPage:
        self.entered.set()
        await self.release.wait()
        return EventPage()


def _history_page() -> EventPage:
    # Newest first, as the indexers return them.
    return EventPage(
        events=[
            sell_tokx("sig-sell", 1_000_000, "3.0", when=ts(2)),
            buy_tokx("sig-buy", 1_000_000, "2.0", when=ts(1)),
        ]
    )


async def _coordinator(
    settings, feeds, repository=None, wallets=((WALLET, SOLANA),), metrics=None
) -> SyncCoordinator:
    watchlist = WalletWatchlist(InMemoryKeyValueStore())
    for address, chain in wallets:
        await watchlist.add(address, chain)
    return SyncCoordinator(
        settings=settings,
        repository=repository or InMemoryLedgerRepository(),
        watchlist=watchlist,
        feeds=feeds,
        price_source=StaticPriceSource(native={"SOL": "100"}),
        metrics=metrics,
    )


@pytest.mark.asyncio
async def test_sync_records_buy_and_sell_with_usd_values(settings):
    repository = InMemoryLedgerRepository()
    coordinator = await _coordinator(settings, {SOLANA: ScriptedFeed({None: _history_page()})}, repository)

    report = await coordinator.run_once()

    assert report.inserted == 2
    entries = sorted(await repository.list(), key=lambda e: e.occurred_at)
    buy, sell = entries
    assert buy.direction is Direction.BUY
    assert buy.quantity == Decimal("1000000")
    assert buy.total_value_base == Decimal("2.0")
    assert buy.base_currency_symbol == "SOL"
    assert sell.direction is Direction.SELL
    assert sell.total_value_usd == Decimal("300")
    assert coordinator.cursor_for(WALLET, SOLANA).last_seen_origin_id == "sig-sell"


@pytest.mark.asyncio
async def test_resync_from_scratch_keeps_ledger_size(settings):
    repository = InMemoryLedgerRepository()
    first = await _coordinator(settings, {SOLANA: ScriptedFeed({None: _history_page()})}, repository)
    await first.run_once()

    # A new coordinator has no cursor, so it re-reads the whole history.
    second = await _coordinator(settings, {SOLANA: ScriptedFeed({None: _history_page()})}, repository)
    report = await second.run_once()

    assert report.inserted == 0
    assert len(await repository.list()) == 2


@pytest.mark.asyncio
async def test_cursor_stops_paging_at_last_seen_event(settings):
    feed = ScriptedFeed({None: _history_page()})
    coordinator = await _coordinator(settings, {SOLANA: feed})
    await coordinator.run_once()

    newer = buy_tokx("sig-new", 500, "1", when=ts(3))
    feed.pages[None] = EventPage(events=[newer, *_history_page().events], next_cursor="older")
    report = await coordinator.run_once()

    assert report.addresses[0].events == 1
    assert report.inserted == 1
    assert feed.calls[-1] == (WALLET, None)
    assert coordinator.cursor_for(WALLET, SOLANA).last_seen_origin_id == "sig-new"


@pytest.mark.asyncio
async def test_paging_is_bounded_per_chain(settings):
    settings = settings.model_copy(update={"max_pages": {SOLANA: 3, BASE: 2}})
    feed = EndlessFeed()
    coordinator = await _coordinator(settings, {SOLANA: feed})

    report = await coordinator.run_once()

    assert feed.calls == 3
    assert report.addresses[0].pages == 3


@pytest.mark.asyncio
async def test_page_failure_keeps_earlier_pages_but_not_cursor(settings):
    first_page = EventPage(events=[buy_tokx("sig-1", 100, "1", when=ts(1))], next_cursor="p2")
    feed = ScriptedFeed({None: first_page}, failures={"p2": IndexerError("boom", status_code=500)})
    coordinator = await _coordinator(settings, {SOLANA: feed})

    report = await coordinator.run_once()

    assert report.inserted == 1
    assert report.addresses[0].error == "boom"
    assert coordinator.cursor_for(WALLET, SOLANA) is None


@pytest.mark.asyncio
async def test_transaction_with_failed_detail_is_retried_on_next_pass(settings):
    evm_wallet = "0xabc0000000000000000000000000000000000001"
    smart_account = "0x5afe000000000000000000000000000000000002"
    pool = "0x9000000000000000000000000000000000000009"
    receipt = blockscout_item("0xtx1", "TOKB", "5000000000000000000000", pool, evm_wallet, "0xtokb")
    detail = {
        "token_transfers": [
            {
                "from": {"hash": smart_account},
                "to": {"hash": pool},
                "token": {"address": BASE_USDC_CONTRACT, "symbol": "USDC", "decimals": "6"},
                "total": {"value": "250000000", "decimals": "6"},
            }
        ],
        "decoded_input": {"parameters": [{"name": "user", "value": smart_account}]},
    }
    detail_up = False

    def handler(method, url, call):
        if "/addresses/" in url:
            return StubResponse({"items": [receipt], "next_page_params": None})
        if not detail_up:
            return StubResponse({}, status_code=503)
        return StubResponse(detail)

    feed = BlockscoutClient(detail_delay_seconds=0, client=StubClient(handler))
    repository = InMemoryLedgerRepository()
    coordinator = await _coordinator(settings, {BASE: feed}, repository, wallets=((evm_wallet, BASE),))

    first = await coordinator.run_once()

    assert first.addresses[0].deferred == 1
    assert first.inserted == 0
    assert coordinator.cursor_for(evm_wallet, BASE) is None

    detail_up = True
    second = await coordinator.run_once()

    assert second.inserted == 1
    [stored] = await repository.list()
    assert stored.origin_id == "0xtx1"
    assert stored.direction is Direction.BUY
    assert stored.base_currency_symbol == "USDC"
    assert stored.total_value_base == Decimal("250")
    assert coordinator.cursor_for(evm_wallet, BASE).last_seen_origin_id == "0xtx1"


def _metric_points(reader: InMemoryMetricReader) -> dict[tuple[str, frozenset], object]:
    points: dict[tuple[str, frozenset], object] = {}
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                for point in metric.data.data_points:
                    points[(metric.name, frozenset(point.attributes.items()))] = point
    return points


@pytest.mark.asyncio
async def test_sync_outcomes_are_recorded_as_metrics(settings):
    reader = InMemoryMetricReader()
    metrics = LedgerMetrics(MeterProvider(metric_readers=[reader]).get_meter("test"))
    stable_swap = swap_event(
        "sig-stable",
        token_inputs=(token("USDC", 100, SOLANA_USDC_MINT),),
        token_outputs=(token("USDT", "99.9", SOLANA_USDT_MINT),),
        when=ts(3),
    )
    page = EventPage(events=[stable_swap, *_history_page().events])
    coordinator = await _coordinator(settings, {SOLANA: ScriptedFeed({None: page})}, metrics=metrics)

    await coordinator.run_once()

    points = _metric_points(reader)
    inserted = points[("ledger.entries", frozenset({"outcome": "inserted", "chain": SOLANA}.items()))]
    assert inserted.value == 2
    dropped = points[("ledger.events.dropped", frozenset({"stage": "classify", "chain": SOLANA}.items()))]
    assert dropped.value == 1
    pages = points[("ledger.indexer.pages", frozenset({"chain": SOLANA, "result": "ok"}.items()))]
    assert pages.value == 1
    duration = points[("ledger.sync.duration", frozenset({"trigger": "manual", "skipped": False}.items()))]
    assert duration.count == 1


@pytest.mark.asyncio
async def test_failure_on_one_address_does_not_stop_others(settings):
    other = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"

    class SplitFeed:
        async def fetch_page(self, address, cursor=None):
            if address == other:
                raise RuntimeError("unexpected")
            return _history_page()

    coordinator = await _coordinator(settings, {SOLANA: SplitFeed()}, wallets=((WALLET, SOLANA), (other, SOLANA)))

    report = await coordinator.run_once()

    by_address = {a.address: a for a in report.addresses}
    assert by_address[WALLET].inserted == 2
    assert by_address[other].error == "unexpected"


@pytest.mark.asyncio
async def test_stablecoin_swaps_and_unsupported_chains_are_skipped(settings):
    stable_swap = swap_event(
        "sig-stable",
        token_inputs=(token("USDC", 100, SOLANA_USDC_MINT),),
        token_outputs=(token("USDT", "99.9", SOLANA_USDT_MINT),),
    )
    feed = ScriptedFeed({None: EventPage(events=[stable_swap])})
    evm_wallet = "0x1111111111111111111111111111111111111111"
    coordinator = await _coordinator(settings, {SOLANA: feed}, wallets=((WALLET, SOLANA), (evm_wallet, BASE)))

    report = await coordinator.run_once()

    by_chain = {a.chain: a for a in report.addresses}
    assert by_chain[SOLANA].dropped == 1
    assert by_chain[SOLANA].inserted == 0
    assert "no indexer" in by_chain[BASE].error


@pytest.mark.asyncio
async def test_concurrent_trigger_is_a_noop_while_syncing(settings):
    feed = BlockingFeed()
    coordinator = await _coordinator(settings, {SOLANA: feed})

    running = asyncio.create_task(coordinator.run_once(trigger="scheduled"))
    await feed.entered.wait()
    assert coordinator.syncing is True

    skipped = await coordinator.trigger()
    feed.release.set()
    finished = await running

    assert skipped.skipped is True
    assert finished.skipped is False
    assert coordinator.syncing is False
    assert coordinator.last_report is finished


@pytest.mark.asyncio
async def test_price_source_failure_falls_back_to_configured_prices(settings):
    class BrokenPrices(StaticPriceSource):
        async def native_prices(self):
            raise PriceSourceError("down")

    watchlist = WalletWatchlist(InMemoryKeyValueStore())
    coordinator = SyncCoordinator(
        settings=settings,
        repository=InMemoryLedgerRepository(),
        watchlist=watchlist,
        feeds={},
        price_source=BrokenPrices(),
    )

    prices = await coordinator.native_prices()

    assert prices["SOL"] == Decimal("100")
    assert prices["ETH"] == Decimal("3000")


@pytest.mark.asyncio
async def test_periodic_loop_runs_and_stops(settings):
    settings = settings.model_copy(update={"sync_interval_seconds": 0.01, "sync_initial_delay_seconds": 0})
    feed = ScriptedFeed({None: _history_page()})
    coordinator = await _coordinator(settings, {SOLANA: feed})

    coordinator.start()
    for _ in range(100):
        if coordinator.last_report is not None:
            break
        await asyncio.sleep(0.01)
    await coordinator.stop()

    assert coordinator.last_report is not None
    assert coordinator.last_report.trigger == "scheduled"
