"""Periodic and manual ledger synchronisation for watched wallets.

One pass walks every watched address concurrently: page through the
indexer, classify and value each event, then reconcile the candidates with
the stored ledger. Ledger writes are serialised across addresses, and a
pass that is already running turns any further trigger into a no-op.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from opentelemetry import trace

from trade_ledger.config import LedgerSettings
from trade_ledger.core.telemetry import LedgerMetrics
from trade_ledger.engine import (
    AssetRegistry,
    CurrencyNormalizer,
    Deduplicator,
    DirectionClassifier,
    EventNormalizer,
    ReconcilePlan,
    RoutingFilter,
    SyncContext,
)
from trade_ledger.engine.dedup import EntryPatch
from trade_ledger.models import LedgerEntry, LedgerInvariantError, RawEvent, SyncCursor, WatchedWallet
from trade_ledger.providers.errors import ProviderError
from trade_ledger.providers.feeds import EventFeed, PriceSource
from trade_ledger.services.enrichment import TokenEnricher
from trade_ledger.services.repository import LedgerRepository
from trade_ledger.services.watchlist import WalletWatchlist

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AddressReport:
    address: str
    chain: str
    pages: int = 0
    events: int = 0
    dropped: int = 0
    inserted: int = 0
    repaired: int = 0
    superseded: int = 0
    skipped: int = 0
    rejected: int = 0
    deferred: int = 0
    error: str | None = None


@dataclass
class SyncReport:
    trigger: str
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None
    skipped: bool = False
    addresses: list[AddressReport] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return sum(a.inserted for a in self.addresses)

    @property
    def repaired(self) -> int:
        return sum(a.repaired for a in self.addresses)

    @property
    def superseded(self) -> int:
        return sum(a.superseded for a in self.addresses)

    @property
    def rejected(self) -> int:
        return sum(a.rejected for a in self.addresses)


class SyncCoordinator:
    def __init__(
        self,
        *,
        settings: LedgerSettings,
        repository: LedgerRepository,
        watchlist: WalletWatchlist,
        feeds: Mapping[str, EventFeed],
        price_source: PriceSource | None = None,
        enricher: TokenEnricher | None = None,
        registry: AssetRegistry | None = None,
        metrics: LedgerMetrics | None = None,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._watchlist = watchlist
        self._feeds = dict(feeds)
        self._price_source = price_source
        self._enricher = enricher
        self._registry = registry or AssetRegistry.from_settings(settings)
        self._metrics = metrics or LedgerMetrics()

        self._normalizer = EventNormalizer(self._registry, settings)
        self._routing = RoutingFilter(self._registry, settings)
        self._classifier = DirectionClassifier(self._registry)
        self._currency = CurrencyNormalizer(self._registry)
        self._dedup = Deduplicator(settings.dedup_quantity_places, settings.repair_value_tolerance)

        self._cursors: dict[tuple[str, str], SyncCursor] = {}
        self._syncing = False
        self._write_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self.last_report: SyncReport | None = None

    @property
    def syncing(self) -> bool:
        return self._syncing

    @property
    def currency(self) -> CurrencyNormalizer:
        return self._currency

    @property
    def registry(self) -> AssetRegistry:
        return self._registry

    def cursor_for(self, address: str, chain: str) -> SyncCursor | None:
        return self._cursors.get((address, chain))

    async def trigger(self) -> SyncReport:
        """Manual entry point; shares the single-flight latch with the timer."""

        return await self.run_once(trigger="manual")

    async def run_once(self, trigger: str = "manual") -> SyncReport:
        if self._syncing:
            logger.info("Sync already in progress; ignoring %s trigger", trigger)
            self._metrics.sync_finished(trigger, 0.0, skipped=True)
            return SyncReport(trigger=trigger, skipped=True, finished_at=_utcnow())

        self._syncing = True
        started = time.monotonic()
        report = SyncReport(trigger=trigger)
        try:
            with tracer.start_as_current_span("ledger.sync") as span:
                span.set_attribute("ledger.sync.trigger", trigger)
                wallets = await self._watchlist.list()
                if not wallets:
                    logger.info("No watched wallets configured; nothing to sync")
                native_prices = await self.native_prices()
                results = await asyncio.gather(
                    *(self._sync_address(wallet, native_prices) for wallet in wallets),
                    return_exceptions=True,
                )
                for wallet, result in zip(wallets, results):
                    if isinstance(result, BaseException):
                        logger.error(
                            "Sync failed for %s on %s",
                            wallet.address,
                            wallet.chain,
                            exc_info=(type(result), result, result.__traceback__),
                        )
                        report.addresses.append(
                            AddressReport(address=wallet.address, chain=wallet.chain, error=str(result))
                        )
                    else:
                        report.addresses.append(result)
                if self._enricher is not None:
                    await self._enricher.enrich_existing(self._repository)
                span.set_attribute("ledger.sync.inserted", report.inserted)
        finally:
            self._syncing = False
            self._metrics.sync_finished(trigger, time.monotonic() - started)

        report.finished_at = _utcnow()
        self.last_report = report
        logger.info(
            "Sync (%s) finished: %d inserted, %d repaired, %d superseded, %d rejected",
            trigger,
            report.inserted,
            report.repaired,
            report.superseded,
            report.rejected,
        )
        return report

    async def native_prices(self) -> dict[str, Decimal]:
        prices = {k.upper(): v for k, v in self._settings.fallback_native_prices.items()}
        if self._price_source is None:
            return prices
        try:
            prices.update(await self._price_source.native_prices())
        except ProviderError:
            logger.warning("Native price refresh failed; using fallback prices %s", prices, exc_info=True)
        return prices

    async def _sync_address(self, wallet: WatchedWallet, native_prices: dict[str, Decimal]) -> AddressReport:
        report = AddressReport(address=wallet.address, chain=wallet.chain)
        feed = self._feeds.get(wallet.chain)
        if feed is None:
            logger.warning("No indexer configured for chain %s; skipping %s", wallet.chain, wallet.address)
            report.error = f"no indexer for chain {wallet.chain}"
            return report

        with tracer.start_as_current_span("ledger.sync.address") as span:
            span.set_attribute("ledger.address", wallet.address)
            span.set_attribute("ledger.chain", wallet.chain)

            events, complete = await self._collect_events(feed, wallet, report)
            report.events = len(events)
            context = SyncContext(wallet=wallet.address, chain=wallet.chain, native_prices=dict(native_prices))
            candidates = self._build_candidates(events, context, report)
            if self._enricher is not None and candidates:
                candidates = await self._enricher.enrich_candidates(candidates)
            candidates = self._validated(candidates, report)

            async with self._write_lock:
                existing = await self._repository.list()
                plan = self._dedup.reconcile(candidates, existing)
                await self._apply(plan, report)

            if complete and events:
                self._cursors[(wallet.address, wallet.chain)] = SyncCursor(
                    address=wallet.address,
                    chain=wallet.chain,
                    last_seen_origin_id=events[0].origin_id,
                )
        return report

    async def _collect_events(
        self,
        feed: EventFeed,
        wallet: WatchedWallet,
        report: AddressReport,
    ) -> tuple[list[RawEvent], bool]:
        """Page newest-to-oldest; returns the events and whether the cursor may advance.

        Incomplete events are held back, and their presence keeps the cursor
        where it was so the next pass fetches them again.
        """

        cursor = self._cursors.get((wallet.address, wallet.chain))
        last_seen = cursor.last_seen_origin_id if cursor else None
        max_pages = self._settings.max_pages_for(wallet.chain)
        page_cursor: Any | None = None
        events: list[RawEvent] = []

        for page_number in range(1, max_pages + 1):
            try:
                page = await feed.fetch_page(wallet.address, page_cursor)
            except ProviderError as exc:
                logger.warning("Fetching page %d for %s failed: %s", page_number, wallet.address, exc)
                self._metrics.page(wallet.chain, ok=False)
                report.error = str(exc)
                self._metrics.deferred(report.deferred, wallet.chain)
                return events, False
            self._metrics.page(wallet.chain)
            report.pages += 1

            reached_cursor = False
            for event in page.events:
                if last_seen is not None and event.origin_id == last_seen:
                    reached_cursor = True
                    break
                if not event.complete:
                    logger.info("Deferring incomplete event %s for %s", event.origin_id, wallet.address)
                    report.deferred += 1
                    continue
                events.append(event)
            if reached_cursor or page.next_cursor is None:
                break
            page_cursor = page.next_cursor
        else:
            logger.info("Stopped paging %s after %d pages", wallet.address, max_pages)

        self._metrics.deferred(report.deferred, wallet.chain)
        return events, report.deferred == 0

    def _build_candidates(
        self,
        events: list[RawEvent],
        context: SyncContext,
        report: AddressReport,
    ) -> list[LedgerEntry]:
        candidates: list[LedgerEntry] = []
        # Oldest first so abstracted-account discovery sees the earliest buy.
        for event in sorted(events, key=lambda e: e.timestamp):
            if event.origin_id in context.seen_origin_ids:
                continue
            context.seen_origin_ids.add(event.origin_id)

            leg = self._normalizer.normalize(event, context.wallet, context)
            if leg is None:
                self._drop("normalize", context, report)
                continue
            if not self._routing.accept(leg):
                self._drop("routing", context, report)
                continue
            classification = self._classifier.classify(leg)
            if not classification.accepted:
                self._drop("classify", context, report)
                continue
            trade = self._currency.value(classification, context.native_prices)
            candidates.append(
                self._currency.to_entry(
                    trade,
                    origin_id=event.origin_id,
                    occurred_at=event.timestamp,
                    chain=event.chain,
                    venue=event.venue,
                )
            )
        return candidates

    def _drop(self, stage: str, context: SyncContext, report: AddressReport) -> None:
        report.dropped += 1
        self._metrics.dropped(stage, context.chain)

    def _validated(self, candidates: list[LedgerEntry], report: AddressReport) -> list[LedgerEntry]:
        valid = []
        for entry in candidates:
            try:
                entry.validate(self._settings.value_tolerance)
            except LedgerInvariantError as exc:
                logger.warning("Rejecting entry for %s: %s", entry.origin_id, exc)
                report.rejected += 1
                continue
            valid.append(entry)
        return valid

    async def _apply(self, plan: ReconcilePlan, report: AddressReport) -> None:
        if plan.inserts:
            await self._repository.insert_many(plan.inserts)
            report.inserted += len(plan.inserts)
        for patch in plan.repairs:
            if await self._patch(patch, report):
                report.repaired += 1
        for patch in plan.supersessions:
            if await self._patch(patch, report):
                report.superseded += 1
        report.skipped += len(plan.skipped)
        for outcome in ("inserted", "repaired", "superseded", "skipped", "rejected"):
            self._metrics.entries(outcome, getattr(report, outcome), report.chain)

    async def _patch(self, patch: EntryPatch, report: AddressReport) -> bool:
        try:
            await self._repository.patch(patch.entry_id, patch.changes)
        except LedgerInvariantError as exc:
            logger.warning("Rejecting update to %s: %s", patch.entry_id, exc)
            report.rejected += 1
            return False
        return True

    # Scheduling

    def start(self) -> None:
        """Begin periodic syncing on the running loop."""

        if self._task is not None and not self._task.done():
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_periodically(), name="ledger-sync")
        logger.info(
            "Ledger sync scheduled every %ss (first run in %ss)",
            self._settings.sync_interval_seconds,
            self._settings.sync_initial_delay_seconds,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        assert self._stop_event is not None
        self._stop_event.set()
        await self._task
        self._task = None

    async def _run_periodically(self) -> None:
        assert self._stop_event is not None
        delay = self._settings.sync_initial_delay_seconds
        while True:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.run_once(trigger="scheduled")
            except Exception:
                logger.exception("Scheduled ledger sync failed")
            delay = self._settings.sync_interval_seconds


__all__ = ["AddressReport", "SyncCoordinator", "SyncReport"]
