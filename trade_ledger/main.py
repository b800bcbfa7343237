"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from trade_ledger.api.dependencies import LedgerServices
from trade_ledger.api.routes import api_router
from trade_ledger.config import BASE, SOLANA, LedgerSettings, get_settings
from trade_ledger.core.logging import setup_logging
from trade_ledger.core.telemetry import setup_telemetry
from trade_ledger.db.init import init_database
from trade_ledger.db.session import build_session_factory, get_engine
from trade_ledger.engine import AssetRegistry
from trade_ledger.providers import BlockscoutClient, CompositeMetadataSource, DexScreenerClient, HeliusClient
from trade_ledger.providers.feeds import EventFeed, MetadataSource
from trade_ledger.providers.http import JsonClient
from trade_ledger.services.enrichment import TokenEnricher
from trade_ledger.services.repository import SqlLedgerRepository
from trade_ledger.services.settings_store import SqlKeyValueStore
from trade_ledger.services.sync import SyncCoordinator
from trade_ledger.services.watchlist import WalletWatchlist

logger = logging.getLogger(__name__)


def build_services(settings: LedgerSettings, engine: AsyncEngine) -> LedgerServices:
    """Wire the SQL-backed repository, indexers and price source."""

    session_factory = build_session_factory(engine)
    repository = SqlLedgerRepository(session_factory, tolerance=settings.value_tolerance)
    watchlist = WalletWatchlist(SqlKeyValueStore(session_factory))

    clients: list[JsonClient] = []
    feeds: dict[str, EventFeed] = {}
    metadata_sources: list[MetadataSource] = []

    dexscreener = DexScreenerClient.from_settings(settings)
    clients.append(dexscreener)
    metadata_sources.append(dexscreener)

    if settings.helius_api_key:
        helius = HeliusClient.from_settings(settings)
        clients.append(helius)
        feeds[SOLANA] = helius
        metadata_sources.append(helius)
    else:
        logger.warning("HELIUS_API_KEY not configured; Solana wallets will not sync")

    blockscout = BlockscoutClient.from_settings(settings)
    clients.append(blockscout)
    feeds[BASE] = blockscout

    coordinator = SyncCoordinator(
        settings=settings,
        repository=repository,
        watchlist=watchlist,
        feeds=feeds,
        price_source=dexscreener,
        enricher=TokenEnricher(CompositeMetadataSource(*metadata_sources)),
        registry=AssetRegistry.from_settings(settings),
    )
    return LedgerServices(
        settings=settings,
        repository=repository,
        watchlist=watchlist,
        coordinator=coordinator,
        price_source=dexscreener,
        clients=clients,
    )


@asynccontextmanager
async def _lifespan(app: FastAPI, services: LedgerServices, engine: AsyncEngine | None):
    if engine is not None:
        await init_database(engine)
    if services.settings.sync_enabled:
        services.coordinator.start()
    try:
        yield
    finally:
        await services.aclose()


def create_app(services: LedgerServices | None = None, engine: AsyncEngine | None = None) -> FastAPI:
    """Build the application; pass ``services`` to run against in-memory stores."""

    settings = services.settings if services is not None else get_settings()
    setup_logging(settings.log_level.upper())
    logger.debug("Loaded settings: %s", settings.dict_for_logging())
    if services is None:
        engine = engine or get_engine()
        services = build_services(settings, engine)
    service_container = services

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lambda app: _lifespan(app, service_container, engine),
    )
    app.state.services = service_container
    setup_telemetry(app, settings, engine=engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["traceparent", "tracestate", "baggage", "x-request-id"],
    )
    app.include_router(api_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, object]:
        """Return service readiness metadata."""

        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "syncing": service_container.coordinator.syncing,
        }

    return app


app = create_app()
