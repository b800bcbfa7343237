"""Position and portfolio reporting endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from trade_ledger.api.dependencies import LedgerServices, get_services
from trade_ledger.schemas import PortfolioSummarySchema, PositionSchema
from trade_ledger.services.reporting import build_portfolio_summary, load_positions

router = APIRouter()


async def _positions(services: LedgerServices, live: bool):
    return await load_positions(
        services.repository,
        services.registry,
        services.settings,
        services.price_source if live else None,
    )


@router.get("", response_model=list[PositionSchema])
async def list_positions(
    live: bool = Query(default=False, description="Quote current prices for unrealized P&L"),
    open_only: bool = Query(default=False),
    services: LedgerServices = Depends(get_services),
) -> list[PositionSchema]:
    positions = await _positions(services, live)
    if open_only:
        positions = [p for p in positions if p.has_open_position]
    return [PositionSchema.from_position(p) for p in positions]


@router.get("/summary", response_model=PortfolioSummarySchema)
async def portfolio_summary(
    live: bool = Query(default=False),
    services: LedgerServices = Depends(get_services),
) -> PortfolioSummarySchema:
    positions = await _positions(services, live)
    summary = build_portfolio_summary(positions, services.registry, services.settings)
    return PortfolioSummarySchema.from_summary(summary)


__all__ = ["router"]
