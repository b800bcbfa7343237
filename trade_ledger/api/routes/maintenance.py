"""Ledger housekeeping endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from trade_ledger.api.dependencies import LedgerServices, get_services
from trade_ledger.schemas import MaintenanceResultSchema
from trade_ledger.services.maintenance import recalculate_usd_values, remove_duplicates

router = APIRouter()


@router.post("/dedupe", response_model=MaintenanceResultSchema)
async def dedupe_entries(services: LedgerServices = Depends(get_services)) -> MaintenanceResultSchema:
    removed = await remove_duplicates(services.repository, services.settings.maintenance_quantity_places)
    return MaintenanceResultSchema(updated=removed)


@router.post("/recalculate-usd", response_model=MaintenanceResultSchema)
async def recalculate_usd(services: LedgerServices = Depends(get_services)) -> MaintenanceResultSchema:
    coordinator = services.coordinator
    native_prices = await coordinator.native_prices()
    updated = await recalculate_usd_values(services.repository, coordinator.currency, native_prices)
    return MaintenanceResultSchema(updated=updated)


__all__ = ["router"]
