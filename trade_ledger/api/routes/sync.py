"""Trigger ledger synchronisation and inspect its state."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import JSONResponse

from trade_ledger.api.dependencies import LedgerServices, get_services
from trade_ledger.schemas import SyncReportSchema, SyncStatusSchema

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=SyncReportSchema)
async def trigger_sync(
    background_tasks: BackgroundTasks,
    wait: bool = Query(default=True, description="Run the pass inline and return its report"),
    services: LedgerServices = Depends(get_services),
):
    """Start a sync pass. A pass already in flight turns this into a no-op."""

    coordinator = services.coordinator
    if not wait:
        background_tasks.add_task(coordinator.trigger)
        logger.info("Manual sync scheduled in background")
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"status": "scheduled", "syncing": coordinator.syncing},
        )
    report = await coordinator.trigger()
    return SyncReportSchema.from_report(report)


@router.get("/status", response_model=SyncStatusSchema)
async def sync_status(services: LedgerServices = Depends(get_services)) -> SyncStatusSchema:
    coordinator = services.coordinator
    last = coordinator.last_report
    return SyncStatusSchema(
        syncing=coordinator.syncing,
        last_report=SyncReportSchema.from_report(last) if last is not None else None,
    )


__all__ = ["router"]
