"""Read access to stored ledger entries."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from trade_ledger.api.dependencies import LedgerServices, get_services
from trade_ledger.models import Direction
from trade_ledger.schemas import LedgerEntrySchema

router = APIRouter()


@router.get("", response_model=list[LedgerEntrySchema])
async def list_entries(
    symbol: str | None = Query(default=None),
    direction: str | None = Query(default=None, examples=["buy", "sell"]),
    limit: int = Query(default=200, ge=1, le=5000),
    services: LedgerServices = Depends(get_services),
) -> list[LedgerEntrySchema]:
    """Return entries newest first, optionally filtered by symbol or direction."""

    wanted: Direction | None = None
    if direction is not None:
        try:
            wanted = Direction(direction.lower())
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown direction {direction!r}") from exc

    entries = await services.repository.list()
    if symbol:
        entries = [e for e in entries if e.asset.symbol.upper() == symbol.upper()]
    if wanted is not None:
        entries = [e for e in entries if e.direction is wanted]
    entries.sort(key=lambda e: e.occurred_at, reverse=True)
    return [LedgerEntrySchema.from_entry(e) for e in entries[:limit]]


@router.get("/{entry_id}", response_model=LedgerEntrySchema)
async def get_entry(entry_id: str, services: LedgerServices = Depends(get_services)) -> LedgerEntrySchema:
    entry = await services.repository.get(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    return LedgerEntrySchema.from_entry(entry)


__all__ = ["router"]
