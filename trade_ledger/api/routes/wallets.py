"""Manage the watched wallet list."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from trade_ledger.api.dependencies import LedgerServices, get_services
from trade_ledger.schemas import WalletCreateRequest, WalletSchema

router = APIRouter()


@router.get("", response_model=list[WalletSchema])
async def list_wallets(services: LedgerServices = Depends(get_services)) -> list[WalletSchema]:
    return [WalletSchema.from_wallet(w) for w in await services.watchlist.list()]


@router.post("", response_model=WalletSchema, status_code=status.HTTP_201_CREATED)
async def add_wallet(
    payload: WalletCreateRequest,
    services: LedgerServices = Depends(get_services),
) -> WalletSchema:
    try:
        wallet = await services.watchlist.add(payload.address, payload.chain, payload.label)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return WalletSchema.from_wallet(wallet)


@router.delete("/{address}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_wallet(
    address: str,
    chain: str | None = Query(default=None),
    services: LedgerServices = Depends(get_services),
) -> Response:
    removed = await services.watchlist.remove(address, chain)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wallet not watched")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
