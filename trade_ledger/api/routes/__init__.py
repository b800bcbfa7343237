"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from .entries import router as entries_router
from .maintenance import router as maintenance_router
from .positions import router as positions_router
from .sync import router as sync_router
from .wallets import router as wallets_router

api_router = APIRouter()
api_router.include_router(entries_router, prefix="/entries", tags=["entries"])
api_router.include_router(positions_router, prefix="/positions", tags=["positions"])
api_router.include_router(wallets_router, prefix="/wallets", tags=["wallets"])
api_router.include_router(sync_router, prefix="/sync", tags=["sync"])
api_router.include_router(maintenance_router, prefix="/maintenance", tags=["maintenance"])

__all__ = ["api_router"]
