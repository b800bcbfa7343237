"""Configuration package for the trade ledger service."""

from .settings import (
    BASE,
    BASE_USDBC_CONTRACT,
    BASE_USDC_CONTRACT,
    BASE_WETH_CONTRACT,
    SOLANA,
    SOLANA_USDC_MINT,
    SOLANA_USDT_MINT,
    WRAPPED_SOL_MINT,
    LedgerSettings,
    get_settings,
)

__all__ = [
    "BASE",
    "BASE_USDBC_CONTRACT",
    "BASE_USDC_CONTRACT",
    "BASE_WETH_CONTRACT",
    "SOLANA",
    "SOLANA_USDC_MINT",
    "SOLANA_USDT_MINT",
    "WRAPPED_SOL_MINT",
    "LedgerSettings",
    "get_settings",
]
