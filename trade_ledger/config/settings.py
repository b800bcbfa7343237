"""Application configuration and environment helpers."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SOLANA = "solana"
BASE = "base"

WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"
BASE_USDC_CONTRACT = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
BASE_USDBC_CONTRACT = "0xd9aaec86b65d86f6a7b5b1b0c42ffa531710b6ab"
BASE_WETH_CONTRACT = "0x4200000000000000000000000000000000000006"
SOLANA_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
SOLANA_USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"


class LedgerSettings(BaseSettings):
    """Configuration options for the trade ledger service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="Trade Ledger")
    log_level: str = Field(default="INFO")
    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:4200", "http://127.0.0.1:4200"],
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./trade_ledger.db",
        description="SQLAlchemy database URL.",
    )

    helius_api_key: str | None = Field(default=None)
    helius_base_url: str = Field(default="https://api.helius.xyz")
    blockscout_base_url: str = Field(default="https://base.blockscout.com")
    dexscreener_base_url: str = Field(default="https://api.dexscreener.com")
    http_timeout_seconds: float = Field(default=20.0)

    sync_enabled: bool = Field(default=True)
    sync_interval_seconds: float = Field(default=60.0, gt=0)
    sync_initial_delay_seconds: float = Field(default=2.0, ge=0)
    page_size: int = Field(default=100, gt=0)
    max_pages: dict[str, int] = Field(default_factory=lambda: {SOLANA: 100, BASE: 10})
    detail_request_delay_seconds: float = Field(default=0.2, ge=0)

    metadata_batch_size: int = Field(default=30, gt=0)
    metadata_batch_delay_seconds: float = Field(default=0.5, ge=0)

    base_currencies: list[str] = Field(
        default_factory=lambda: [
            "SOL", "USDC", "USDT", "PYUSD", "DAI", "USD1", "WETH", "ETH", "USDbC", "WSOL",
        ]
    )
    stablecoins: list[str] = Field(
        default_factory=lambda: [
            "USDC", "USDT", "PYUSD", "DAI", "USD1", "BUSD", "TUSD", "FRAX", "USDbC",
        ]
    )
    native_assets: dict[str, str] = Field(
        default_factory=lambda: {"SOL": "SOL", "WSOL": "SOL", "WETH": "ETH", "ETH": "ETH"},
        description="Native or wrapped-native symbol mapped to the symbol it is priced as.",
    )
    chain_native_symbol: dict[str, str] = Field(
        default_factory=lambda: {SOLANA: "SOL", BASE: "ETH"}
    )
    relayer_chains: list[str] = Field(default_factory=lambda: [BASE])
    routing_tokens: list[str] = Field(
        default_factory=lambda: ["BONK", "RAY", "SRM", "ORCA", "MNGO", "WSOL"]
    )
    base_contracts: dict[str, str] = Field(
        default_factory=lambda: {
            WRAPPED_SOL_MINT.lower(): "SOL",
            SOLANA_USDC_MINT.lower(): "USDC",
            SOLANA_USDT_MINT.lower(): "USDT",
            BASE_USDC_CONTRACT: "USDC",
            BASE_USDBC_CONTRACT: "USDbC",
            BASE_WETH_CONTRACT: "WETH",
        },
        description="Known base-currency contract ids (lower-cased) and their symbols.",
    )
    wrapped_native_contracts: list[str] = Field(
        default_factory=lambda: [WRAPPED_SOL_MINT.lower(), BASE_WETH_CONTRACT]
    )

    native_dust_floor: Decimal = Field(default=Decimal("0.02"))
    platform_fee_usd: Decimal = Field(default=Decimal("0.95"))
    platform_fee_tolerance: Decimal = Field(default=Decimal("0.1"))
    minimum_trade_amount: Decimal = Field(default=Decimal("0.01"))
    unknown_native_ceiling: Decimal = Field(default=Decimal("500"))
    unknown_token_floor: Decimal = Field(default=Decimal("1000"))
    native_transfer_floor: Decimal = Field(default=Decimal("0.00001"))
    airdrop_max_amount: Decimal = Field(default=Decimal("100"))
    airdrop_methods: list[str] = Field(default_factory=lambda: ["multicall", "batchTransfer"])

    dedup_quantity_places: int = Field(default=4, ge=0)
    maintenance_quantity_places: int = Field(default=2, ge=0)
    value_tolerance: Decimal = Field(default=Decimal("0.000001"))
    repair_value_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        description="Relative change in value above which a repair is logged as conflicting.",
    )

    fallback_native_prices: dict[str, Decimal] = Field(
        default_factory=lambda: {"SOL": Decimal("100"), "ETH": Decimal("3000")}
    )
    native_price_contracts: dict[str, str] = Field(
        default_factory=lambda: {"SOL": WRAPPED_SOL_MINT, "ETH": BASE_WETH_CONTRACT},
        description="Contract quoted to obtain each native USD spot price.",
    )

    initial_capital: Decimal | None = Field(default=None)
    wallet_balance: Decimal | None = Field(default=None)

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="trade-ledger")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"helius_api_key"}
        return {k: ("***" if k in hidden else v) for k, v in self.model_dump().items()}

    def max_pages_for(self, chain: str) -> int:
        return self.max_pages.get(chain, 10)


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> LedgerSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return LedgerSettings(**overrides)
    return LedgerSettings()


__all__ = [
    "BASE",
    "BASE_USDBC_CONTRACT",
    "BASE_USDC_CONTRACT",
    "BASE_WETH_CONTRACT",
    "LedgerSettings",
    "SOLANA",
    "SOLANA_USDC_MINT",
    "SOLANA_USDT_MINT",
    "WRAPPED_SOL_MINT",
    "get_settings",
]
