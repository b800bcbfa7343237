"""Clients for indexers, price quotes and token metadata."""

from .blockscout import BlockscoutClient
from .dexscreener import DexScreenerClient
from .errors import IndexerAuthError, IndexerError, PriceSourceError, ProviderError
from .feeds import (
    CompositeMetadataSource,
    EventFeed,
    EventPage,
    MetadataSource,
    PriceSource,
    StaticPriceSource,
    TokenMetadata,
)
from .helius import HeliusClient

__all__ = [
    "BlockscoutClient",
    "CompositeMetadataSource",
    "DexScreenerClient",
    "EventFeed",
    "EventPage",
    "HeliusClient",
    "IndexerAuthError",
    "IndexerError",
    "MetadataSource",
    "PriceSource",
    "PriceSourceError",
    "ProviderError",
    "StaticPriceSource",
    "TokenMetadata",
]
