"""Errors raised by upstream data providers."""

from __future__ import annotations


class ProviderError(RuntimeError):
    """Raised when an upstream API call fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IndexerError(ProviderError):
    """Raised when a transaction indexer returns an error or malformed payload."""


class IndexerAuthError(IndexerError):
    """Raised when an indexer rejects the configured credentials."""


class PriceSourceError(ProviderError):
    """Raised when spot prices or token metadata cannot be fetched."""


__all__ = ["IndexerAuthError", "IndexerError", "PriceSourceError", "ProviderError"]
