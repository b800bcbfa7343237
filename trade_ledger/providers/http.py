"""Shared JSON-over-HTTP plumbing for provider clients."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from opentelemetry.propagate import inject

from trade_ledger.providers.errors import IndexerAuthError, ProviderError

logger = logging.getLogger(__name__)


class JsonClient:
    """Thin httpx wrapper that raises ``error_cls`` on failed calls."""

    error_cls: type[ProviderError] = ProviderError

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 20.0,
        client: httpx.AsyncClient | Any | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        headers: dict[str, str] = {"Accept": "application/json"}
        # Propagate the current trace context to the upstream call
        inject(headers)
        try:
            response = await self._client.request(
                method, url, params=params, json=json, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            raise self.error_cls(f"{method} {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            logger.warning("Upstream rejected credentials (%s) for %s", response.status_code, path)
            raise IndexerAuthError(f"unauthorized for {path}", status_code=response.status_code)
        if response.status_code >= 400:
            logger.warning("Upstream error %s for %s", response.status_code, path)
            raise self.error_cls(
                f"{method} {path} returned {response.status_code}", status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as exc:
            raise self.error_cls(f"{method} {path} returned invalid JSON") from exc


__all__ = ["JsonClient"]
