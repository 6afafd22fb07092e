"""HTTP transport seam for model calls; tests substitute scripted transports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from screen_agent.contracts.errors import TransientProviderError


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    text: str


class Transport(Protocol):
    async def post(
        self, url: str, headers: Dict[str, str], json_body: Dict[str, Any], timeout: float
    ) -> TransportResponse: ...


class HttpxTransport:
    """
    httpx-backed transport. Network trouble surfaces as TransientProviderError;
    HTTP status codes are returned untouched for the caller to classify.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def post(
        self, url: str, headers: Dict[str, str], json_body: Dict[str, Any], timeout: float
    ) -> TransportResponse:
        client = await self._get_client()
        try:
            response = await client.post(url, headers=headers, json=json_body, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise TransientProviderError(f"Request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransientProviderError(f"Failed to contact API (connection error): {exc}") from exc
        return TransportResponse(status_code=response.status_code, text=response.text)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = ["HttpxTransport", "Transport", "TransportResponse"]
