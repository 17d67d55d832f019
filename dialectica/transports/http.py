"""Transport that POSTs raw generateContent JSON with httpx."""

import logging
from typing import Any

import httpx

from dialectica.transports.base import Transport, TransportError, TransportResponse, TransportTimeout

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class HttpxTransport(Transport):
    """REST transport for the generativelanguage endpoint.

    Accepts an optional httpx.AsyncClient for dependency injection (testing).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient()

    def url_for(self, model: str) -> str:
        return f"{self._base_url}/models/{model}:generateContent"

    async def post(self, model: str, body: dict[str, Any], timeout: float) -> TransportResponse:
        try:
            response = await self._http_client.post(
                self.url_for(model),
                json=body,
                headers={"x-goog-api-key": self._api_key},
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportTimeout(f"Request timed out after {timeout:.1f}s") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"Connection failed: {exc}") from exc

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            logger.debug("Non-JSON body with HTTP %d from %s", response.status_code, model)
            payload = {"error": {"message": response.text[:500]}}

        return TransportResponse(status=response.status_code, body=payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()
