"""Transport backed by the google-genai SDK with native async."""

import asyncio
import logging
import os
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from dialectica.transports.base import Transport, TransportError, TransportResponse, TransportTimeout

logger = logging.getLogger(__name__)


def _to_generate_config(body: dict[str, Any]) -> genai_types.GenerateContentConfig:
    """Fold the REST body's side fields into one SDK config object."""
    fields: dict[str, Any] = dict(body.get("generationConfig") or {})
    if "systemInstruction" in body:
        fields["systemInstruction"] = body["systemInstruction"]
    if body.get("tools"):
        fields["tools"] = body["tools"]
    return genai_types.GenerateContentConfig.model_validate(fields)


class GenaiTransport(Transport):
    """Sends generateContent through google-genai, mapping SDK errors to statuses."""

    def __init__(self, api_key: str | None = None, client: genai.Client | None = None) -> None:
        if client is None:
            api_key = (api_key or os.environ.get("GEMINI_API_KEY", "")).strip()
            if not api_key:
                raise TransportError("Missing API key for google-genai transport")
            client = genai.Client(api_key=api_key)
        self._client = client

    async def post(self, model: str, body: dict[str, Any], timeout: float) -> TransportResponse:
        config = _to_generate_config(body)
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=model,
                    contents=body["contents"],
                    config=config,
                ),
                timeout=timeout,
            )
        except TimeoutError as exc:
            raise TransportTimeout(f"Request timed out after {timeout:.1f}s") from exc
        except genai_errors.APIError as exc:
            details = exc.details if isinstance(exc.details, dict) else {"error": {"message": exc.message}}
            logger.debug("google-genai returned HTTP %s for %s", exc.code, model)
            return TransportResponse(status=exc.code, body=details)
        except httpx.TransportError as exc:
            raise TransportError(f"Connection failed: {exc}") from exc

        return TransportResponse(
            status=200,
            body=response.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
