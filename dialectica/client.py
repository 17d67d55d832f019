"""Resilient generateContent client: bounded retries, backoff with jitter, typed parsing."""

import asyncio
import json
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from dialectica.errors import (
    DeadlineExceeded,
    FatalClientError,
    MalformedResponse,
    RetriesExhausted,
    TransientError,
)
from dialectica.models import Citation
from dialectica.schemas import response_schema
from dialectica.transports.base import Transport, TransportError, TransportTimeout

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
_GROUNDING_KEYS = ("groundingAttributions", "attributions", "groundingChunks")


@dataclass
class RetryPolicy:
    max_attempts: int = MAX_ATTEMPTS
    base_delay_sec: float = 1.0
    jitter_sec: float = 1.0

    def base_delay(self, retry_index: int) -> float:
        """Deterministic part of the delay before retry ``retry_index`` (0-indexed)."""
        return (2 ** retry_index) * self.base_delay_sec

    def backoff_delay(self, retry_index: int, rng: random.Random) -> float:
        return self.base_delay(retry_index) + rng.uniform(0, self.jitter_sec)


@dataclass
class EndpointConfig:
    model: str
    timeout_sec: float = 60.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    call_deadline_sec: float | None = None   # default budget for a whole call, retries included


@dataclass(frozen=True)
class ResponseContract:
    """Free text when ``schema`` is None, otherwise a JSON object validated by ``schema``.

    ``text_field`` names the JSON key (by alias) surfaced as ParsedResponse.text.
    """

    schema: type[BaseModel] | None = None
    text_field: str | None = None

    @property
    def structured(self) -> bool:
        return self.schema is not None


TEXT = ResponseContract()


@dataclass(frozen=True)
class ParsedResponse:
    text: str
    data: dict[str, Any] | None = None
    citations: tuple[Citation, ...] = ()


def build_request_body(
    instruction: str,
    prompt: str,
    contract: ResponseContract = TEXT,
    grounding: bool = False,
) -> dict[str, Any]:
    """Build the REST generateContent body."""
    body: dict[str, Any] = {
        "contents": [{"parts": [{"text": prompt}]}],
        "systemInstruction": {"parts": [{"text": instruction}]},
    }
    if contract.schema is not None:
        body["generationConfig"] = {
            "responseMimeType": "application/json",
            "responseSchema": response_schema(contract.schema),
        }
    if grounding:
        body["tools"] = [{"google_search": {}}]
    return body


def _extract_citations(candidate: dict[str, Any]) -> tuple[Citation, ...]:
    metadata = candidate.get("groundingMetadata")
    if not isinstance(metadata, dict):
        return ()
    entries: list[Any] = []
    for key in _GROUNDING_KEYS:
        if isinstance(metadata.get(key), list):
            entries.extend(metadata[key])

    citations: list[Citation] = []
    seen: set[str] = set()
    for entry in entries:
        web = entry.get("web") if isinstance(entry, dict) else None
        if not isinstance(web, dict):
            continue
        uri, title = web.get("uri"), web.get("title")
        if uri and title and uri not in seen:
            seen.add(uri)
            citations.append(Citation(uri=str(uri), title=str(title)))
    return tuple(citations)


def parse_response(payload: Any, contract: ResponseContract = TEXT) -> ParsedResponse:
    """Validate a successful generateContent payload against the contract.

    Raises:
        MalformedResponse: Missing candidate/content/text, or JSON that does
            not satisfy the contract's schema.
    """
    if not isinstance(payload, dict):
        raise MalformedResponse("Response body is not a JSON object")

    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise MalformedResponse("Response contains no candidates")
    if len(candidates) != 1:
        raise MalformedResponse(f"Expected exactly one candidate, got {len(candidates)}")

    candidate = candidates[0]
    content = candidate.get("content") if isinstance(candidate, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts:
        raise MalformedResponse("Candidate has no content parts")

    texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    text = "".join(texts)
    if not text.strip():
        raise MalformedResponse("Candidate content has no text")

    citations = _extract_citations(candidate)

    if contract.schema is None:
        return ParsedResponse(text=text, citations=citations)

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"Structured response is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise MalformedResponse("Structured response is not a JSON object")
    try:
        data = contract.schema.model_validate(raw).model_dump(by_alias=True)
    except SchemaValidationError as exc:
        raise MalformedResponse(f"Structured response violates {contract.schema.__name__}: {exc}") from exc

    if contract.text_field is not None:
        text = str(data[contract.text_field])
    return ParsedResponse(text=text, data=data, citations=citations)


class ResilientClient:
    """Issues one generateContent call with bounded retries.

    Transport failures, timeouts, HTTP 429 and 5xx are retried with
    exponential backoff plus jitter. Other 4xx statuses and malformed
    payloads fail immediately.
    """

    def __init__(
        self,
        transport: Transport,
        config: EndpointConfig,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

    @property
    def config(self) -> EndpointConfig:
        return self._config

    async def call(
        self,
        instruction: str,
        prompt: str,
        contract: ResponseContract = TEXT,
        *,
        grounding: bool = False,
        deadline: float | None = None,
        endpoint: EndpointConfig | None = None,
    ) -> ParsedResponse:
        """Run one remote call to completion.

        Args:
            instruction: System instruction (role prompt).
            prompt: User prompt text.
            contract: Free text or a structured schema the payload must satisfy.
            grounding: Attach the google_search grounding tool.
            deadline: Absolute time on this client's clock after which no
                further attempt starts. Defaults to now + call_deadline_sec.
            endpoint: Per-call override of the constructor's EndpointConfig.

        Returns:
            ParsedResponse with text, structured data and citations.

        Raises:
            FatalClientError: HTTP 4xx other than 429.
            MalformedResponse: Successful HTTP call with unusable content.
            RetriesExhausted: All attempts failed with retryable errors.
            DeadlineExceeded: The deadline left no room for another attempt.
        """
        cfg = endpoint or self._config
        policy = cfg.retry
        if deadline is None and cfg.call_deadline_sec is not None:
            deadline = self._clock() + cfg.call_deadline_sec

        body = build_request_body(instruction, prompt, contract, grounding)
        last_error: Exception | None = None

        for attempt in range(policy.max_attempts):
            if attempt > 0:
                delay = policy.backoff_delay(attempt - 1, self._rng)
                if deadline is not None and self._clock() + delay >= deadline:
                    raise DeadlineExceeded(
                        f"No time left for attempt {attempt + 1}/{policy.max_attempts}", last_error
                    )
                logger.warning(
                    "Retrying %s in %.2fs (attempt %d/%d): %s",
                    cfg.model, delay, attempt + 1, policy.max_attempts, last_error,
                )
                await self._sleep(delay)

            timeout = cfg.timeout_sec
            if deadline is not None:
                timeout = min(timeout, deadline - self._clock())
                if timeout <= 0:
                    raise DeadlineExceeded("Call deadline expired", last_error)

            try:
                response = await self._transport.post(cfg.model, body, timeout)
            except TransportTimeout as exc:
                last_error = TransientError(str(exc))
                continue
            except TransportError as exc:
                last_error = TransientError(str(exc))
                continue

            status = response.status
            if 200 <= status < 300:
                parsed = parse_response(response.body, contract)
                logger.debug("%s answered on attempt %d (%d chars)", cfg.model, attempt + 1, len(parsed.text))
                return parsed
            if status == 429 or status >= 500:
                last_error = TransientError(f"HTTP {status}", status=status)
                continue

            logger.error("%s rejected request with HTTP %d", cfg.model, status)
            raise FatalClientError(status, response.body)

        raise RetriesExhausted(policy.max_attempts, last_error)
