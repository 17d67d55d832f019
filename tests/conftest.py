"""Shared pytest fixtures."""

from pathlib import Path
from typing import Any

import pytest

from config.config_loader import AppConfig, DefaultsConfig, EndpointSettings, PromptsConfig, RetrySettings
from dialectica.client import EndpointConfig, ParsedResponse, ResilientClient, ResponseContract, RetryPolicy
from dialectica.errors import ClientError
from dialectica.models import AnalysisMode, AnalysisRequest
from dialectica.personas import PersonaRegistry, default_registry
from dialectica.transports.base import Transport, TransportResponse


def gemini_body(text: str, citations: list[tuple[str, str]] | None = None) -> dict[str, Any]:
    """Build a successful generateContent payload."""
    candidate: dict[str, Any] = {"content": {"parts": [{"text": text}]}}
    if citations:
        candidate["groundingMetadata"] = {
            "groundingAttributions": [{"web": {"uri": uri, "title": title}} for uri, title in citations]
        }
    return {"candidates": [candidate]}


def ok(text: str) -> TransportResponse:
    return TransportResponse(status=200, body=gemini_body(text))


class StubTransport(Transport):
    """Test double Transport replaying scripted responses.

    Each script item is a TransportResponse to return or an exception to
    raise. The last item repeats once the script runs out.
    """

    def __init__(self, *script: TransportResponse | Exception) -> None:
        self._script = list(script)
        self.calls: list[tuple[str, dict[str, Any], float]] = []

    async def post(self, model: str, body: dict[str, Any], timeout: float) -> TransportResponse:
        self.calls.append((model, body, timeout))
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, Exception):
            raise item
        return item


class StubClient:
    """Test double for ResilientClient keyed by system instruction.

    Values are reply text or a ClientError to raise. Unknown instructions
    fall back to ``default``.
    """

    def __init__(self, replies: dict[str, str | ClientError], default: str | ClientError = "default") -> None:
        self._replies = replies
        self._default = default
        self.calls: list[dict[str, Any]] = []

    async def call(
        self,
        instruction: str,
        prompt: str,
        contract: ResponseContract = ResponseContract(),
        *,
        grounding: bool = False,
        deadline: float | None = None,
        endpoint: EndpointConfig | None = None,
    ) -> ParsedResponse:
        self.calls.append(
            {"instruction": instruction, "prompt": prompt, "contract": contract, "grounding": grounding}
        )
        reply = self._replies.get(instruction, self._default)
        if isinstance(reply, ClientError):
            raise reply
        return ParsedResponse(text=reply)


class RecordingSleep:
    """Async sleep replacement that records delays and advances a fake clock."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.now = 0.0

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.now += delay

    def clock(self) -> float:
        return self.now


@pytest.fixture
def registry() -> PersonaRegistry:
    return default_registry()


@pytest.fixture
def instructions(registry: PersonaRegistry) -> dict[str, str]:
    return {p.id: p.instruction for p in registry}


@pytest.fixture
def prompts() -> PromptsConfig:
    return PromptsConfig()


@pytest.fixture
def endpoint_config() -> EndpointConfig:
    return EndpointConfig(
        model="gemini-test",
        timeout_sec=30,
        retry=RetryPolicy(max_attempts=5, base_delay_sec=1.0, jitter_sec=0.5),
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client(endpoint_config: EndpointConfig, recording_sleep: RecordingSleep):
    def _make(transport: Transport, config: EndpointConfig | None = None) -> ResilientClient:
        return ResilientClient(
            transport,
            config or endpoint_config,
            sleep=recording_sleep,
            clock=recording_sleep.clock,
        )

    return _make


@pytest.fixture
def dialectic_request() -> AnalysisRequest:
    return AnalysisRequest(
        topic="Remote work changed how teams collaborate daily.",
        mode=AnalysisMode.FULL_DIALECTIC,
        selected=("CHOLA", "MALANDRA"),
    )


@pytest.fixture
def sample_app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        endpoint=EndpointSettings(model="gemini-test", api_key_env="TEST_GEMINI_KEY", timeout_sec=30),
        retry=RetrySettings(),
        defaults=DefaultsConfig(
            mode="full_dialectic",
            output_dir=tmp_path / "output",
            history_path=tmp_path / "output" / "history.json",
            personas={
                "full_dialectic": ["CHOLA", "MALANDRA"],
                "disruption": ["CHOLA"],
                "panel": ["CHOLA", "MALANDRA", "FRESA"],
            },
            inbox_dir=tmp_path / "inbox",
            archive_dir=tmp_path / "inbox" / "archive",
        ),
        prompts=PromptsConfig(),
        api_key="test-key",
    )
