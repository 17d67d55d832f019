"""Tests for dialectica/client.py: retries, classification, parsing."""

import json

import pytest

from dialectica.client import (
    EndpointConfig,
    ResilientClient,
    ResponseContract,
    RetryPolicy,
    build_request_body,
    parse_response,
)
from dialectica.errors import (
    DeadlineExceeded,
    FatalClientError,
    MalformedResponse,
    RetriesExhausted,
    TransientError,
)
from dialectica.models import Citation
from dialectica.schemas import DisruptiveConcept
from dialectica.transports.base import TransportError, TransportResponse, TransportTimeout
from tests.conftest import StubTransport, gemini_body, ok

DISRUPTION = ResponseContract(schema=DisruptiveConcept, text_field="disruptiveConcept")


# --- Retry classification ---

async def test_retry_ceiling_on_503(make_client):
    transport = StubTransport(TransportResponse(503, {"error": {"message": "overloaded"}}))
    client = make_client(transport)

    with pytest.raises(RetriesExhausted) as info:
        await client.call("role", "prompt")

    assert len(transport.calls) == 5
    assert info.value.attempts == 5
    assert isinstance(info.value.last_error, TransientError)
    assert info.value.last_error.status == 503


async def test_fast_fail_on_400(make_client, recording_sleep):
    transport = StubTransport(TransportResponse(400, {"error": {"message": "API key not valid"}}))
    client = make_client(transport)

    with pytest.raises(FatalClientError) as info:
        await client.call("role", "prompt")

    assert len(transport.calls) == 1
    assert recording_sleep.delays == []
    assert info.value.status == 400
    assert "API key not valid" in str(info.value)
    assert info.value.body == {"error": {"message": "API key not valid"}}


async def test_404_is_fatal_not_retried(make_client):
    transport = StubTransport(TransportResponse(404, {}))
    with pytest.raises(FatalClientError):
        await make_client(transport).call("role", "prompt")
    assert len(transport.calls) == 1


async def test_429_then_success(make_client, recording_sleep):
    transport = StubTransport(TransportResponse(429, {}), ok("finally"))
    parsed = await make_client(transport).call("role", "prompt")

    assert parsed.text == "finally"
    assert len(transport.calls) == 2
    assert len(recording_sleep.delays) == 1


async def test_connection_error_is_retried(make_client):
    transport = StubTransport(TransportError("connection reset"), ok("recovered"))
    parsed = await make_client(transport).call("role", "prompt")
    assert parsed.text == "recovered"
    assert len(transport.calls) == 2


async def test_timeouts_exhaust_retries(make_client):
    transport = StubTransport(TransportTimeout("Request timed out after 30.0s"))
    with pytest.raises(RetriesExhausted) as info:
        await make_client(transport).call("role", "prompt")
    assert "timed out" in str(info.value.last_error)
    assert len(transport.calls) == 5


async def test_no_delay_before_first_attempt(make_client, recording_sleep):
    await make_client(StubTransport(ok("hi"))).call("role", "prompt")
    assert recording_sleep.delays == []


# --- Backoff ---

def test_base_delay_doubles():
    policy = RetryPolicy(base_delay_sec=0.5)
    assert [policy.base_delay(i) for i in range(5)] == [0.5, 1.0, 2.0, 4.0, 8.0]


async def test_backoff_delays_are_monotonic(make_client, recording_sleep, endpoint_config):
    transport = StubTransport(TransportResponse(500, {}))
    with pytest.raises(RetriesExhausted):
        await make_client(transport).call("role", "prompt")

    policy = endpoint_config.retry
    assert len(recording_sleep.delays) == policy.max_attempts - 1
    for i, delay in enumerate(recording_sleep.delays):
        base = policy.base_delay(i)
        assert base <= delay <= base + policy.jitter_sec
    bases = [policy.base_delay(i) for i in range(len(recording_sleep.delays))]
    assert bases == sorted(bases)


async def test_zero_jitter_gives_exact_delays():
    config = EndpointConfig(model="m", retry=RetryPolicy(max_attempts=4, base_delay_sec=1.0, jitter_sec=0.0))
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    client = ResilientClient(StubTransport(TransportResponse(502, {})), config, sleep=fake_sleep)
    with pytest.raises(RetriesExhausted):
        await client.call("role", "prompt")
    assert sleeps == [1.0, 2.0, 4.0]


# --- Deadlines ---

async def test_deadline_stops_retries(make_client, recording_sleep):
    transport = StubTransport(TransportResponse(503, {}))
    client = make_client(transport)

    # t=0 attempt 1; backoff ~1s -> attempt 2; next backoff >= 2s overshoots 2.5
    with pytest.raises(DeadlineExceeded) as info:
        await client.call("role", "prompt", deadline=2.5)

    assert len(transport.calls) == 2
    assert isinstance(info.value.last_error, TransientError)


async def test_attempt_timeout_capped_by_deadline(make_client):
    transport = StubTransport(ok("fast"))
    await make_client(transport).call("role", "prompt", deadline=10.0)
    _, _, timeout = transport.calls[0]
    assert timeout == pytest.approx(10.0)


async def test_expired_deadline_makes_no_call(make_client):
    transport = StubTransport(ok("never"))
    with pytest.raises(DeadlineExceeded):
        await make_client(transport).call("role", "prompt", deadline=0.0)
    assert transport.calls == []


async def test_call_deadline_from_config(make_client, endpoint_config):
    endpoint_config.call_deadline_sec = 12.0
    transport = StubTransport(ok("fine"))
    await make_client(transport, endpoint_config).call("role", "prompt")
    assert transport.calls[0][2] == pytest.approx(12.0)


# --- Request body ---

def test_request_body_plain_text():
    body = build_request_body("be CHOLA", "topic please")
    assert body["contents"] == [{"parts": [{"text": "topic please"}]}]
    assert body["systemInstruction"] == {"parts": [{"text": "be CHOLA"}]}
    assert "generationConfig" not in body
    assert "tools" not in body


def test_request_body_structured_and_grounded():
    body = build_request_body("invert", "topic", DISRUPTION, grounding=True)
    config = body["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    schema = config["responseSchema"]
    assert schema["type"] == "OBJECT"
    assert set(schema["required"]) == {"originalTopic", "disruptiveConcept"}
    assert schema["properties"]["disruptiveConcept"]["type"] == "STRING"
    assert body["tools"] == [{"google_search": {}}]


async def test_model_from_endpoint_override(make_client):
    transport = StubTransport(ok("x"))
    await make_client(transport).call("r", "p", endpoint=EndpointConfig(model="other-model"))
    assert transport.calls[0][0] == "other-model"


# --- Parsing ---

def test_parse_plain_text_with_citations():
    payload = gemini_body(
        "grounded answer",
        citations=[("https://a.example", "A"), ("https://a.example", "A again"), ("https://b.example", "B")],
    )
    payload["candidates"][0]["groundingMetadata"]["groundingAttributions"].append({"web": {"uri": "https://c"}})

    parsed = parse_response(payload)

    assert parsed.text == "grounded answer"
    assert parsed.data is None
    assert parsed.citations == (Citation("https://a.example", "A"), Citation("https://b.example", "B"))


def test_parse_grounding_chunks_shape():
    payload = gemini_body("text")
    payload["candidates"][0]["groundingMetadata"] = {
        "groundingChunks": [{"web": {"uri": "https://x.example", "title": "X"}}]
    }
    assert parse_response(payload).citations == (Citation("https://x.example", "X"),)


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"candidates": []},
        {"candidates": [{}]},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"text": "   "}]}}]},
        {"candidates": [{"content": {"parts": [{"text": "a"}]}}, {"content": {"parts": [{"text": "b"}]}}]},
        "not a dict",
    ],
)
def test_parse_malformed(payload):
    with pytest.raises(MalformedResponse):
        parse_response(payload)


def test_parse_structured():
    payload = gemini_body(json.dumps({"originalTopic": "cars", "disruptiveConcept": "cars as parks"}))
    parsed = parse_response(payload, DISRUPTION)
    assert parsed.text == "cars as parks"
    assert parsed.data == {"originalTopic": "cars", "disruptiveConcept": "cars as parks"}


@pytest.mark.parametrize(
    "text",
    [
        "plain prose, not JSON",
        json.dumps(["a", "list"]),
        json.dumps({"originalTopic": "cars"}),
    ],
)
def test_parse_structured_violations(text):
    with pytest.raises(MalformedResponse):
        parse_response(gemini_body(text), DISRUPTION)


async def test_malformed_success_not_retried(make_client):
    transport = StubTransport(TransportResponse(200, {"candidates": []}))
    with pytest.raises(MalformedResponse):
        await make_client(transport).call("role", "prompt")
    assert len(transport.calls) == 1
