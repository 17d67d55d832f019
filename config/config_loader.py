"""Load settings.yaml into typed dataclasses. Resolves the API key at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

PERSONA_PROMPT = "Analyze the following topic/text and apply your role: '{topic}'"

SYNTHESIS_INSTRUCTION = (
    "You are the 'SYNTHESIS 369' engine. Your task is to resolve dialectical tensions "
    "and provide the highest-level summary."
)

SYNTHESIS_PROMPT = (
    "Perform a 'Dialectical Synthesis' based on the following elements:\n"
    "1. ORIGINAL TOPIC/TEXT: \"{topic}\"\n"
    "{perspectives}\n\n"
    "Synthesize the opposing views into a new, high-level, actionable conclusion. The synthesis "
    "must resolve the tension and offer a path forward, considering the original topic. Use crisp, "
    "powerful language. Answer in a single concise paragraph."
)

DISRUPTION_INSTRUCTION = (
    "You are the 'HYBRID' agent. Take the text produced by the original thesis, invert its central "
    "premise and re-analyze the topic from a radical-fusion perspective, creating a new disruptive "
    "concept that is neither the thesis nor its obvious negation. Answer in a single concise paragraph."
)

DISRUPTION_PROMPT = (
    "ORIGINAL TOPIC/TEXT: \"{topic}\"\n"
    "ORIGINAL THESIS ({persona}): \"{thesis}\"\n\n"
    "Based on the original thesis, invert its key premise and generate a Creative Disruption "
    "that fuses opposing elements of the topic."
)


@dataclass
class EndpointSettings:
    model: str
    api_key_env: str
    timeout_sec: float
    transport: str = "genai"            # "genai" or "http"
    base_url: str | None = None
    call_deadline_sec: float | None = None


@dataclass
class RetrySettings:
    max_attempts: int = 5
    base_delay_sec: float = 1.0
    jitter_sec: float = 1.0


@dataclass
class PromptsConfig:
    persona: str = PERSONA_PROMPT
    synthesis_instruction: str = SYNTHESIS_INSTRUCTION
    synthesis: str = SYNTHESIS_PROMPT
    disruption_instruction: str = DISRUPTION_INSTRUCTION
    disruption: str = DISRUPTION_PROMPT
    unavailable: str = "Not available"


@dataclass
class DefaultsConfig:
    mode: str
    output_dir: Path
    history_path: Path
    history_capacity: int = 5
    min_topic_length: int = 10
    personas: dict[str, list[str]] = field(default_factory=dict)   # mode -> default selection
    inbox_dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class AppConfig:
    endpoint: EndpointSettings
    retry: RetrySettings
    defaults: DefaultsConfig
    prompts: PromptsConfig
    personas: list[dict[str, Any]] = field(default_factory=list)
    api_key: str | None = None


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs a warning for a missing API key but does not raise: callers check
    AppConfig.api_key.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    endpoint_raw = raw["endpoint"]
    deadline = endpoint_raw.get("call_deadline_sec")
    endpoint = EndpointSettings(
        model=str(endpoint_raw["model"]),
        api_key_env=str(endpoint_raw["api_key_env"]),
        timeout_sec=float(endpoint_raw["timeout_sec"]),
        transport=str(endpoint_raw.get("transport", "genai")),
        base_url=endpoint_raw.get("base_url"),
        call_deadline_sec=float(deadline) if deadline is not None else None,
    )
    if endpoint.transport not in ("genai", "http"):
        raise ValueError(f"Unknown transport '{endpoint.transport}' (expected 'genai' or 'http')")

    retry_raw = raw.get("retry") or {}
    retry = RetrySettings(
        max_attempts=int(retry_raw.get("max_attempts", 5)),
        base_delay_sec=float(retry_raw.get("base_delay_sec", 1.0)),
        jitter_sec=float(retry_raw.get("jitter_sec", 1.0)),
    )

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        mode=str(defaults_raw["mode"]),
        output_dir=Path(defaults_raw["output_dir"]),
        history_path=Path(defaults_raw["history_path"]),
        history_capacity=int(defaults_raw.get("history_capacity", 5)),
        min_topic_length=int(defaults_raw.get("min_topic_length", 10)),
        personas={str(k): [str(p) for p in v] for k, v in (defaults_raw.get("personas") or {}).items()},
        inbox_dir=Path(defaults_raw.get("inbox_dir", "./inbox")),
        archive_dir=Path(defaults_raw.get("archive_dir", "./inbox/archive")),
    )

    # Any prompt left out of settings.yaml falls back to the built-in text
    prompts_raw = raw.get("prompts") or {}
    prompts = PromptsConfig(**{k: str(v) for k, v in prompts_raw.items()})

    api_key = os.environ.get(endpoint.api_key_env, "").strip() or None
    if api_key:
        logger.info("API key found in %s", endpoint.api_key_env)
    else:
        logger.warning("No API key: set %s in .env", endpoint.api_key_env)

    return AppConfig(
        endpoint=endpoint,
        retry=retry,
        defaults=defaults,
        prompts=prompts,
        personas=list(raw.get("personas") or []),
        api_key=api_key,
    )
