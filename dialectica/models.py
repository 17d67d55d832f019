"""Pure dataclasses for the orchestration pipeline. No logic, no deps."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any


class AnalysisMode(str, Enum):
    FULL_DIALECTIC = "full_dialectic"    # thesis + antithesis -> synthesis
    DISRUPTION = "disruption"            # one persona -> invert-the-premise call
    PANEL = "panel"                      # 2+ personas -> reconciling synthesis


class RunState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING_PERSONAS = "awaiting_personas"
    SYNTHESIZING = "synthesizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Persona:
    id: str
    display_name: str
    instruction: str
    tag: Mapping[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class AnalysisRequest:
    topic: str
    mode: AnalysisMode
    selected: tuple[str, ...]   # persona ids, in thesis/antithesis order


@dataclass(frozen=True)
class Citation:
    uri: str
    title: str


@dataclass(frozen=True)
class Ok:
    text: str
    citations: tuple[Citation, ...] = ()


@dataclass(frozen=True)
class Failed:
    reason: str
    kind: str = "Error"         # error class name, e.g. "RetriesExhausted"


Outcome = Ok | Failed


@dataclass(frozen=True)
class AgentResult:
    persona_id: str
    outcome: Outcome

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Ok)


@dataclass(frozen=True)
class OrchestrationRun:
    id: int
    request: AnalysisRequest
    state: RunState
    agent_results: Mapping[str, AgentResult]
    synthesis: Outcome | None   # None only when validation failed
    started_at: datetime
    completed_at: datetime
    failure: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.agent_results, MappingProxyType):
            object.__setattr__(self, "agent_results", MappingProxyType(dict(self.agent_results)))
