"""Fan-out/fan-in orchestration: concurrent persona calls, join, dependent synthesis."""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from config.config_loader import PromptsConfig
from dialectica.client import ResilientClient
from dialectica.errors import ClientError, RequestValidationError
from dialectica.models import (
    AgentResult,
    AnalysisMode,
    AnalysisRequest,
    Failed,
    Ok,
    OrchestrationRun,
    Persona,
    RunState,
)
from dialectica.personas import PersonaRegistry
from dialectica.synthesis import synthesize

logger = logging.getLogger(__name__)

MIN_TOPIC_LENGTH = 10


def validate_request(
    request: AnalysisRequest,
    registry: PersonaRegistry,
    min_topic_length: int = MIN_TOPIC_LENGTH,
) -> None:
    """Check topic length, persona ids and per-mode cardinality.

    Raises:
        RequestValidationError: With a user-facing message.
    """
    topic = request.topic.strip()
    if not topic:
        raise RequestValidationError("Topic must not be empty")
    if len(topic) < min_topic_length:
        raise RequestValidationError(f"Topic must be at least {min_topic_length} characters")

    selected = list(request.selected)
    unknown = [p for p in selected if p not in registry]
    if unknown:
        raise RequestValidationError(f"Unknown persona(s): {', '.join(unknown)}")

    distinct = len(set(selected)) == len(selected)
    if request.mode is AnalysisMode.FULL_DIALECTIC:
        if len(selected) != 2:
            raise RequestValidationError(
                f"Dialectic mode needs exactly 2 personas (thesis, antithesis), got {len(selected)}"
            )
        if not distinct:
            raise RequestValidationError("Thesis and antithesis personas must be different")
    elif request.mode is AnalysisMode.DISRUPTION:
        if len(selected) != 1:
            raise RequestValidationError(f"Disruption mode needs exactly 1 persona, got {len(selected)}")
    elif request.mode is AnalysisMode.PANEL:
        if len(selected) < 2:
            raise RequestValidationError(f"Panel mode needs at least 2 personas, got {len(selected)}")
        if not distinct:
            raise RequestValidationError("Panel personas must be distinct")


class Orchestrator:
    """Runs one AnalysisRequest through Dispatching -> AwaitingPersonas -> Synthesizing.

    No persona failure is fatal: each outcome is stored as Ok or Failed and
    the run always reaches COMPLETED once validation passes.

    An instance drives one run at a time: ``state`` tracks the run in
    progress. Concurrent runs each need their own Orchestrator.
    """

    def __init__(
        self,
        client: ResilientClient,
        registry: PersonaRegistry,
        prompts: PromptsConfig | None = None,
        *,
        min_topic_length: int = MIN_TOPIC_LENGTH,
        on_state_change: Callable[[RunState], None] | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._client = client
        self._registry = registry
        self._prompts = prompts or PromptsConfig()
        self._min_topic_length = min_topic_length
        self._on_state_change = on_state_change
        self._now = now
        self._last_run_id = 0
        self.state = RunState.IDLE

    def _enter(self, state: RunState) -> None:
        logger.debug("Orchestrator %s -> %s", self.state.value, state.value)
        self.state = state
        if self._on_state_change:
            self._on_state_change(state)

    def _next_run_id(self, started_at: datetime) -> int:
        # Epoch millis, bumped so ids stay strictly increasing within this orchestrator
        run_id = max(int(started_at.timestamp() * 1000), self._last_run_id + 1)
        self._last_run_id = run_id
        return run_id

    async def _call_persona(self, persona: Persona, topic: str) -> AgentResult:
        """Call a single persona. Never raises: failures come back as Failed."""
        prompt = self._prompts.persona.format(topic=topic)
        start = time.monotonic()
        try:
            parsed = await self._client.call(persona.instruction, prompt)
        except ClientError as exc:
            logger.warning("Persona %s failed: %s", persona.id, exc)
            return AgentResult(persona.id, Failed(reason=str(exc), kind=type(exc).__name__))
        except Exception as exc:
            logger.warning("Persona %s unexpected failure: %s", persona.id, exc)
            return AgentResult(persona.id, Failed(reason=f"Unexpected error: {exc}", kind="UnexpectedError"))

        logger.info("Persona %s answered in %.2fs", persona.id, time.monotonic() - start)
        return AgentResult(persona.id, Ok(text=parsed.text, citations=parsed.citations))

    async def run(self, request: AnalysisRequest) -> OrchestrationRun:
        """Execute the full pipeline for one request.

        Returns:
            A COMPLETED run (possibly degraded), or a FAILED run when the
            request is invalid. Network-layer errors never escape.
        """
        started_at = self._now()
        run_id = self._next_run_id(started_at)
        self._enter(RunState.DISPATCHING)

        try:
            validate_request(request, self._registry, self._min_topic_length)
        except RequestValidationError as exc:
            logger.warning("Run %d rejected: %s", run_id, exc)
            self._enter(RunState.FAILED)
            return OrchestrationRun(
                id=run_id,
                request=request,
                state=RunState.FAILED,
                agent_results={},
                synthesis=None,
                started_at=started_at,
                completed_at=self._now(),
                failure=str(exc),
            )

        personas = {pid: self._registry.resolve(pid) for pid in request.selected}
        topic = request.topic.strip()

        logger.info(
            "Run %d: dispatching %d persona(s) in %s mode",
            run_id, len(personas), request.mode.value,
        )
        tasks = [self._call_persona(p, topic) for p in personas.values()]
        self._enter(RunState.AWAITING_PERSONAS)
        results = await asyncio.gather(*tasks)

        agent_results = {r.persona_id: r for r in results}
        succeeded = sum(1 for r in results if r.ok)
        logger.info("Run %d: %d/%d personas succeeded", run_id, succeeded, len(results))

        self._enter(RunState.SYNTHESIZING)
        synthesis = await synthesize(request, agent_results, personas, self._client, self._prompts)

        self._enter(RunState.COMPLETED)
        return OrchestrationRun(
            id=run_id,
            request=request,
            state=RunState.COMPLETED,
            agent_results=agent_results,
            synthesis=synthesis,
            started_at=started_at,
            completed_at=self._now(),
        )
