"""Second-pass stage: reconcile the joined persona outcomes with one dependent call."""

import logging
from collections.abc import Mapping

from config.config_loader import PromptsConfig
from dialectica.client import ResilientClient, ResponseContract
from dialectica.errors import ClientError
from dialectica.models import AgentResult, AnalysisMode, AnalysisRequest, Failed, Ok, Outcome, Persona
from dialectica.schemas import DisruptiveConcept

logger = logging.getLogger(__name__)

NO_INPUTS = "NoInputsAvailable"

DISRUPTION_CONTRACT = ResponseContract(schema=DisruptiveConcept, text_field="disruptiveConcept")


def _role_label(mode: AnalysisMode, index: int) -> str:
    if mode is AnalysisMode.FULL_DIALECTIC:
        return "THESIS" if index == 0 else "ANTITHESIS"
    return f"PERSPECTIVE {index + 1}"


def _format_perspectives(
    request: AnalysisRequest,
    results: Mapping[str, AgentResult],
    personas: Mapping[str, Persona],
    unavailable: str,
) -> str:
    """One numbered line per selected persona, in selection order.

    Failed personas contribute the ``unavailable`` placeholder.
    """
    lines: list[str] = []
    for index, persona_id in enumerate(request.selected):
        outcome = results[persona_id].outcome
        text = outcome.text if isinstance(outcome, Ok) else unavailable
        label = _role_label(request.mode, index)
        lines.append(f"{index + 2}. {label} ({personas[persona_id].display_name}): \"{text}\"")
    return "\n".join(lines)


def build_synthesis_call(
    request: AnalysisRequest,
    results: Mapping[str, AgentResult],
    personas: Mapping[str, Persona],
    prompts: PromptsConfig,
) -> tuple[str, str, ResponseContract, bool]:
    """Return (instruction, prompt, contract, grounding) for the mode."""
    if request.mode is AnalysisMode.DISRUPTION:
        persona_id = request.selected[0]
        outcome = results[persona_id].outcome
        thesis = outcome.text if isinstance(outcome, Ok) else prompts.unavailable
        prompt = prompts.disruption.format(
            topic=request.topic,
            persona=personas[persona_id].display_name,
            thesis=thesis,
        )
        return prompts.disruption_instruction, prompt, DISRUPTION_CONTRACT, False

    prompt = prompts.synthesis.format(
        topic=request.topic,
        perspectives=_format_perspectives(request, results, personas, prompts.unavailable),
    )
    return prompts.synthesis_instruction, prompt, ResponseContract(), True


async def synthesize(
    request: AnalysisRequest,
    results: Mapping[str, AgentResult],
    personas: Mapping[str, Persona],
    client: ResilientClient,
    prompts: PromptsConfig,
) -> Outcome:
    """Run the synthesis (or disruption) call over fully joined persona outcomes.

    Never raises for remote failures: they come back as Failed. With no
    usable persona text at all, returns Failed(kind="NoInputsAvailable")
    without calling the endpoint.
    """
    usable = [r for r in results.values() if isinstance(r.outcome, Ok) and r.outcome.text.strip()]
    if not usable:
        logger.warning("All %d persona calls failed; skipping synthesis", len(results))
        return Failed(reason="No persona produced usable text to synthesize", kind=NO_INPUTS)

    instruction, prompt, contract, grounding = build_synthesis_call(request, results, personas, prompts)
    logger.info(
        "Running %s synthesis from %d/%d persona outputs",
        request.mode.value, len(usable), len(results),
    )

    try:
        parsed = await client.call(instruction, prompt, contract, grounding=grounding)
    except ClientError as exc:
        logger.warning("Synthesis failed: %s", exc)
        return Failed(reason=str(exc), kind=type(exc).__name__)
    except Exception as exc:
        logger.warning("Synthesis unexpected failure: %s", exc)
        return Failed(reason=f"Unexpected error: {exc}", kind="UnexpectedError")

    return Ok(text=parsed.text, citations=parsed.citations)
