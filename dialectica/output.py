"""Rich console rendering and markdown export for orchestration runs."""

import logging
import re
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from dialectica.history import summarize
from dialectica.models import AnalysisMode, Citation, Failed, Ok, OrchestrationRun, Outcome, RunState

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

MAX_SOURCES = 3


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _role_title(run: OrchestrationRun, index: int, persona_id: str) -> str:
    mode = run.request.mode
    if mode is AnalysisMode.FULL_DIALECTIC:
        return f"{'THESIS' if index == 0 else 'ANTITHESIS'} ({persona_id})"
    if mode is AnalysisMode.DISRUPTION:
        return f"ORIGINAL THESIS ({persona_id})"
    return f"PERSPECTIVE {index + 1} ({persona_id})"


def _synthesis_title(run: OrchestrationRun) -> str:
    if run.request.mode is AnalysisMode.DISRUPTION:
        return "CREATIVE DISRUPTION"
    return "SYNTHESIS 369"


def _sources_line(citations: Sequence[Citation]) -> str:
    return " ".join(f"[{i}] {c.title} <{c.uri}>" for i, c in enumerate(citations[:MAX_SOURCES], start=1))


def _outcome_body(outcome: Outcome, unavailable: str = "Not available") -> str:
    if isinstance(outcome, Ok):
        return outcome.text
    return f"{unavailable} ({outcome.kind}: {outcome.reason})"


def print_run(run: OrchestrationRun) -> None:
    """Print persona panels and the synthesis. Degraded entries are shown in red."""
    if run.state is RunState.FAILED:
        console.print(Panel(run.failure or "unknown error", title="[bold red]Run rejected[/bold red]", border_style="red"))
        return

    console.print(Rule(f"[bold cyan]{summarize(run)}[/bold cyan]"))
    for index, persona_id in enumerate(run.request.selected):
        outcome = run.agent_results[persona_id].outcome
        console.print(
            Panel(
                _outcome_body(outcome),
                title=f"[bold]{_role_title(run, index, persona_id)}[/bold]",
                border_style="dim" if isinstance(outcome, Ok) else "red",
            )
        )

    console.print(Rule(f"[bold green]{_synthesis_title(run)}[/bold green]"))
    synthesis = run.synthesis
    if isinstance(synthesis, Ok):
        console.print(Markdown(synthesis.text))
        if synthesis.citations:
            console.print(Text(f"Sources: {_sources_line(synthesis.citations)}", style="dim"))
    elif isinstance(synthesis, Failed):
        console.print(Text(f"No synthesis ({synthesis.kind}): {synthesis.reason}", style="red"))

    duration = (run.completed_at - run.started_at).total_seconds()
    console.print(Text(f"Run {run.id} | {duration:.1f}s | mode: {run.request.mode.value}", style="dim"))


def print_history(runs: Sequence[OrchestrationRun]) -> None:
    """Print the ledger, newest first."""
    if not runs:
        console.print("[dim]No recent analyses.[/dim]")
        return

    table = Table(title="Recent analyses")
    table.add_column("When", style="dim")
    table.add_column("Summary", style="bold")
    table.add_column("Topic")
    table.add_column("Synthesis")
    for run in runs:
        topic = run.request.topic[:50] + ("..." if len(run.request.topic) > 50 else "")
        status = "ok" if isinstance(run.synthesis, Ok) else "missing"
        table.add_row(run.completed_at.strftime("%Y-%m-%d %H:%M"), summarize(run), topic, status)
    console.print(table)


def save_to_file(run: OrchestrationRun, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save a completed run as a markdown report.

    Args:
        run: The completed OrchestrationRun.
        output_dir: Directory to save the file in.
        slug_override: If provided, used as the filename stem instead of one
            derived from the topic. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = run.started_at.strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(run.request.topic)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    duration = (run.completed_at - run.started_at).total_seconds()
    lines: list[str] = [
        f"# {summarize(run)}",
        "",
        f"**Topic:** {run.request.topic}",
        f"**Date:** {run.started_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Mode:** {run.request.mode.value}",
        f"**Duration:** {duration:.1f}s",
        "",
        "---",
        "",
    ]

    for index, persona_id in enumerate(run.request.selected):
        outcome = run.agent_results[persona_id].outcome
        lines += [f"## {_role_title(run, index, persona_id)}", "", _outcome_body(outcome), ""]

    lines += [f"## {_synthesis_title(run)}", ""]
    synthesis = run.synthesis
    if isinstance(synthesis, Ok):
        lines += [synthesis.text, ""]
        if synthesis.citations:
            lines.append("### Sources")
            lines.append("")
            lines += [f"{i}. [{c.title}]({c.uri})" for i, c in enumerate(synthesis.citations[:MAX_SOURCES], start=1)]
            lines.append("")
    elif isinstance(synthesis, Failed):
        lines += [f"*No synthesis ({synthesis.kind}): {synthesis.reason}*", ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Run saved to: %s", filepath)
    return filepath
