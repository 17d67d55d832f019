"""Click CLI: config loading, transport selection, orchestration, history and output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from dialectica.client import EndpointConfig, ResilientClient, RetryPolicy
from dialectica.history import HistoryLedger, JsonFileHistoryStore
from dialectica.inbox import archive_file, read_topic_file, scan_inbox
from dialectica.models import AnalysisMode, AnalysisRequest, OrchestrationRun, RunState
from dialectica.orchestrator import Orchestrator
from dialectica.output import print_history, print_run, save_to_file
from dialectica.personas import PersonaRegistry, default_registry
from dialectica.transports.base import Transport

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

MODE_ALIASES: dict[str, AnalysisMode] = {
    "dialectic": AnalysisMode.FULL_DIALECTIC,
    "full": AnalysisMode.FULL_DIALECTIC,
    "full_dialectic": AnalysisMode.FULL_DIALECTIC,
    "disruption": AnalysisMode.DISRUPTION,
    "disrupt": AnalysisMode.DISRUPTION,
    "panel": AnalysisMode.PANEL,
}

_STATE_LABELS: dict[RunState, str] = {
    RunState.DISPATCHING: "Validating request...",
    RunState.AWAITING_PERSONAS: "Waiting for personas...",
    RunState.SYNTHESIZING: "Running synthesis...",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _parse_mode(value: str) -> AnalysisMode:
    try:
        return MODE_ALIASES[value.strip().lower()]
    except KeyError:
        raise click.BadParameter(
            f"Unknown mode '{value}'. Choose from: {', '.join(sorted(MODE_ALIASES))}"
        ) from None


def _build_transport(config: AppConfig) -> Transport:
    """Instantiate the configured transport. Imports lazily so each stack is optional at runtime."""
    if not config.api_key:
        raise click.ClickException(f"No API key. Set {config.endpoint.api_key_env} in .env.")
    if config.endpoint.transport == "http":
        from dialectica.transports.http import DEFAULT_BASE_URL, HttpxTransport

        return HttpxTransport(config.api_key, base_url=config.endpoint.base_url or DEFAULT_BASE_URL)

    from dialectica.transports.genai import GenaiTransport

    return GenaiTransport(api_key=config.api_key)


def _endpoint_config(config: AppConfig) -> EndpointConfig:
    return EndpointConfig(
        model=config.endpoint.model,
        timeout_sec=config.endpoint.timeout_sec,
        retry=RetryPolicy(
            max_attempts=config.retry.max_attempts,
            base_delay_sec=config.retry.base_delay_sec,
            jitter_sec=config.retry.jitter_sec,
        ),
        call_deadline_sec=config.endpoint.call_deadline_sec,
    )


def _build_registry(config: AppConfig) -> PersonaRegistry:
    if config.personas:
        return PersonaRegistry.from_config(config.personas)
    return default_registry()


def _determine_selection(
    config: AppConfig,
    mode: AnalysisMode,
    personas_arg: str | list[str] | None,
) -> tuple[str, ...]:
    """Explicit --personas wins; otherwise the per-mode default from settings.yaml."""
    if personas_arg:
        items = personas_arg.split(",") if isinstance(personas_arg, str) else personas_arg
        return tuple(p.strip().upper() for p in items if p.strip())
    return tuple(config.defaults.personas.get(mode.value, []))


async def _run_single(
    request: AnalysisRequest,
    config: AppConfig,
    client: ResilientClient,
    registry: PersonaRegistry,
    ledger: HistoryLedger,
    output_dir: Path | None,
    slug_override: str | None = None,
) -> OrchestrationRun:
    """Run one request, render it, record it. output_dir=None skips the markdown file."""
    topic_preview = request.topic[:80] + ("..." if len(request.topic) > 80 else "")
    console.print(f"\n[bold cyan]Dialectica[/bold cyan] [{request.mode.value}] {', '.join(request.selected)}")
    console.print(f"Topic: [italic]{topic_preview}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=None)

        def on_state_change(state: RunState) -> None:
            if state in _STATE_LABELS:
                progress.update(task, description=_STATE_LABELS[state])

        orchestrator = Orchestrator(
            client,
            registry,
            config.prompts,
            min_topic_length=config.defaults.min_topic_length,
            on_state_change=on_state_change,
        )
        run = await orchestrator.run(request)

    print_run(run)

    if run.state is RunState.COMPLETED:
        ledger.append(run)
        if output_dir is not None:
            saved = save_to_file(run, output_dir, slug_override=slug_override)
            console.print(f"\n[dim]Saved to: {saved}[/dim]")
    return run


async def _run_inbox(
    config: AppConfig,
    client: ResilientClient,
    registry: PersonaRegistry,
    ledger: HistoryLedger,
    inbox_dir: Path,
    mode_cli: AnalysisMode | None,
    personas_cli: str | None,
    output_dir: Path | None,
) -> None:
    """Process every .md topic file in the inbox.

    Precedence for per-file settings: CLI flag > frontmatter > config default.
    """
    files = scan_inbox(inbox_dir)
    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            topic_file = read_topic_file(file_path)
            if mode_cli is not None:
                mode = mode_cli
            elif topic_file.mode:
                mode = _parse_mode(topic_file.mode)
            else:
                mode = _parse_mode(config.defaults.mode)
            selected = _determine_selection(config, mode, personas_cli or topic_file.personas)
            run = await _run_single(
                AnalysisRequest(topic=topic_file.topic, mode=mode, selected=selected),
                config, client, registry, ledger, output_dir,
                slug_override=file_path.stem,
            )
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, config.defaults.archive_dir, failed=True)
            continue

        failed = run.state is RunState.FAILED
        archived = archive_file(file_path, config.defaults.archive_dir, failed=failed)
        click.echo(f"Processed: {file_path.name} -> {run.state.value} (archived: {archived.name})")


async def _execute(
    config: AppConfig,
    transport: Transport,
    ledger: HistoryLedger,
    request: AnalysisRequest | None,
    inbox_dir: Path | None,
    mode_cli: AnalysisMode | None,
    personas_cli: str | None,
    output_dir: Path | None,
) -> OrchestrationRun | None:
    client = ResilientClient(transport, _endpoint_config(config))
    registry = _build_registry(config)
    try:
        if request is not None:
            return await _run_single(request, config, client, registry, ledger, output_dir)
        if inbox_dir is not None:
            await _run_inbox(config, client, registry, ledger, inbox_dir, mode_cli, personas_cli, output_dir)
        return None
    finally:
        await transport.aclose()


@click.command()
@click.argument("topic", required=False)
@click.option("--file", "topic_file", type=click.Path(exists=True, dir_okay=False), help="Read topic from .md file")
@click.option("--mode", default=None, help="dialectic, disruption or panel (default: from config)")
@click.option("--personas", default=None, help="Comma-separated persona ids, e.g. CHOLA,MALANDRA")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--no-save", is_flag=True, default=False, help="Do not write a markdown report")
@click.option("--history", "show_history", is_flag=True, default=False, help="List recent analyses and exit")
@click.option("--clear-history", is_flag=True, default=False, help="Delete recent analyses and exit")
@click.option("--inbox", "use_inbox", is_flag=True, default=False, help="Process all .md files in inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None, help="Override inbox folder path")
@click.option("--settings", "settings_path", type=click.Path(dir_okay=False), default=None,
              help="Alternative settings.yaml")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    topic_file: str | None,
    mode: str | None,
    personas: str | None,
    output_path: str | None,
    no_save: bool,
    show_history: bool,
    clear_history: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    settings_path: str | None,
    verbose: bool,
) -> None:
    """Dialectica -- persona fan-out with a reconciling synthesis.

    \b
    Examples:
      dialectica "Remote work changed how teams collaborate daily."
      dialectica "Cities should ban cars downtown." --mode disruption --personas FRESA
      dialectica "Open source funding models" --mode panel
      dialectica --file topic.md --personas CHOLA,FRESA
      dialectica --inbox
      dialectica --history
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(settings_path)) if settings_path else load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ledger = HistoryLedger(
        JsonFileHistoryStore(config.defaults.history_path),
        capacity=config.defaults.history_capacity,
    )

    if clear_history:
        ledger.clear()
        console.print("History cleared.")
        return
    if show_history:
        print_history(ledger.list())
        return

    output_dir = None if no_save else (Path(output_path) if output_path else config.defaults.output_dir)
    mode_cli = _parse_mode(mode) if mode else None

    request: AnalysisRequest | None = None
    inbox_dir: Path | None = None
    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.defaults.inbox_dir
    else:
        if topic_file:
            parsed = read_topic_file(Path(topic_file))
            topic_text = parsed.topic
            effective_mode = mode_cli or _parse_mode(parsed.mode or config.defaults.mode)
            selection_arg = personas or parsed.personas
        elif topic:
            topic_text = topic
            effective_mode = mode_cli or _parse_mode(config.defaults.mode)
            selection_arg = personas
        else:
            console.print("[bold red]Error:[/bold red] Provide a TOPIC argument, --file, --inbox or --history.")
            sys.exit(1)
        request = AnalysisRequest(
            topic=topic_text,
            mode=effective_mode,
            selected=_determine_selection(config, effective_mode, selection_arg),
        )

    transport = _build_transport(config)
    run = asyncio.run(
        _execute(config, transport, ledger, request, inbox_dir, mode_cli, personas, output_dir)
    )
    if run is not None and run.state is RunState.FAILED:
        sys.exit(1)


if __name__ == "__main__":
    main()
