"""Click CLI: loads config, builds the agent registry, runs strategies, meetings and projects."""

import asyncio
import dataclasses
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from config.config_loader import AppConfig, load_config
from cram.errors import OrchestrationError
from cram.events import (
    Event,
    MEETING_STARTED,
    MEETING_TURN,
    PIPELINE_STAGE_COMPLETED,
    PIPELINE_STAGE_STARTED,
    STRATEGY_PHASE_COMPLETED,
)
from cram.healthcheck import run_health_checks
from cram.inbox import archive_file, ensure_dirs, parse_agenda_file, scan_inbox
from cram.models import OrchestrationRequest, Strategy
from cram.orchestrator import Orchestrator
from cram.output import (
    print_meeting,
    print_pipeline,
    print_result,
    print_team,
    save_meeting,
    save_pipeline,
    save_result,
)
from cram.providers.anthropic import AnthropicProvider
from cram.providers.base import Agent, ProviderError
from cram.providers.gemini import GeminiProvider
from cram.providers.openai_provider import OpenAIProvider
from cram.registry import AgentRegistry
from cram.roles import ROLE_DEFINITIONS, get_role_definition

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Keyed by the "sdk" field of each model in settings.yaml
PROVIDER_CLASSES: dict[str, type[Agent]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_registry(config: AppConfig) -> AgentRegistry:
    """Build an agent for every available model, in settings.yaml order."""
    registry = AgentRegistry()
    for name, model_cfg in config.models.items():
        if name not in config.available_providers:
            continue
        provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if provider_cls is None:
            logger.warning("Model '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            registry.register(provider_cls(model_cfg))
        except Exception as exc:
            logger.warning("Failed to instantiate agent '%s': %s", name, exc)
    return registry


def _parse_agents(agents_arg: str | None) -> tuple[str, ...]:
    if not agents_arg:
        return ()
    return tuple(n.strip() for n in agents_arg.split(",") if n.strip())


def _restrict_registry(registry: AgentRegistry, names: tuple[str, ...]) -> AgentRegistry:
    """Keep only the named agents, in the given order. Raises UnknownAgent."""
    if not names:
        return registry
    return AgentRegistry([registry.get_or_raise(n) for n in names])


def _check_and_filter_agents(registry: AgentRegistry) -> AgentRegistry:
    """Run health checks, print results, and ask user what to do on failures.

    Returns a registry of working agents. Exits if the user declines to
    continue or no agents pass.
    """
    console.print("\n[bold]Checking agents...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(registry.as_dict()))

    failed_names: list[str] = []
    for name in registry.names():
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return registry

    working = AgentRegistry([a for a in registry.agents() if a.name() not in failed_names])
    if not len(working):
        console.print("\n[bold red]Error:[/bold red] No agents passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} agent(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print(f"Working agents: {', '.join(working.names())}")

    if not click.confirm("Continue with working agents only?", default=True):
        sys.exit(0)

    console.print()
    return working


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    sys.exit(1)


def _progress_line(event: Event) -> str | None:
    """One console line for the events worth showing while a run is in progress."""
    data = event.data
    if event.type == MEETING_STARTED:
        return f"[cyan]Meeting[/cyan] {data['agenda'].title}"
    if event.type == MEETING_TURN:
        turn = data["turn"]
        return f"[green]OK[/green] Turn {turn.turn_number}: {get_role_definition(turn.role).title} ({turn.agent})"
    if event.type == PIPELINE_STAGE_STARTED:
        return f"[bold cyan]Stage[/bold cyan] {data['name']}"
    if event.type == PIPELINE_STAGE_COMPLETED:
        return f"[green]OK[/green] Stage {data['stage']} complete ({data['decisions']} decisions)"
    if event.type == STRATEGY_PHASE_COMPLETED:
        return f"[green]OK[/green] {data.get('strategy', '')} {data.get('phase', '')}"
    return None


@contextmanager
def _progress(orchestrator: Orchestrator, description: str) -> Iterator[None]:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:

        def on_event(event: Event) -> None:
            line = _progress_line(event)
            if line:
                progress.print(line)

        progress.add_task(description, total=None)
        unsubscribe = orchestrator.bus.on(on_event)
        try:
            yield
        finally:
            unsubscribe()


def _orchestrator(ctx: click.Context, agents: tuple[str, ...] = ()) -> Orchestrator:
    """Build an orchestrator over the (optionally restricted, health-checked) registry."""
    config: AppConfig = ctx.obj["config"]
    try:
        registry = _restrict_registry(_build_registry(config), agents)
    except OrchestrationError as exc:
        _fail(exc)
    if not len(registry):
        console.print("[bold red]Error:[/bold red] No agents available. Check API keys in .env.")
        sys.exit(1)
    if not ctx.obj["skip_health_check"]:
        registry = _check_and_filter_agents(registry)
    return Orchestrator(registry, config)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.pass_context
def main(ctx: click.Context, verbose: bool, skip_health_check: bool, output_path: str | None) -> None:
    """CRAM -- multi-agent coordination: strategies, meetings and project pipelines.

    \b
    Examples:
      cram ask "Design a rate limiter" --strategy sequential
      cram ask "Fastest JSON parser in Python?" --strategy competitive --agents claude,gpt
      cram meeting --file agenda.md --max-turns 6
      cram meeting --inbox
      cram project "Todo API" "A REST API for todo lists with auth"
      cram health
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model responses containing
    # Unicode chars don't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, OrchestrationError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["skip_health_check"] = skip_health_check
    ctx.obj["output_dir"] = Path(output_path) if output_path else config.defaults.output_dir


@main.command()
@click.argument("prompt")
@click.option("--strategy", type=click.Choice([s.value for s in Strategy]), default=None,
              help="Coordination strategy (default: from config)")
@click.option("--context", "context_text", default=None, help="Extra context appended to the prompt")
@click.option("--agents", "agents_arg", default=None, help="Comma-separated agent names, in preferred order")
@click.option("--max-rounds", type=int, default=None, help="Collaborative review rounds (default: from config)")
@click.pass_context
def ask(
    ctx: click.Context,
    prompt: str,
    strategy: str | None,
    context_text: str | None,
    agents_arg: str | None,
    max_rounds: int | None,
) -> None:
    """Run PROMPT through one coordination strategy."""
    config: AppConfig = ctx.obj["config"]
    if max_rounds is not None:
        config = dataclasses.replace(config, defaults=dataclasses.replace(config.defaults, max_rounds=max_rounds))
        ctx.obj["config"] = config

    agents = _parse_agents(agents_arg)
    orchestrator = _orchestrator(ctx, agents)
    request = OrchestrationRequest(
        prompt=prompt,
        strategy=Strategy(strategy) if strategy else config.defaults.strategy,
        context=context_text,
        preferred_agents=agents,
    )

    console.print(
        f"\n[bold cyan]CRAM[/bold cyan] {request.strategy.value}: "
        f"{', '.join(orchestrator.registry.names())}"
    )
    console.print(f"Prompt: [italic]{prompt[:80]}{'...' if len(prompt) > 80 else ''}[/italic]\n")

    orchestrator.start_session(prompt[:40], request.strategy)
    try:
        with _progress(orchestrator, f"Running {request.strategy.value} strategy..."):
            result = asyncio.run(orchestrator.execute(request))
    except (OrchestrationError, ProviderError) as exc:
        _fail(exc)
    finally:
        orchestrator.stop_session()

    print_result(result)
    saved = save_result(result, prompt, ctx.obj["output_dir"])
    console.print(f"\n[dim]Saved to: {saved}[/dim]")


async def _run_inbox(orchestrator: Orchestrator, output_dir: Path, max_turns: int | None) -> None:
    """Run every agenda file in the inbox as a meeting, archiving each one."""
    config = orchestrator.config
    ensure_dirs(config.inbox.dir, config.inbox.archive_dir)
    files = scan_inbox(config.inbox.dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            agenda = parse_agenda_file(file_path, config.defaults.meeting_max_turns)
            if max_turns is not None:
                agenda = dataclasses.replace(agenda, max_turns=max_turns)
            result = await orchestrator.run_meeting(agenda)
            print_meeting(result)
            saved = save_meeting(result, output_dir, slug_override=file_path.stem)
            archived = archive_file(file_path, config.inbox.archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, config.inbox.archive_dir, failed=True)


@main.command()
@click.option("--file", "agenda_file", type=click.Path(exists=True), help="Meeting agenda .md file")
@click.option("--inbox", "use_inbox", is_flag=True, default=False, help="Run every agenda in the inbox folder")
@click.option("--max-turns", type=int, default=None, help="Override the agenda's max_turns")
@click.pass_context
def meeting(ctx: click.Context, agenda_file: str | None, use_inbox: bool, max_turns: int | None) -> None:
    """Run a structured multi-role meeting from an agenda file."""
    if not agenda_file and not use_inbox:
        console.print("[bold red]Error:[/bold red] Provide --file or --inbox.")
        sys.exit(1)

    config: AppConfig = ctx.obj["config"]
    orchestrator = _orchestrator(ctx)
    output_dir = ctx.obj["output_dir"]

    if use_inbox:
        with _progress(orchestrator, "Processing inbox..."):
            asyncio.run(_run_inbox(orchestrator, output_dir, max_turns))
        return

    try:
        agenda = parse_agenda_file(Path(agenda_file), config.defaults.meeting_max_turns)
    except (ValueError, OrchestrationError) as exc:
        _fail(exc)
    if max_turns is not None:
        agenda = dataclasses.replace(agenda, max_turns=max_turns)

    orchestrator.start_session(agenda.title)
    try:
        with _progress(orchestrator, f"Meeting: {agenda.title}"):
            result = asyncio.run(orchestrator.run_meeting(agenda))
    except (OrchestrationError, ValueError) as exc:
        _fail(exc)
    finally:
        orchestrator.stop_session()

    print_meeting(result)
    saved = save_meeting(result, output_dir)
    console.print(f"\n[dim]Saved to: {saved}[/dim]")


@main.command()
@click.argument("name")
@click.argument("description")
@click.pass_context
def project(ctx: click.Context, name: str, description: str) -> None:
    """Run the full six-stage project pipeline for NAME."""
    orchestrator = _orchestrator(ctx)
    orchestrator.start_session(name)
    try:
        with _progress(orchestrator, f"Project: {name}"):
            result = asyncio.run(orchestrator.run_project(name, description))
    except OrchestrationError as exc:
        _fail(exc)
    finally:
        orchestrator.stop_session()

    print_pipeline(result)
    saved = save_pipeline(result, ctx.obj["output_dir"])
    console.print(f"\n[dim]Saved to: {saved}[/dim]")


@main.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Ping every configured agent and report which ones answer."""
    config: AppConfig = ctx.obj["config"]
    orchestrator = Orchestrator(_build_registry(config), config)
    statuses = asyncio.run(orchestrator.provider_statuses())

    table = Table(title="Agents")
    table.add_column("Name", style="bold")
    table.add_column("SDK")
    table.add_column("Model", style="dim")
    table.add_column("Status")
    for name, ok in statuses.items():
        model_cfg = config.models.get(name)
        if ok:
            status = "[green]OK[/green]"
        elif name not in config.available_providers:
            status = "[yellow]no API key[/yellow]"
        else:
            status = "[red]FAIL[/red]"
        table.add_row(name, model_cfg.sdk if model_cfg else "?", model_cfg.model if model_cfg else "?", status)
    console.print(table)

    if not any(statuses.values()):
        sys.exit(1)


@main.command()
@click.pass_context
def roles(ctx: click.Context) -> None:
    """List company roles and the agent each one maps to."""
    config: AppConfig = ctx.obj["config"]
    registry = _build_registry(config)
    if len(registry):
        print_team(Orchestrator(registry, config).get_team())
        return

    table = Table(title="Company Roles")
    table.add_column("Role", style="cyan")
    table.add_column("Title")
    table.add_column("Department", style="dim")
    table.add_column("Default SDK")
    for definition in ROLE_DEFINITIONS:
        table.add_row(definition.role.value, definition.title, definition.department, definition.default_sdk)
    console.print(table)


if __name__ == "__main__":
    main()
