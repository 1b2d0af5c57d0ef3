"""Rich console output and markdown file save for runs, meetings and projects."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from cram.models import (
    AgentResponse,
    CompanyTeam,
    Decision,
    MeetingResult,
    OrchestrationResult,
    PipelineResult,
)
from cram.roles import get_role_definition

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _response_preview(response: AgentResponse, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = response.content.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def _title(role) -> str:
    return get_role_definition(role).title


def print_result(result: OrchestrationResult) -> None:
    """Print every response as a preview panel, then the final output as markdown."""
    console.print(Rule(f"[bold cyan]{result.strategy.value.title()} Responses[/bold cyan]"))
    for resp in result.responses:
        console.print(
            Panel(
                _response_preview(resp),
                title=f"[bold]{resp.agent}[/bold] ({resp.model})",
                subtitle=f"{resp.latency_sec:.1f}s",
                border_style="dim",
            )
        )
    console.print(Rule("[bold green]Final Output[/bold green]"))
    console.print(
        Text(
            f"Strategy: {result.strategy.value} | "
            f"Duration: {result.duration_sec:.1f}s | "
            f"Responses: {len(result.responses)} | "
            f"Tokens: {result.token_usage.total_tokens}",
            style="dim",
        )
    )
    console.print(Markdown(result.final_output))


def print_decisions(decisions: tuple[Decision, ...] | list[Decision]) -> None:
    if not decisions:
        console.print("[dim]No decisions recorded.[/dim]")
        return
    table = Table(title="Decisions", show_lines=False)
    table.add_column("Stage", style="cyan")
    table.add_column("Decision", style="bold")
    table.add_column("By")
    table.add_column("Rationale", style="dim")
    for decision in decisions:
        table.add_row(decision.stage.value, decision.title, _title(decision.made_by), decision.rationale)
    console.print(table)


def print_meeting(result: MeetingResult) -> None:
    """Print a short line per turn, the decisions, and the summary."""
    console.print(Rule(f"[bold cyan]Meeting: {result.agenda.title}[/bold cyan]"))
    for turn in result.turns:
        console.print(
            Panel(
                " ".join(turn.message.split()[:50]) + ("..." if len(turn.message.split()) > 50 else ""),
                title=f"[bold]{turn.turn_number}. {_title(turn.role)}[/bold] ({turn.agent})",
                border_style="dim",
            )
        )
    print_decisions(result.decisions)
    console.print(Rule("[bold green]Summary[/bold green]"))
    console.print(
        Text(
            f"Turns: {len(result.turns)} | "
            f"Duration: {result.duration_sec:.1f}s | "
            f"Tokens: {result.total_token_usage.total_tokens}",
            style="dim",
        )
    )
    console.print(Markdown(result.summary))


def print_pipeline(result: PipelineResult) -> None:
    console.print(Rule(f"[bold cyan]Project: {result.project_name}[/bold cyan]"))
    table = Table(show_header=True)
    table.add_column("Stage", style="cyan")
    table.add_column("Turns", justify="right")
    table.add_column("Decisions", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Duration", justify="right")
    for stage in result.stages:
        table.add_row(
            stage.stage.value,
            str(len(stage.meeting.turns)),
            str(len(stage.meeting.decisions)),
            str(len(stage.generated_files)),
            f"{stage.duration_sec:.1f}s",
        )
    console.print(table)
    print_decisions(result.decisions)
    for generated in result.generated_files:
        console.print(f"  [green]file[/green] {generated.path} ({generated.language}, {_title(generated.generated_by)})")
    console.print(
        Text(
            f"Duration: {result.total_duration_sec:.1f}s | Tokens: {result.total_token_usage.total_tokens}",
            style="dim",
        )
    )


def print_team(team: CompanyTeam) -> None:
    table = Table(title="Company Team")
    table.add_column("Role", style="cyan")
    table.add_column("Title")
    table.add_column("Department", style="dim")
    table.add_column("Agent", style="bold")
    assigned = {a.role: a.agent for a in team.assignments}
    for role in assigned:
        definition = get_role_definition(role)
        table.add_row(role.value, definition.title, definition.department, assigned[role])
    console.print(table)


def _decision_lines(decisions) -> list[str]:
    lines: list[str] = []
    for decision in decisions:
        lines.append(f"- **{decision.title}** ({_title(decision.made_by)}, {decision.stage.value})")
        if decision.rationale:
            lines.append(f"  - Rationale: {decision.rationale}")
        if decision.alternatives:
            lines.append(f"  - Alternatives: {', '.join(decision.alternatives)}")
    return lines or ["_None recorded._"]


def _meeting_lines(result: MeetingResult, heading: str = "#") -> list[str]:
    agenda = result.agenda
    lines = [
        f"{heading} Meeting: {agenda.title}",
        "",
        f"**Type:** {agenda.type.value}",
        f"**Leader:** {_title(agenda.leader)}",
        f"**Participants:** {', '.join(_title(r) for r in agenda.participants)}",
        f"**Turns:** {len(result.turns)}",
        f"**Duration:** {result.duration_sec:.1f}s",
        f"**Tokens:** {result.total_token_usage.total_tokens}",
        "",
        f"{heading}# Transcript",
        "",
    ]
    for turn in result.turns:
        lines += [f"{heading}## {turn.turn_number}. {_title(turn.role)} ({turn.agent})", "", turn.message, ""]
    lines += [f"{heading}# Decisions", "", *_decision_lines(result.decisions), ""]
    lines += [f"{heading}# Summary", "", result.summary, ""]
    return lines


def _write(output_dir: Path, slug: str, lines: list[str]) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{slug}.md"
    filepath.write_text("\n".join(lines), encoding="utf-8")
    return filepath


def save_meeting(result: MeetingResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the full meeting transcript as a markdown file.

    Args:
        result: The completed MeetingResult.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the meeting title. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    slug = slug_override if slug_override is not None else _slug(result.agenda.title)
    filepath = _write(output_dir, slug, _meeting_lines(result))
    logger.info("Meeting saved to: %s", filepath)
    return filepath


def save_pipeline(result: PipelineResult, output_dir: Path) -> Path:
    """Save every stage transcript, decision and generated file of a project run."""
    lines = [
        f"# Project: {result.project_name}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Stages:** {len(result.stages)}",
        f"**Duration:** {result.total_duration_sec:.1f}s",
        f"**Tokens:** {result.total_token_usage.total_tokens}",
        "",
        result.project_description,
        "",
        "---",
        "",
        "## Decisions",
        "",
        *_decision_lines(result.decisions),
        "",
    ]
    for stage in result.stages:
        lines += _meeting_lines(stage.meeting, heading="##")
    if result.generated_files:
        lines += ["## Generated Files", ""]
        for generated in result.generated_files:
            lines += [f"### {generated.path}", "", f"```{generated.language}", generated.content, "```", ""]

    filepath = _write(output_dir, _slug(result.project_name), lines)
    logger.info("Project saved to: %s", filepath)
    return filepath


def save_result(result: OrchestrationResult, prompt: str, output_dir: Path) -> Path:
    lines = [
        f"# {result.strategy.value.title()} Run: {prompt[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Agents:** {', '.join(dict.fromkeys(r.agent for r in result.responses))}",
        f"**Duration:** {result.duration_sec:.1f}s",
        f"**Tokens:** {result.token_usage.total_tokens}",
        "",
        "---",
        "",
        "## Conversation",
        "",
    ]
    for message in result.conversation.messages:
        lines += [f"### {message.agent or message.role.value}", "", message.content, ""]
    lines += ["## Final Output", "", result.final_output, ""]

    filepath = _write(output_dir, _slug(prompt), lines)
    logger.info("Result saved to: %s", filepath)
    return filepath
