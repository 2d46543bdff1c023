"""
A(i)-Team CLI - Rich rendering helpers

Tables and panels for board state, dependency reports, missions and
live feed events.
"""

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ateam.exceptions import AteamError
from ateam.orchestrator.dependencies import DependencyReport
from ateam.orchestrator.stages import MoveResult
from ateam.persistence.models import ActivityLogEntry, Mission, WorkItem, WorkLogEntry
from ateam.state import Stage

console = Console()

STAGE_COLORS = {
    Stage.BRIEFINGS: "dim",
    Stage.READY: "cyan",
    Stage.TESTING: "yellow",
    Stage.IMPLEMENTING: "yellow",
    Stage.REVIEW: "magenta",
    Stage.PROBING: "magenta",
    Stage.DONE: "green",
    Stage.BLOCKED: "red",
}

LEVEL_COLORS = {"info": "white", "warn": "yellow", "error": "red"}


def show_error(error: AteamError) -> None:
    """Print a board error with its code and details."""
    console.print(f"[red]{error.code}:[/red] {error.message}")
    for key, value in error.details.items():
        console.print(f"  [dim]{key}:[/dim] {value}")


def show_items(items: list[WorkItem], title: str = "Board") -> None:
    if not items:
        console.print("[dim]No items on the board[/dim]")
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Stage")
    table.add_column("Agent")
    table.add_column("Rejections", justify="right")
    table.add_column("Depends on", style="dim")

    for item in items:
        color = STAGE_COLORS.get(item.stage, "white")
        table.add_row(
            item.id,
            item.title,
            item.type.value,
            f"[{color}]{item.stage.value}[/{color}]",
            item.assigned_agent or "-",
            str(item.rejection_count),
            ", ".join(item.dependencies) or "-",
        )

    console.print(table)


def show_move(result: MoveResult) -> None:
    line = f"[green]✓[/green] {result.item.id}: {result.from_stage.value} → {result.to_stage.value}"
    if result.claimed_by:
        line += f" [dim](claimed by {result.claimed_by})[/dim]"
    console.print(line)
    if result.final_review_ready:
        console.print(
            Panel(
                "All items complete - Final Mission Review ready",
                border_style="green",
            )
        )


def show_dependency_report(report: DependencyReport) -> None:
    if report.cycles:
        for cycle in report.cycles:
            console.print(f"[red]Cycle:[/red] {' → '.join(cycle)}")

    table = Table(title=f"Dependency waves (max depth {report.max_depth})")
    table.add_column("Wave", justify="right")
    table.add_column("Items")
    for depth, ids in report.waves.items():
        table.add_row(str(depth), ", ".join(ids))
    console.print(table)

    console.print(f"[cyan]Ready:[/cyan] {', '.join(report.ready_items) or '-'}")
    console.print(f"[yellow]Waiting:[/yellow] {', '.join(report.waiting_items) or '-'}")
    for item_id, missing in report.missing_dependencies.items():
        console.print(f"[dim]{item_id} depends on unknown {', '.join(missing)}[/dim]")


def show_mission(mission: Mission | None) -> None:
    if mission is None:
        console.print("[dim]No active mission[/dim]")
        return

    lines = [
        f"[bold]{mission.name}[/bold]",
        f"ID: {mission.id}",
        f"State: {mission.state.value}",
        f"Started: {mission.started_at}",
    ]
    if mission.prd_path:
        lines.append(f"PRD: {mission.prd_path}")
    for label, check in (("Precheck", mission.precheck), ("Postcheck", mission.postcheck)):
        if check is not None:
            outcome = "[green]passed[/green]" if check.passed else "[red]failed[/red]"
            lines.append(
                f"{label}: {outcome} ({check.lint_errors} lint errors, "
                f"{check.tests_passed} passed, {check.tests_failed} failed)"
            )
    console.print(Panel("\n".join(lines), title="Mission", border_style="blue"))


def show_history(entries: list[WorkLogEntry]) -> None:
    if not entries:
        console.print("[dim]No history[/dim]")
        return
    for entry in entries:
        agent = entry.agent or "system"
        line = f"[dim]{entry.created_at}[/dim] {entry.action.value:<9} {agent:<10} {entry.summary}"
        if entry.diagnosis:
            line += f" [dim]({entry.diagnosis})[/dim]"
        console.print(line)


def format_activity(entry: ActivityLogEntry) -> str:
    color = LEVEL_COLORS.get(entry.level.value, "white")
    agent = f"{entry.agent}: " if entry.agent else ""
    return f"[dim]#{entry.id} {entry.timestamp}[/dim] [{color}]{agent}{entry.message}[/{color}]"


def format_event(event: dict[str, Any]) -> str:
    """One-line summary of a decoded feed event."""
    kind = event.get("type", "?")
    data = event.get("data") or {}
    if kind == "activity-entry-added":
        entry = data.get("entry", {})
        return f"[dim]#{entry.get('id')}[/dim] {entry.get('message', '')}"
    if kind == "item-moved":
        return f"[cyan]{data.get('item_id')}[/cyan] {data.get('from_stage')} → {data.get('to_stage')}"
    if kind in ("item-added", "item-updated"):
        item = data.get("item", {})
        return f"[cyan]{item.get('id')}[/cyan] {kind.split('-')[1]}: {item.get('title', '')}"
    if kind == "item-deleted":
        return f"[cyan]{data.get('item_id')}[/cyan] removed"
    mission = data.get("mission") or {}
    return f"[blue]{kind}[/blue] {mission.get('name', '')} {mission.get('state', '')}".rstrip()
