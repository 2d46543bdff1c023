"""
A(i)-Team CLI - Typer Commands

Command line access to the board: inspect items, move them through the
pipeline, manage claims and missions, and watch the live event feed.
"""

import asyncio
import logging
from collections.abc import Generator
from contextlib import contextmanager

import typer

from ateam.cli.render import (
    console,
    format_activity,
    format_event,
    show_dependency_report,
    show_error,
    show_history,
    show_items,
    show_mission,
    show_move,
)
from ateam.config import BoardConfig, load_config
from ateam.events.sse import parse_sse_chunk
from ateam.exceptions import AteamError
from ateam.logging import get_config as get_log_config
from ateam.logging import read_jsonl_tail
from ateam.orchestrator.board import Board
from ateam.persistence.models import CheckResult
from ateam.persistence.repository import BoardRepository

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="ateam",
    help="A(i)-Team pipeline board - claims, stages, dependencies and live events",
    add_completion=False,
)
mission_app = typer.Typer(help="Mission lifecycle commands", add_completion=False)
app.add_typer(mission_app, name="mission")


class _State:
    """Options shared by all commands."""

    project: str | None = None
    db_path: str | None = None


_state = _State()


@app.callback()
def callback(
    project: str = typer.Option(None, "--project", "-p", help="Project id (or ATEAM_PROJECT_ID)"),
    db: str = typer.Option(None, "--db", help="Path to the board database (or ATEAM_DB_PATH)"),
) -> None:
    """A(i)-Team pipeline board."""
    _state.project = project
    _state.db_path = db


def _load_config() -> BoardConfig:
    try:
        return load_config()
    except AteamError as e:
        show_error(e)
        raise typer.Exit(1)


@contextmanager
def open_board() -> Generator[Board, None, None]:
    """Open the configured board, printing board errors and exiting with 1."""
    config = _load_config()
    repo = BoardRepository(_state.db_path or config.db_path)
    try:
        with repo:
            yield Board(repo, _state.project or config.default_project, config)
    except AteamError as e:
        show_error(e)
        raise typer.Exit(1)


# =============================================================================
# ITEMS
# =============================================================================


@app.command()
def items(
    stage: str = typer.Option(None, "--stage", "-s", help="Only show items in this stage"),
    archived: bool = typer.Option(False, "--archived", help="Include archived items"),
) -> None:
    """Show the board."""
    with open_board() as board:
        show_items(board.list_items(stage=stage, include_archived=archived), title=f"Board: {board.project_id}")


@app.command("add-item")
def add_item(
    title: str = typer.Argument(..., help="Item title"),
    item_type: str = typer.Option("feature", "--type", "-t", help="feature, bug, task or enhancement"),
    priority: str = typer.Option("medium", "--priority", help="critical, high, medium or low"),
    depends_on: list[str] = typer.Option([], "--dep", "-d", help="Dependency item id (repeatable)"),
    group: str = typer.Option(None, "--group", "-g", help="Parallel group tag"),
    description: str = typer.Option("", "--description", help="Item description"),
) -> None:
    """Add a work item to briefings."""
    with open_board() as board:
        item = board.create_item(
            title,
            type=item_type,
            priority=priority,
            dependencies=depends_on,
            parallel_group=group,
            description=description,
        )
        console.print(f"[green]✓[/green] Added {item.id}: {item.title}")


@app.command()
def history(item_id: str = typer.Argument(..., help="Item id")) -> None:
    """Show the work history of an item."""
    with open_board() as board:
        show_history(board.item_history(item_id))


# =============================================================================
# CLAIMS AND STAGES
# =============================================================================


@app.command()
def claim(
    item_id: str = typer.Argument(..., help="Item id"),
    agent: str = typer.Argument(..., help="Agent name"),
) -> None:
    """Claim an item for an agent."""
    with open_board() as board:
        result = board.claim(item_id, agent)
        console.print(f"[green]✓[/green] {result.agent} claimed {result.item_id}")


@app.command()
def release(item_id: str = typer.Argument(..., help="Item id")) -> None:
    """Release the claim on an item."""
    with open_board() as board:
        result = board.release(item_id)
        console.print(f"[green]✓[/green] Released {item_id} (was {result['agent']})")


@app.command()
def move(
    item_id: str = typer.Argument(..., help="Item id"),
    stage: str = typer.Argument(..., help="Target stage"),
    agent: str = typer.Option(None, "--agent", "-a", help="Agent taking over the item"),
) -> None:
    """Move an item to another stage."""
    with open_board() as board:
        show_move(board.move(item_id, stage, agent))


@app.command()
def readmit(item_id: str = typer.Argument(..., help="Blocked item id")) -> None:
    """Return a blocked item to ready."""
    with open_board() as board:
        show_move(board.readmit(item_id))


@app.command()
def reject(
    item_id: str = typer.Argument(..., help="Item id"),
    reason: str = typer.Argument(..., help="Why the item was rejected"),
    agent: str = typer.Option(None, "--agent", "-a", help="Reviewing agent"),
    diagnosis: str = typer.Option(None, "--diagnosis", help="Root cause notes"),
) -> None:
    """Reject an item back to ready, or escalate it to blocked."""
    with open_board() as board:
        result = board.reject(item_id, reason, agent, diagnosis)
        if result.escalate:
            console.print(
                f"[red]⚠[/red] {item_id} escalated to blocked after {result.rejection_count} rejections"
            )
        else:
            console.print(f"[yellow]↺[/yellow] {item_id} back to ready (rejection {result.rejection_count})")


@app.command()
def deps(
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
) -> None:
    """Show dependency waves and ready items."""
    with open_board() as board:
        report = board.resolve_dependencies()
        if as_json:
            console.print_json(data=report.to_dict())
        else:
            show_dependency_report(report)


# =============================================================================
# ACTIVITY, FEED AND LOGS
# =============================================================================


@app.command()
def activity(
    tail: int = typer.Option(20, "--tail", "-n", help="Show last N entries"),
    after: int = typer.Option(None, "--after", help="Only entries after this id"),
) -> None:
    """Show the activity log."""
    with open_board() as board:
        if after is not None:
            entries = board.activity_since(after_id=after, limit=tail)
        else:
            entries = board.repo.recent_activity(board.project_id, limit=tail)
        if not entries:
            console.print("[dim]No activity[/dim]")
        for entry in entries:
            console.print(format_activity(entry))


@app.command()
def log(
    message: str = typer.Argument(..., help="Message to append"),
    agent: str = typer.Option(None, "--agent", "-a", help="Agent name"),
    level: str = typer.Option("info", "--level", "-l", help="info, warn or error"),
) -> None:
    """Append an entry to the activity log."""
    with open_board() as board:
        entry = board.log_activity(message, agent=agent, level=level)
        console.print(format_activity(entry))


@app.command()
def watch(
    raw: bool = typer.Option(False, "--raw", help="Print raw SSE text"),
) -> None:
    """Follow the live event feed (Ctrl+C to stop)."""

    async def follow(board: Board) -> None:
        feed = board.subscribe()
        async for chunk in feed.stream():
            if raw:
                console.print(chunk, end="", markup=False, highlight=False)
                continue
            for event in parse_sse_chunk(chunk):
                console.print(format_event(event))
        if feed.breaker.is_open:
            console.print(
                f"[red]Feed closed after {feed.consecutive_errors} consecutive errors[/red]"
            )

    with open_board() as board:
        console.print(f"[dim]Watching {board.project_id}... (Ctrl+C to stop)[/dim]")
        try:
            asyncio.run(follow(board))
        except KeyboardInterrupt:
            console.print("\n[dim]Stopped watching[/dim]")


@app.command()
def logs(
    log_type: str = typer.Option("board", "--type", "-t", help="Log type: board or feed"),
    tail: int = typer.Option(20, "--tail", "-n", help="Show last N entries"),
) -> None:
    """Show the structured JSONL logs."""
    try:
        config = get_log_config()
    except AteamError as e:
        show_error(e)
        raise typer.Exit(1)
    paths = {"board": config.board_log_path, "feed": config.feed_log_path}
    if log_type not in paths:
        console.print(f"[red]Error:[/red] unknown log type '{log_type}' (use board or feed)")
        raise typer.Exit(1)

    entries = read_jsonl_tail(paths[log_type], limit=tail)
    if not entries:
        console.print("[dim]No log entries found[/dim]")
        return
    for entry in entries:
        failed = entry.get("success") is False or entry.get("level") == "ERROR"
        style = "red" if failed else "dim"
        summary = " ".join(
            str(entry[key])
            for key in ("operation", "event", "item_id", "from_stage", "to_stage", "error_code", "error")
            if entry.get(key)
        )
        console.print(f"[{style}]{entry.get('timestamp', '')} {summary}[/{style}]")


# =============================================================================
# MISSIONS
# =============================================================================


@mission_app.command("current")
def mission_current() -> None:
    """Show the current mission."""
    with open_board() as board:
        show_mission(board.current_mission())


@mission_app.command("start")
def mission_start(
    name: str = typer.Argument(..., help="Mission name"),
    prd: str = typer.Option("", "--prd", help="Path to the PRD the mission implements"),
) -> None:
    """Start a mission (archives the current one)."""
    with open_board() as board:
        show_mission(board.start_mission(name, prd))


def _check_result(
    passed: bool,
    lint_errors: int,
    tests_passed: int,
    tests_failed: int,
    blockers: list[str],
) -> CheckResult:
    return CheckResult(
        passed=passed,
        lint_errors=lint_errors,
        tests_passed=tests_passed,
        tests_failed=tests_failed,
        blockers=blockers,
    )


@mission_app.command("precheck")
def mission_precheck(
    passed: bool = typer.Option(..., "--passed/--failed", help="Outcome of the precheck"),
    lint_errors: int = typer.Option(0, "--lint-errors"),
    tests_passed: int = typer.Option(0, "--tests-passed"),
    tests_failed: int = typer.Option(0, "--tests-failed"),
    blocker: list[str] = typer.Option([], "--blocker", help="Blocking issue (repeatable)"),
) -> None:
    """Record the precheck outcome."""
    with open_board() as board:
        show_mission(
            board.record_precheck(_check_result(passed, lint_errors, tests_passed, tests_failed, blocker))
        )


@mission_app.command("postcheck")
def mission_postcheck(
    passed: bool = typer.Option(..., "--passed/--failed", help="Outcome of the postcheck"),
    lint_errors: int = typer.Option(0, "--lint-errors"),
    tests_passed: int = typer.Option(0, "--tests-passed"),
    tests_failed: int = typer.Option(0, "--tests-failed"),
    blocker: list[str] = typer.Option([], "--blocker", help="Blocking issue (repeatable)"),
) -> None:
    """Record the postcheck outcome."""
    with open_board() as board:
        show_mission(
            board.record_postcheck(_check_result(passed, lint_errors, tests_passed, tests_failed, blocker))
        )


@mission_app.command("archive")
def mission_archive() -> None:
    """Archive the current mission and its items."""
    with open_board() as board:
        mission, archived_items = board.archive_mission()
        console.print(f"[green]✓[/green] Archived {mission.id} '{mission.name}' ({archived_items} items)")


def main() -> None:
    """Entry point for the ateam command."""
    app()
