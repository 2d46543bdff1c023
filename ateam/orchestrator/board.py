"""
Board - the project-scoped operation surface

Bundles the claim manager, stage machine, rejection handler, mission
service and dependency resolver behind one object per project. Every
public operation:
- runs against a validated, lowercased project id
- lets board errors (AteamError) through unchanged
- re-raises sqlite3 failures as StoreError (DATABASE_ERROR)
- records failures in the board JSONL log
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from collections.abc import Callable
from typing import Any, TypeVar

from ateam.config import BoardConfig, validate_project_id
from ateam.events.feed import BoardEventFeed, Transport
from ateam.exceptions import (
    AteamError,
    DependencyCycleError,
    ItemNotFoundError,
    StoreError,
    ValidationError,
)
from ateam.logging import BoardLogEntry, board_logger, now_iso
from ateam.orchestrator.activity import append_activity
from ateam.orchestrator.claims import ClaimManager
from ateam.orchestrator.dependencies import (
    DependencyReport,
    final_review_ready,
    resolve_dependencies,
    would_create_cycle,
)
from ateam.orchestrator.missions import MissionService
from ateam.orchestrator.rejection import RejectionHandler, RejectionResult
from ateam.orchestrator.stages import MoveResult, StageMachine
from ateam.persistence.models import (
    ActivityLogEntry,
    AgentClaim,
    CheckResult,
    ItemType,
    LogLevel,
    Mission,
    Priority,
    WorkAction,
    WorkItem,
    WorkLogEntry,
)
from ateam.persistence.repository import BoardRepository
from ateam.state import Stage

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

OUTPUT_KEYS = ("test", "impl", "types")
MAX_TITLE_LENGTH = 200


def board_operation(name: str) -> Callable[[F], F]:
    """Map store failures to StoreError and log failed operations."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Board, *args: Any, **kwargs: Any) -> Any:
            try:
                return func(self, *args, **kwargs)
            except AteamError as e:
                self._record_failure(name, e, args)
                raise
            except sqlite3.Error as e:
                error = StoreError(
                    f"Database error during {name}: {e}",
                    {"operation": name, "error_type": type(e).__name__},
                )
                logger.error(f"Board: {error}")
                self._record_failure(name, error, args)
                raise error from e

        return wrapper  # type: ignore[return-value]

    return decorator


def _parse_enum(enum_cls: type, value: Any, field_name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid {field_name} '{value}'",
            {"field": field_name, "value": value, "valid": [m.value for m in enum_cls]},
        )


class Board:
    """
    All board operations for one project.

    Usage:
        with BoardRepository(db_path) as repo:
            board = Board(repo, "my-project")
            item = board.create_item("Login form", dependencies=["WI-001"])
            board.move(item.id, "ready")
            board.move(item.id, "testing", agent="murdock")
    """

    def __init__(
        self,
        repository: BoardRepository,
        project_id: str | None,
        config: BoardConfig | None = None,
    ):
        """
        Args:
            repository: Board store
            project_id: Project scope, required
            config: Limits and roster, defaults to BoardConfig()

        Raises:
            ValidationError: If project_id is missing or malformed
        """
        self.project_id = validate_project_id(project_id)
        self.config = config or BoardConfig()
        self.repo = repository

        self.claims = ClaimManager(repository, self.project_id, self.config.agents)
        self.stages = StageMachine(
            repository,
            self.project_id,
            wip_limit=self.config.wip_limit,
            agents=self.config.agents,
        )
        self.rejections = RejectionHandler(
            repository,
            self.project_id,
            threshold=self.config.rejection_escalation_threshold,
            agents=self.config.agents,
        )
        self.missions = MissionService(repository, self.project_id)

    # =========================================================================
    # ITEMS
    # =========================================================================

    @board_operation("create_item")
    def create_item(
        self,
        title: str,
        type: ItemType | str = ItemType.FEATURE,
        description: str = "",
        priority: Priority | str = Priority.MEDIUM,
        dependencies: list[str] | None = None,
        parallel_group: str | None = None,
        outputs: dict[str, str] | None = None,
    ) -> WorkItem:
        """
        Create a work item in briefings.

        Every dependency must name an existing item of this project. The
        new item is linked to the current mission, if any.

        Raises:
            ValidationError: On a missing title, unknown type or priority,
                unknown dependency or unknown output key
        """
        if not title or not title.strip():
            raise ValidationError("title is required", {"field": "title"})
        if len(title.strip()) > MAX_TITLE_LENGTH:
            raise ValidationError(
                f"title must be at most {MAX_TITLE_LENGTH} characters",
                {"field": "title", "length": len(title.strip())},
            )
        item_type = _parse_enum(ItemType, type, "type")
        item_priority = _parse_enum(Priority, priority, "priority")
        outputs = dict(outputs or {})
        unknown_outputs = sorted(set(outputs) - set(OUTPUT_KEYS))
        if unknown_outputs:
            raise ValidationError(
                f"Unknown output keys: {', '.join(unknown_outputs)}",
                {"field": "outputs", "valid": list(OUTPUT_KEYS)},
            )
        deps = list(dict.fromkeys(dependencies or []))
        pid = self.project_id

        with self.repo.transaction() as cursor:
            self.repo.ensure_project(pid, cursor)
            self._require_existing(deps, cursor)

            item = WorkItem(
                id=self.repo.next_item_id(pid, cursor),
                project_id=pid,
                title=title.strip(),
                type=item_type,
                description=description,
                priority=item_priority,
                dependencies=deps,
                parallel_group=parallel_group,
                outputs=outputs,
            )
            self.repo.insert_item(item, cursor)

            mission = self.repo.get_current_mission(pid, cursor)
            if mission is not None:
                self.repo.link_mission_item(mission.id, pid, item.id, cursor)
            append_activity(self.repo, pid, f"Added {item.id}: {item.title}", cursor)

        logger.info(f"Board: Added {item.id} to briefings ({item.type.value})")
        self._record("create_item", item_id=item.id, to_stage=Stage.BRIEFINGS.value)
        return item

    @board_operation("get_item")
    def get_item(self, item_id: str) -> WorkItem:
        """
        Raises:
            ItemNotFoundError: If the item does not exist
        """
        item = self.repo.get_item(self.project_id, item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    @board_operation("list_items")
    def list_items(self, stage: Stage | str | None = None, include_archived: bool = False) -> list[WorkItem]:
        stage_filter = _parse_enum(Stage, stage, "stage") if stage is not None else None
        return self.repo.list_items(self.project_id, stage=stage_filter, include_archived=include_archived)

    @board_operation("set_dependencies")
    def set_dependencies(self, item_id: str, dependencies: list[str]) -> WorkItem:
        """
        Replace an item's dependency list.

        A resulting cycle is logged as a warning in the activity log, or
        refused when reject_dependency_cycles is enabled.

        Raises:
            ItemNotFoundError: If the item does not exist
            ValidationError: If a dependency does not exist
            DependencyCycleError: If cycles are refused and one would form
        """
        deps = list(dict.fromkeys(dependencies))
        pid = self.project_id

        with self.repo.transaction() as cursor:
            if self.repo.get_item(pid, item_id, cursor) is None:
                raise ItemNotFoundError(item_id)
            self._require_existing(deps, cursor)

            cycle = would_create_cycle(self.repo.list_items(pid, cursor), item_id, deps)
            if cycle and self.config.reject_dependency_cycles:
                raise DependencyCycleError(
                    f"Dependencies of {item_id} would form a cycle: {' -> '.join(cycle)}",
                    cycle,
                )

            self.repo.set_dependencies(pid, item_id, deps, cursor)
            self.repo.update_item(pid, item_id, cursor)
            if cycle:
                append_activity(
                    self.repo,
                    pid,
                    f"Dependency cycle detected: {' -> '.join(cycle)}",
                    cursor,
                    level=LogLevel.WARN,
                )
            item = self.repo.get_item(pid, item_id, cursor)

        if cycle:
            logger.warning(f"Board: Dependency cycle through {item_id}: {cycle}")
        self._record("set_dependencies", item_id=item_id, details={"dependencies": deps, "cycle": cycle})
        return item  # type: ignore[return-value]

    @board_operation("item_history")
    def item_history(self, item_id: str) -> list[WorkLogEntry]:
        """Work log of an item, oldest first."""
        self.get_item(item_id)
        return self.repo.list_work_logs(self.project_id, item_id)

    @board_operation("add_note")
    def add_note(self, item_id: str, summary: str, agent: str | None = None) -> WorkLogEntry:
        if not summary or not summary.strip():
            raise ValidationError("summary is required", {"field": "summary"})
        with self.repo.transaction() as cursor:
            if self.repo.get_item(self.project_id, item_id, cursor) is None:
                raise ItemNotFoundError(item_id)
            entry = self.repo.add_work_log(
                WorkLogEntry(
                    item_id=item_id,
                    project_id=self.project_id,
                    action=WorkAction.NOTE,
                    summary=summary.strip(),
                    agent=agent,
                ),
                cursor,
            )
            self.repo.update_item(self.project_id, item_id, cursor)
        return entry

    # =========================================================================
    # CLAIMS AND STAGES
    # =========================================================================

    @board_operation("claim")
    def claim(self, item_id: str, agent: str) -> AgentClaim:
        return self.claims.claim(item_id, agent)

    @board_operation("release")
    def release(self, item_id: str) -> dict[str, Any]:
        return self.claims.release(item_id)

    @board_operation("move")
    def move(self, item_id: str, to_stage: Stage | str, agent: str | None = None) -> MoveResult:
        return self.stages.move(item_id, to_stage, agent)

    @board_operation("readmit")
    def readmit(self, item_id: str, agent: str | None = None) -> MoveResult:
        return self.stages.readmit(item_id, agent)

    @board_operation("reject")
    def reject(
        self,
        item_id: str,
        reason: str,
        agent: str | None = None,
        diagnosis: str | None = None,
    ) -> RejectionResult:
        return self.rejections.reject(item_id, reason, agent, diagnosis)

    # =========================================================================
    # DEPENDENCIES
    # =========================================================================

    @board_operation("resolve_dependencies")
    def resolve_dependencies(self) -> DependencyReport:
        """Resolve the dependency graph of the current board."""
        return resolve_dependencies(self.repo.list_items(self.project_id))

    @board_operation("final_review_ready")
    def final_review_ready(self) -> bool:
        return final_review_ready(self.repo.list_items(self.project_id))

    # =========================================================================
    # MISSIONS
    # =========================================================================

    @board_operation("current_mission")
    def current_mission(self) -> Mission | None:
        return self.missions.current()

    @board_operation("start_mission")
    def start_mission(self, name: str, prd_path: str = "") -> Mission:
        return self.missions.start(name, prd_path)

    @board_operation("begin_precheck")
    def begin_precheck(self) -> Mission:
        return self.missions.begin_precheck()

    @board_operation("record_precheck")
    def record_precheck(self, result: CheckResult) -> Mission:
        return self.missions.record_precheck(result)

    @board_operation("begin_postcheck")
    def begin_postcheck(self) -> Mission:
        return self.missions.begin_postcheck()

    @board_operation("record_postcheck")
    def record_postcheck(self, result: CheckResult) -> Mission:
        return self.missions.record_postcheck(result)

    @board_operation("archive_mission")
    def archive_mission(self) -> tuple[Mission, int]:
        return self.missions.archive()

    # =========================================================================
    # ACTIVITY AND EVENTS
    # =========================================================================

    @board_operation("log_activity")
    def log_activity(
        self,
        message: str,
        agent: str | None = None,
        level: LogLevel | str = LogLevel.INFO,
    ) -> ActivityLogEntry:
        """Append a free-form entry to the activity log."""
        if not message or not message.strip():
            raise ValidationError("message is required", {"field": "message"})
        log_level = _parse_enum(LogLevel, level, "level")
        with self.repo.transaction() as cursor:
            self.repo.ensure_project(self.project_id, cursor)
            return append_activity(self.repo, self.project_id, message.strip(), cursor, agent=agent, level=log_level)

    @board_operation("activity_since")
    def activity_since(self, after_id: int = 0, limit: int | None = None) -> list[ActivityLogEntry]:
        return self.repo.list_activity(self.project_id, after_id=after_id, limit=limit)

    def subscribe(
        self,
        send: Transport | None = None,
        last_activity_log_id: int | None = None,
    ) -> BoardEventFeed:
        """
        Open a live event feed for this project.

        The feed polls through its own database connection, closed when the
        feed stops.
        """
        source = BoardRepository(self.repo.db_path, timeout=self.repo.timeout)
        return BoardEventFeed(
            source,
            self.project_id,
            send=send,
            poll_interval_ms=self.config.poll_interval_ms,
            heartbeat_interval_ms=self.config.heartbeat_interval_ms,
            max_consecutive_errors=self.config.max_consecutive_errors,
            last_activity_log_id=last_activity_log_id,
            on_close=source.close,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require_existing(self, item_ids: list[str], cursor: sqlite3.Cursor) -> None:
        missing = [i for i in item_ids if self.repo.get_item(self.project_id, i, cursor) is None]
        if missing:
            raise ValidationError(
                f"Dependency not found: {', '.join(missing)}",
                {"field": "dependencies", "missing": missing},
            )

    def _record(self, operation: str, **fields: Any) -> None:
        board_logger.info(
            BoardLogEntry(
                timestamp=now_iso(),
                project_id=self.project_id,
                operation=operation,
                **fields,
            ).to_json()
        )

    def _record_failure(self, operation: str, error: AteamError, args: tuple) -> None:
        item_id = args[0] if args and isinstance(args[0], str) and args[0].startswith("WI-") else None
        board_logger.warning(
            BoardLogEntry(
                timestamp=now_iso(),
                project_id=self.project_id,
                operation=operation,
                item_id=item_id,
                success=False,
                error_code=error.code,
                error=error.message,
                details=error.details or None,
            ).to_json()
        )
