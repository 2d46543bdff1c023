"""
A(i)-Team Persistence Models

Dataclasses that map to SQLite tables for the board store.
Designed for:
- Type safety with enums and Optional types
- Easy serialization to/from database rows
- JSON field handling for dependency lists and check results
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ateam.state import MissionState, Stage


# ============================================================================
# ENUMS - Type-safe values matching SQL schema
# ============================================================================


class ItemType(str, Enum):
    """Kind of work item."""

    FEATURE = "feature"
    BUG = "bug"
    TASK = "task"
    ENHANCEMENT = "enhancement"


class Priority(str, Enum):
    """Priority of a work item."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LogLevel(str, Enum):
    """Severity of an activity log entry."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class WorkAction(str, Enum):
    """Kind of record in an item's work history."""

    STARTED = "started"
    COMPLETED = "completed"
    REJECTED = "rejected"
    NOTE = "note"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

ITEM_ID_PATTERN = re.compile(r"^WI-(\d+)$")
MISSION_ID_PATTERN = re.compile(r"^M-(\d{8})-(\d+)$")


def now_iso() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now().isoformat()


def format_item_id(number: int) -> str:
    """Format a sequence number as a work item id (WI-007)."""
    return f"WI-{number:03d}"


def item_number(item_id: str) -> int | None:
    """Extract the sequence number from a work item id, or None."""
    match = ITEM_ID_PATTERN.match(item_id)
    return int(match.group(1)) if match else None


def format_mission_id(day: datetime, sequence: int) -> str:
    """Format a mission id (M-20260115-001)."""
    return f"M-{day.strftime('%Y%m%d')}-{sequence:03d}"


def parse_json_or_list(value: str | None) -> list[Any]:
    """Parse JSON string to list, returning empty list on failure."""
    if not value:
        return []
    try:
        result = json.loads(value)
        return result if isinstance(result, list) else []
    except json.JSONDecodeError:
        return []


def parse_json_or_dict(value: str | None) -> dict[str, Any]:
    """Parse JSON string to dict, returning empty dict on failure."""
    if not value:
        return {}
    try:
        result = json.loads(value)
        return result if isinstance(result, dict) else {}
    except json.JSONDecodeError:
        return {}


def to_json(value: Any) -> str | None:
    """Convert value to JSON string, None if empty."""
    if value is None or value == [] or value == {}:
        return None
    return json.dumps(value)


# ============================================================================
# DATA MODELS
# ============================================================================


@dataclass
class WorkItem:
    """
    A unit of work moving through the pipeline.

    Maps to: items table (dependencies from item_dependencies)
    """

    id: str
    project_id: str
    title: str
    type: ItemType = ItemType.FEATURE
    description: str = ""
    priority: Priority = Priority.MEDIUM
    stage: Stage = Stage.BRIEFINGS
    assigned_agent: str | None = None
    rejection_count: int = 0
    dependencies: list[str] = field(default_factory=list)
    parallel_group: str | None = None
    outputs: dict[str, str] = field(default_factory=dict)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    completed_at: str | None = None
    archived_at: str | None = None

    @classmethod
    def from_row(cls, row: tuple, dependencies: list[str] | None = None) -> WorkItem:
        """Create from database row."""
        return cls(
            id=row[0],
            project_id=row[1],
            title=row[2],
            description=row[3] or "",
            type=ItemType(row[4]),
            priority=Priority(row[5]),
            stage=Stage(row[6]),
            assigned_agent=row[7],
            rejection_count=row[8] or 0,
            parallel_group=row[9],
            outputs=parse_json_or_dict(row[10]),
            created_at=row[11],
            updated_at=row[12],
            completed_at=row[13],
            archived_at=row[14],
            dependencies=dependencies or [],
        )

    def to_row(self) -> tuple:
        """Convert to database row tuple."""
        return (
            self.id,
            self.project_id,
            self.title,
            self.description,
            self.type.value,
            self.priority.value,
            self.stage.value,
            self.assigned_agent,
            self.rejection_count,
            self.parallel_group,
            to_json(self.outputs),
            self.created_at,
            self.updated_at,
            self.completed_at,
            self.archived_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "description": self.description,
            "priority": self.priority.value,
            "stage": self.stage.value,
            "assigned_agent": self.assigned_agent,
            "rejection_count": self.rejection_count,
            "dependencies": list(self.dependencies),
            "parallel_group": self.parallel_group,
            "outputs": dict(self.outputs),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }


@dataclass
class AgentClaim:
    """
    Exclusive lock of one agent on one item.

    Maps to: agent_claims table
    """

    project_id: str
    item_id: str
    agent: str
    claimed_at: str = field(default_factory=now_iso)

    @classmethod
    def from_row(cls, row: tuple) -> AgentClaim:
        """Create from database row."""
        return cls(
            project_id=row[0],
            item_id=row[1],
            agent=row[2],
            claimed_at=row[3],
        )

    def to_row(self) -> tuple:
        """Convert to database row tuple."""
        return (self.project_id, self.item_id, self.agent, self.claimed_at)

    def to_dict(self) -> dict[str, Any]:
        return {"item_id": self.item_id, "agent": self.agent, "claimed_at": self.claimed_at}


@dataclass
class WorkLogEntry:
    """
    Append-only history record for an item (rejections, notes).

    Maps to: work_logs table
    """

    item_id: str
    project_id: str
    action: WorkAction
    summary: str
    agent: str | None = None
    diagnosis: str | None = None
    created_at: str = field(default_factory=now_iso)
    id: int | None = None

    @classmethod
    def from_row(cls, row: tuple) -> WorkLogEntry:
        """Create from database row."""
        return cls(
            id=row[0],
            project_id=row[1],
            item_id=row[2],
            agent=row[3],
            action=WorkAction(row[4]),
            summary=row[5],
            diagnosis=row[6],
            created_at=row[7],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "agent": self.agent,
            "action": self.action.value,
            "summary": self.summary,
            "diagnosis": self.diagnosis,
            "created_at": self.created_at,
        }


@dataclass
class CheckResult:
    """Outcome of a mission precheck or postcheck run."""

    passed: bool
    lint_errors: int = 0
    tests_passed: int = 0
    tests_failed: int = 0
    blockers: list[str] = field(default_factory=list)
    checked_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "lint_errors": self.lint_errors,
            "tests_passed": self.tests_passed,
            "tests_failed": self.tests_failed,
            "blockers": list(self.blockers),
            "checked_at": self.checked_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckResult | None:
        """Create from dictionary, None for an empty payload."""
        if not data:
            return None
        return cls(
            passed=bool(data.get("passed", False)),
            lint_errors=data.get("lint_errors", 0),
            tests_passed=data.get("tests_passed", 0),
            tests_failed=data.get("tests_failed", 0),
            blockers=data.get("blockers", []),
            checked_at=data.get("checked_at", now_iso()),
        )


@dataclass
class Mission:
    """
    Umbrella execution context for one end-to-end run.

    Maps to: missions table
    """

    id: str
    project_id: str
    name: str
    state: MissionState = MissionState.INITIALIZING
    prd_path: str = ""
    started_at: str = field(default_factory=now_iso)
    completed_at: str | None = None
    archived_at: str | None = None
    precheck: CheckResult | None = None
    postcheck: CheckResult | None = None

    @classmethod
    def from_row(cls, row: tuple) -> Mission:
        """Create from database row."""
        return cls(
            id=row[0],
            project_id=row[1],
            name=row[2],
            state=MissionState(row[3]),
            prd_path=row[4] or "",
            started_at=row[5],
            completed_at=row[6],
            archived_at=row[7],
            precheck=CheckResult.from_dict(parse_json_or_dict(row[8])),
            postcheck=CheckResult.from_dict(parse_json_or_dict(row[9])),
        )

    def to_row(self) -> tuple:
        """Convert to database row tuple."""
        return (
            self.id,
            self.project_id,
            self.name,
            self.state.value,
            self.prd_path,
            self.started_at,
            self.completed_at,
            self.archived_at,
            to_json(self.precheck.to_dict()) if self.precheck else None,
            to_json(self.postcheck.to_dict()) if self.postcheck else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state.value,
            "prd_path": self.prd_path,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "archived_at": self.archived_at,
            "precheck": self.precheck.to_dict() if self.precheck else None,
            "postcheck": self.postcheck.to_dict() if self.postcheck else None,
        }


@dataclass
class ActivityLogEntry:
    """
    Append-only activity record, the source of the live event feed.

    Maps to: activity_log table
    """

    project_id: str
    message: str
    level: LogLevel = LogLevel.INFO
    agent: str | None = None
    mission_id: str | None = None
    timestamp: str = field(default_factory=now_iso)
    id: int | None = None

    @classmethod
    def from_row(cls, row: tuple) -> ActivityLogEntry:
        """Create from database row."""
        return cls(
            id=row[0],
            project_id=row[1],
            mission_id=row[2],
            agent=row[3],
            message=row[4],
            level=LogLevel(row[5]),
            timestamp=row[6],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mission_id": self.mission_id,
            "agent": self.agent,
            "message": self.message,
            "level": self.level.value,
            "timestamp": self.timestamp,
        }
