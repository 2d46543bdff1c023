"""
Log Entry Data Structures for the A(i)-Team Orchestrator.

Defines structured log entries for board mutations and event feed
connections.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any


@dataclass
class BoardLogEntry:
    """Log entry for a board mutation (claim, release, move, reject, mission)."""

    timestamp: str  # ISO 8601
    project_id: str
    operation: str  # "claim", "release", "move", "reject", "archive_mission", ...

    item_id: str | None = None
    mission_id: str | None = None
    agent: str | None = None
    from_stage: str | None = None
    to_stage: str | None = None

    # Outcome
    success: bool = True
    error_code: str | None = None
    error: str | None = None
    details: dict[str, Any] | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BoardLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class FeedLogEntry:
    """Log entry for event feed connections."""

    timestamp: str  # ISO 8601
    connection_id: str
    project_id: str
    event: str  # "opened", "poll_failed", "emit_failed", "circuit_open", "closed"

    query: str | None = None  # "items", "mission", "activity" or "emit"
    error: str | None = None
    error_type: str | None = None
    consecutive_errors: int = 0
    last_activity_log_id: int = 0
    events_emitted: int = 0

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def now_iso() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now().isoformat()
