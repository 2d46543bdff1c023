"""
A(i)-Team Persistence Layer

SQLite-backed store for work items, claims, missions and the
append-only activity log.
"""

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
    now_iso,
)
from ateam.persistence.repository import DEFAULT_DB_PATH, BoardRepository

__all__ = [
    # Repository
    "BoardRepository",
    "DEFAULT_DB_PATH",
    # Models
    "ActivityLogEntry",
    "AgentClaim",
    "CheckResult",
    "Mission",
    "WorkItem",
    "WorkLogEntry",
    # Enums
    "ItemType",
    "LogLevel",
    "Priority",
    "WorkAction",
    # Helpers
    "now_iso",
]
