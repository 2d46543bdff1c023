"""Activity log helpers shared by the board services."""

from __future__ import annotations

from ateam.persistence.models import ActivityLogEntry, LogLevel
from ateam.persistence.repository import BoardRepository, Executor


def append_activity(
    repo: BoardRepository,
    project_id: str,
    message: str,
    cursor: Executor | None = None,
    agent: str | None = None,
    level: LogLevel = LogLevel.INFO,
) -> ActivityLogEntry:
    """Append an entry, tagged with the current mission if there is one."""
    mission = repo.get_current_mission(project_id, cursor)
    entry = ActivityLogEntry(
        project_id=project_id,
        message=message,
        level=level,
        agent=agent,
        mission_id=mission.id if mission else None,
    )
    return repo.append_activity(entry, cursor)


def agent_label(agent: str | None) -> str:
    """Display name for an agent in activity messages."""
    if not agent:
        return "System"
    if agent == "ba":
        return "B.A."
    return agent.capitalize()
