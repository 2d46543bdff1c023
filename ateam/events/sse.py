"""
Server-sent events wire format.

Events are framed as `data: <json>\n\n`; the keep-alive marker is an SSE
comment line so that clients ignore it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ateam.persistence.models import now_iso

HEARTBEAT = ": heartbeat\n\n"


class EventType(str, Enum):
    """Kinds of board events sent to observers."""

    ITEM_ADDED = "item-added"
    ITEM_MOVED = "item-moved"
    ITEM_UPDATED = "item-updated"
    ITEM_DELETED = "item-deleted"
    BOARD_UPDATED = "board-updated"
    MISSION_COMPLETED = "mission-completed"
    ACTIVITY_ENTRY_ADDED = "activity-entry-added"


@dataclass
class BoardEvent:
    """One event in the live feed."""

    type: EventType
    data: dict[str, Any]
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "timestamp": self.timestamp, "data": self.data}


def format_sse_event(event: BoardEvent) -> str:
    """Frame an event for the wire."""
    return f"data: {json.dumps(event.to_dict(), default=str)}\n\n"


def parse_sse_chunk(chunk: str) -> list[dict[str, Any]]:
    """
    Decode the events contained in a chunk of SSE text.

    Comment lines (heartbeats) are skipped.
    """
    events = []
    for block in chunk.split("\n\n"):
        for line in block.splitlines():
            if line.startswith("data: "):
                events.append(json.loads(line[len("data: "):]))
    return events
