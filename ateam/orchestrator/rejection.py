"""
Rejection & Escalation - send items back or escalate them

Every rejection increments the item's rejection count and appends a
rejection record to its history. The first rejection sends the item
back to ready; reaching the escalation threshold blocks it for a human.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ateam.config import REJECTION_ESCALATION_THRESHOLD, validate_agent_name
from ateam.exceptions import InvalidStageError, ItemNotFoundError, ValidationError
from ateam.logging import BoardLogEntry, board_logger, now_iso
from ateam.orchestrator.activity import agent_label, append_activity
from ateam.persistence.models import LogLevel, WorkAction, WorkLogEntry
from ateam.persistence.repository import BoardRepository
from ateam.state import ACTIVE_STAGES, Stage, sorted_stages

logger = logging.getLogger(__name__)


@dataclass
class RejectionResult:
    """Outcome of a rejection."""

    item_id: str
    rejection_count: int
    moved_to: Stage
    escalate: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "rejection_count": self.rejection_count,
            "moved_to": self.moved_to.value,
            "escalate": self.escalate,
        }


class RejectionHandler:
    """Applies the rejection policy for one project."""

    def __init__(
        self,
        repository: BoardRepository,
        project_id: str,
        threshold: int = REJECTION_ESCALATION_THRESHOLD,
        agents: list[str] | None = None,
    ):
        self.repo = repository
        self.project_id = project_id
        self.threshold = threshold
        self.agents = agents

    def reject(
        self,
        item_id: str,
        reason: str,
        agent: str | None = None,
        diagnosis: str | None = None,
    ) -> RejectionResult:
        """
        Reject an item.

        Args:
            item_id: Item being rejected
            reason: Why it was rejected
            agent: Reviewing agent, optional
            diagnosis: Root-cause notes, optional

        Returns:
            RejectionResult with the new count and where the item went

        Raises:
            ItemNotFoundError: If the item does not exist
            InvalidStageError: If the item is not in an active stage
            ValidationError: If the reason is empty or the agent is unknown
        """
        if not reason or not reason.strip():
            raise ValidationError("reason is required", {"field": "reason"})
        if agent is not None:
            agent = validate_agent_name(agent, self.agents)
        pid = self.project_id

        with self.repo.transaction() as cursor:
            item = self.repo.get_item(pid, item_id, cursor)
            if item is None:
                raise ItemNotFoundError(item_id)
            if item.stage not in ACTIVE_STAGES:
                raise InvalidStageError(
                    f"Item {item_id} is in stage {item.stage.value} and cannot be rejected",
                    current_stage=item.stage.value,
                    expected_stages=sorted_stages(ACTIVE_STAGES),
                )

            count = item.rejection_count + 1
            escalate = count >= self.threshold
            target = Stage.BLOCKED if escalate else Stage.READY

            self.repo.add_work_log(
                WorkLogEntry(
                    item_id=item_id,
                    project_id=pid,
                    action=WorkAction.REJECTED,
                    summary=reason.strip(),
                    agent=agent,
                    diagnosis=diagnosis,
                ),
                cursor,
            )
            released = self.repo.delete_claim(pid, item_id, cursor)
            self.repo.update_item(
                pid,
                item_id,
                cursor,
                stage=target,
                rejection_count=count,
                assigned_agent=None,
            )

            if escalate:
                message = (
                    f"{item_id} rejected by {agent_label(agent)} ({count} rejections), "
                    f"escalated to blocked: {reason.strip()}"
                )
                level = LogLevel.WARN
            else:
                message = f"{item_id} rejected by {agent_label(agent)}, back to ready: {reason.strip()}"
                level = LogLevel.INFO
            append_activity(self.repo, pid, message, cursor, agent=agent, level=level)

        if escalate:
            logger.warning(f"Rejection: {item_id} escalated after {count} rejections")
        else:
            logger.info(f"Rejection: {item_id} sent back to ready (rejection {count})")
        board_logger.info(
            BoardLogEntry(
                timestamp=now_iso(),
                project_id=pid,
                operation="reject",
                item_id=item_id,
                agent=agent,
                from_stage=item.stage.value,
                to_stage=target.value,
                details={
                    "rejection_count": count,
                    "escalate": escalate,
                    "reason": reason,
                    "released_from": released.agent if released else None,
                },
            ).to_json()
        )

        return RejectionResult(
            item_id=item_id,
            rejection_count=count,
            moved_to=target,
            escalate=escalate,
        )
