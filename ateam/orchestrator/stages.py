"""
Stage State Machine - validated item moves

Moves an item between pipeline stages. A move is one transaction that
covers the stage change, the claim hand-over, the WIP check and the
activity log entry, so either all of them commit or none do.

Pipeline:
    briefings -> ready -> testing -> implementing -> review -> probing -> done
    review/probing -> ready (another pass)
    any active stage -> blocked
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ateam.config import DEFAULT_WIP_LIMIT, validate_agent_name
from ateam.exceptions import (
    InvalidTransitionError,
    ItemNotFoundError,
    ValidationError,
    WipLimitExceededError,
)
from ateam.logging import BoardLogEntry, board_logger, now_iso
from ateam.orchestrator.activity import agent_label, append_activity
from ateam.orchestrator.dependencies import final_review_ready
from ateam.persistence.models import AgentClaim, WorkAction, WorkItem, WorkLogEntry
from ateam.persistence.repository import BoardRepository
from ateam.state import ACTIVE_STAGES, Stage, require_transition

logger = logging.getLogger(__name__)

FINAL_REVIEW_MESSAGE = "All items complete - Final Mission Review ready"


def parse_stage(value: Stage | str) -> Stage:
    """
    Convert a stage name to Stage.

    Raises:
        ValidationError: If the name is not a known stage
    """
    if isinstance(value, Stage):
        return value
    try:
        return Stage(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Unknown stage '{value}'",
            {"field": "stage", "value": value, "valid_stages": [s.value for s in Stage]},
        )


@dataclass
class MoveResult:
    """Outcome of a successful move."""

    item: WorkItem
    from_stage: Stage
    to_stage: Stage
    claimed_by: str | None = None
    released_from: str | None = None
    final_review_ready: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "item": self.item.to_dict(),
            "from_stage": self.from_stage.value,
            "to_stage": self.to_stage.value,
            "claimed_by": self.claimed_by,
            "released_from": self.released_from,
            "final_review_ready": self.final_review_ready,
        }


class StageMachine:
    """Executes stage transitions for one project."""

    def __init__(
        self,
        repository: BoardRepository,
        project_id: str,
        wip_limit: int = DEFAULT_WIP_LIMIT,
        agents: list[str] | None = None,
    ):
        self.repo = repository
        self.project_id = project_id
        self.wip_limit = wip_limit
        self.agents = agents

    def move(self, item_id: str, to_stage: Stage | str, agent: str | None = None) -> MoveResult:
        """
        Move an item to another stage.

        Any existing claim is dropped. When an agent is given and the target
        stage is active, the agent claims the item in the same transaction.

        Args:
            item_id: Item to move
            to_stage: Target stage
            agent: Agent taking over the item, optional

        Returns:
            MoveResult with the updated item

        Raises:
            ItemNotFoundError: If the item does not exist
            InvalidTransitionError: If the edge is not allowed
            WipLimitExceededError: If ready -> active would exceed the WIP limit
        """
        target = parse_stage(to_stage)
        if agent is not None:
            agent = validate_agent_name(agent, self.agents)
        pid = self.project_id

        with self.repo.transaction() as cursor:
            item = self.repo.get_item(pid, item_id, cursor)
            if item is None:
                raise ItemNotFoundError(item_id)

            source = item.stage
            require_transition(source, target)

            if source == Stage.READY and target in ACTIVE_STAGES:
                in_flight = self.repo.count_items_in_stages(pid, ACTIVE_STAGES, cursor)
                if in_flight >= self.wip_limit:
                    raise WipLimitExceededError(target.value, self.wip_limit, in_flight)

            released = self.repo.delete_claim(pid, item_id, cursor)

            claimed_by = None
            if agent and target in ACTIVE_STAGES:
                self.repo.insert_claim(AgentClaim(pid, item_id, agent), cursor)
                claimed_by = agent
                self.repo.add_work_log(
                    WorkLogEntry(
                        item_id=item_id,
                        project_id=pid,
                        action=WorkAction.STARTED,
                        summary=f"Started {target.value}",
                        agent=agent,
                    ),
                    cursor,
                )

            fields: dict[str, Any] = {"stage": target, "assigned_agent": claimed_by}
            if target == Stage.DONE:
                fields["completed_at"] = now_iso()
                self.repo.add_work_log(
                    WorkLogEntry(
                        item_id=item_id,
                        project_id=pid,
                        action=WorkAction.COMPLETED,
                        summary="Completed",
                        agent=agent or (released.agent if released else None),
                    ),
                    cursor,
                )
            self.repo.update_item(pid, item_id, cursor, **fields)

            message = f"{item_id} moved from {source.value} to {target.value}"
            if claimed_by:
                message += f" ({agent_label(claimed_by)})"
            append_activity(self.repo, pid, message, cursor, agent=agent)

            ready_for_review = False
            if target == Stage.DONE:
                ready_for_review = final_review_ready(self.repo.list_items(pid, cursor))
                if ready_for_review:
                    append_activity(self.repo, pid, FINAL_REVIEW_MESSAGE, cursor)

            updated = self.repo.get_item(pid, item_id, cursor)

        logger.info(
            f"StageMachine: Moved {item_id} {source.value} -> {target.value}"
            + (f" (claimed by {claimed_by})" if claimed_by else "")
        )
        if ready_for_review:
            logger.info(f"StageMachine: {FINAL_REVIEW_MESSAGE}")
        board_logger.info(
            BoardLogEntry(
                timestamp=now_iso(),
                project_id=pid,
                operation="move",
                item_id=item_id,
                agent=claimed_by,
                from_stage=source.value,
                to_stage=target.value,
                details={
                    "released_from": released.agent if released else None,
                    "final_review_ready": ready_for_review,
                },
            ).to_json()
        )

        return MoveResult(
            item=updated,  # type: ignore[arg-type]
            from_stage=source,
            to_stage=target,
            claimed_by=claimed_by,
            released_from=released.agent if released else None,
            final_review_ready=ready_for_review,
        )

    def readmit(self, item_id: str, agent: str | None = None) -> MoveResult:
        """
        Manually return a blocked item to ready.

        This is the operator's way out of escalation; nothing in the
        pipeline calls it. The rejection count is kept.

        Raises:
            ItemNotFoundError: If the item does not exist
            InvalidTransitionError: If the item is not blocked
        """
        pid = self.project_id

        with self.repo.transaction() as cursor:
            item = self.repo.get_item(pid, item_id, cursor)
            if item is None:
                raise ItemNotFoundError(item_id)
            if item.stage != Stage.BLOCKED:
                raise InvalidTransitionError(
                    f"Only blocked items can be re-admitted; {item_id} is in {item.stage.value}",
                    from_state=item.stage.value,
                    to_state=Stage.READY.value,
                )

            self.repo.update_item(pid, item_id, cursor, stage=Stage.READY, assigned_agent=None)
            append_activity(
                self.repo,
                pid,
                f"{item_id} re-admitted from blocked to ready",
                cursor,
                agent=agent,
            )
            updated = self.repo.get_item(pid, item_id, cursor)

        logger.info(f"StageMachine: Re-admitted {item_id} to ready")
        board_logger.info(
            BoardLogEntry(
                timestamp=now_iso(),
                project_id=pid,
                operation="readmit",
                item_id=item_id,
                agent=agent,
                from_stage=Stage.BLOCKED.value,
                to_stage=Stage.READY.value,
            ).to_json()
        )
        return MoveResult(item=updated, from_stage=Stage.BLOCKED, to_stage=Stage.READY)  # type: ignore[arg-type]
