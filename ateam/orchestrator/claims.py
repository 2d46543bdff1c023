"""
Claim Manager - exclusive per-item work locks

An agent claims an item before working on it. At most one claim exists
per item (enforced by the agent_claims primary key); an agent may hold
claims on any number of different items.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from ateam.config import validate_agent_name
from ateam.exceptions import (
    InvalidStageError,
    ItemClaimedError,
    ItemNotFoundError,
    NotClaimedError,
)
from ateam.logging import BoardLogEntry, board_logger, now_iso
from ateam.persistence.models import AgentClaim
from ateam.persistence.repository import BoardRepository
from ateam.state import CLAIMABLE_STAGES, sorted_stages

logger = logging.getLogger(__name__)


class ClaimManager:
    """Grants and revokes item claims for one project."""

    def __init__(
        self,
        repository: BoardRepository,
        project_id: str,
        agents: list[str] | None = None,
    ):
        """
        Args:
            repository: Board store
            project_id: Normalized project id
            agents: Roster of valid agent names, None to accept any name
        """
        self.repo = repository
        self.project_id = project_id
        self.agents = agents

    def claim(self, item_id: str, agent: str) -> AgentClaim:
        """
        Claim an item for an agent.

        Returns:
            The new claim

        Raises:
            ItemNotFoundError: If the item does not exist
            InvalidStageError: If the item is not in ready or an active stage
            ItemClaimedError: If another claim is live, with the holder's name
        """
        agent = validate_agent_name(agent, self.agents)
        pid = self.project_id

        try:
            with self.repo.transaction() as cursor:
                item = self.repo.get_item(pid, item_id, cursor)
                if item is None:
                    raise ItemNotFoundError(item_id)

                if item.stage not in CLAIMABLE_STAGES:
                    raise InvalidStageError(
                        f"Item {item_id} is in stage {item.stage.value} and cannot be claimed",
                        current_stage=item.stage.value,
                        expected_stages=sorted_stages(CLAIMABLE_STAGES),
                    )

                existing = self.repo.get_claim(pid, item_id, cursor)
                if existing is not None:
                    raise ItemClaimedError(item_id, existing.agent, existing.claimed_at)

                claim = self.repo.insert_claim(AgentClaim(pid, item_id, agent), cursor)
                self.repo.update_item(pid, item_id, cursor, assigned_agent=agent)
        except sqlite3.IntegrityError:
            # A concurrent writer won the primary key race
            holder = self.repo.get_claim(pid, item_id)
            raise ItemClaimedError(item_id, holder.agent if holder else "unknown")

        logger.info(f"Claims: {agent} claimed {item_id} ({item.stage.value})")
        board_logger.info(
            BoardLogEntry(
                timestamp=now_iso(),
                project_id=pid,
                operation="claim",
                item_id=item_id,
                agent=agent,
                from_stage=item.stage.value,
            ).to_json()
        )
        return claim

    def release(self, item_id: str) -> dict[str, Any]:
        """
        Release the claim on an item without changing its stage.

        Returns:
            {"released": True, "agent": <previous holder>}

        Raises:
            ItemNotFoundError: If the item does not exist
            NotClaimedError: If the item has no claim
        """
        pid = self.project_id

        with self.repo.transaction() as cursor:
            item = self.repo.get_item(pid, item_id, cursor)
            if item is None:
                raise ItemNotFoundError(item_id)

            claim = self.repo.delete_claim(pid, item_id, cursor)
            if claim is None:
                raise NotClaimedError(item_id)

            self.repo.update_item(pid, item_id, cursor, assigned_agent=None)

        logger.info(f"Claims: {claim.agent} released {item_id}")
        board_logger.info(
            BoardLogEntry(
                timestamp=now_iso(),
                project_id=pid,
                operation="release",
                item_id=item_id,
                agent=claim.agent,
                from_stage=item.stage.value,
            ).to_json()
        )
        return {"released": True, "agent": claim.agent}

    def claims_for(self, agent: str | None = None) -> list[AgentClaim]:
        """List live claims, optionally for one agent."""
        return self.repo.list_claims(self.project_id, agent=agent)
