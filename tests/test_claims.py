"""Tests for item claims."""

import threading

import pytest

from ateam.config import BoardConfig
from ateam.exceptions import (
    InvalidStageError,
    ItemClaimedError,
    ItemNotFoundError,
    NotClaimedError,
    ValidationError,
)
from ateam.orchestrator.board import Board
from ateam.persistence.repository import BoardRepository
from ateam.state import Stage


@pytest.fixture
def ready_item(board):
    item = board.create_item("Login form")
    board.move(item.id, Stage.READY)
    return item


class TestClaim:
    """Tests for ClaimManager.claim via the board."""

    def test_claim_ready_item(self, board, ready_item):
        claim = board.claim(ready_item.id, "Murdock")

        assert claim.agent == "murdock"
        assert claim.item_id == ready_item.id
        assert board.get_item(ready_item.id).assigned_agent == "murdock"
        assert [c.item_id for c in board.claims.claims_for("murdock")] == [ready_item.id]

    def test_second_claim_names_holder(self, board, ready_item):
        board.claim(ready_item.id, "murdock")

        with pytest.raises(ItemClaimedError) as exc_info:
            board.claim(ready_item.id, "ba")

        assert exc_info.value.code == "ITEM_CLAIMED"
        assert exc_info.value.details["claimed_by"] == "murdock"
        assert board.get_item(ready_item.id).assigned_agent == "murdock"

    def test_same_agent_cannot_claim_twice(self, board, ready_item):
        board.claim(ready_item.id, "murdock")
        with pytest.raises(ItemClaimedError):
            board.claim(ready_item.id, "murdock")

    def test_agent_may_hold_many_claims(self, board, ready_item):
        other = board.create_item("Logout")
        board.move(other.id, Stage.READY)

        board.claim(ready_item.id, "face")
        board.claim(other.id, "face")

        assert len(board.claims.claims_for("face")) == 2

    def test_briefings_item_not_claimable(self, board):
        item = board.create_item("Not yet ready")

        with pytest.raises(InvalidStageError) as exc_info:
            board.claim(item.id, "murdock")

        assert exc_info.value.details["current_stage"] == "briefings"
        assert "ready" in exc_info.value.details["claimable_stages"]
        assert "done" not in exc_info.value.details["claimable_stages"]

    def test_unknown_item(self, board):
        with pytest.raises(ItemNotFoundError):
            board.claim("WI-404", "murdock")

    def test_unknown_agent(self, board, ready_item):
        with pytest.raises(ValidationError) as exc_info:
            board.claim(ready_item.id, "decker")
        assert "valid_agents" in exc_info.value.details

    def test_concurrent_claims_one_winner(self, board, ready_item, db_path):
        """Claims racing from separate connections produce exactly one winner."""
        agents = ["hannibal", "face", "murdock", "ba", "amy"]
        barrier = threading.Barrier(len(agents))
        results: dict[str, str] = {}
        lock = threading.Lock()

        def attempt(agent: str) -> None:
            with BoardRepository(db_path) as repo:
                contender = Board(repo, "test-project", BoardConfig())
                barrier.wait()
                try:
                    contender.claim(ready_item.id, agent)
                    outcome = "won"
                except ItemClaimedError:
                    outcome = "lost"
            with lock:
                results[agent] = outcome

        threads = [threading.Thread(target=attempt, args=(agent,)) for agent in agents]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        winners = [agent for agent, outcome in results.items() if outcome == "won"]
        assert len(results) == len(agents)
        assert len(winners) == 1
        assert board.get_item(ready_item.id).assigned_agent == winners[0]
        assert len(board.claims.claims_for()) == 1


class TestRelease:
    """Tests for ClaimManager.release via the board."""

    def test_release(self, board, ready_item):
        board.claim(ready_item.id, "murdock")

        result = board.release(ready_item.id)

        assert result == {"released": True, "agent": "murdock"}
        item = board.get_item(ready_item.id)
        assert item.assigned_agent is None
        assert item.stage == Stage.READY
        assert board.claims.claims_for() == []

    def test_release_unclaimed(self, board, ready_item):
        with pytest.raises(NotClaimedError) as exc_info:
            board.release(ready_item.id)
        assert exc_info.value.code == "NOT_CLAIMED"

    def test_release_unknown_item(self, board):
        with pytest.raises(ItemNotFoundError):
            board.release("WI-404")

    def test_claim_again_after_release(self, board, ready_item):
        board.claim(ready_item.id, "murdock")
        board.release(ready_item.id)
        assert board.claim(ready_item.id, "ba").agent == "ba"
