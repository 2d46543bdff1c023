"""Tests for the board repository."""

import sqlite3
from datetime import datetime

import pytest

from ateam.persistence.models import (
    ActivityLogEntry,
    AgentClaim,
    CheckResult,
    Mission,
    WorkAction,
    WorkItem,
    WorkLogEntry,
)
from ateam.persistence.repository import BoardRepository
from ateam.state import ACTIVE_STAGES, MissionState, Stage

PROJECT = "test-project"


def add_item(repo: BoardRepository, title: str = "Item", **kwargs) -> WorkItem:
    with repo.transaction() as cursor:
        repo.ensure_project(PROJECT, cursor)
        item = WorkItem(id=repo.next_item_id(PROJECT, cursor), project_id=PROJECT, title=title, **kwargs)
        return repo.insert_item(item, cursor)


class TestConnection:
    """Tests for connection setup."""

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "board.db"
        with BoardRepository(path) as repo:
            assert repo.list_projects() == []
        assert path.exists()

    def test_schema_is_idempotent(self, db_path):
        with BoardRepository(db_path) as repo:
            add_item(repo)
        with BoardRepository(db_path) as repo:
            assert len(repo.list_items(PROJECT)) == 1

    def test_transaction_rolls_back_on_error(self, repo):
        with pytest.raises(RuntimeError):
            with repo.transaction() as cursor:
                repo.ensure_project(PROJECT, cursor)
                raise RuntimeError("boom")
        assert repo.list_projects() == []


class TestItems:
    """Tests for item storage."""

    def test_ids_are_sequential(self, repo):
        assert add_item(repo).id == "WI-001"
        assert add_item(repo).id == "WI-002"

    def test_ids_continue_past_archived_items(self, repo):
        first = add_item(repo)
        repo.archive_items(PROJECT, [first.id], "2026-01-01T00:00:00Z")
        assert add_item(repo).id == "WI-002"

    def test_ids_are_per_project(self, repo):
        add_item(repo)
        with repo.transaction() as cursor:
            repo.ensure_project("other", cursor)
            assert repo.next_item_id("other", cursor) == "WI-001"

    def test_round_trip_with_dependencies(self, repo):
        add_item(repo, "Base")
        add_item(repo, "Other")
        item = add_item(
            repo,
            "Login",
            dependencies=["WI-002", "WI-001"],
            outputs={"test": "tests/test_login.py"},
            parallel_group="auth",
        )

        loaded = repo.get_item(PROJECT, item.id)
        assert loaded.title == "Login"
        assert loaded.dependencies == ["WI-002", "WI-001"]
        assert loaded.outputs == {"test": "tests/test_login.py"}
        assert loaded.parallel_group == "auth"
        assert loaded.stage == Stage.BRIEFINGS

    def test_list_items_sorted_by_number(self, repo):
        for n in range(11):
            add_item(repo, f"Item {n}")
        ids = [item.id for item in repo.list_items(PROJECT)]
        assert ids[0] == "WI-001"
        assert ids[-1] == "WI-011"

    def test_list_items_by_stage(self, repo):
        add_item(repo)
        add_item(repo, stage=Stage.READY)
        assert [i.id for i in repo.list_items(PROJECT, stage=Stage.READY)] == ["WI-002"]

    def test_update_item_stores_enum_values(self, repo):
        item = add_item(repo)
        repo.update_item(PROJECT, item.id, stage=Stage.READY, rejection_count=1)
        loaded = repo.get_item(PROJECT, item.id)
        assert loaded.stage == Stage.READY
        assert loaded.rejection_count == 1

    def test_count_items_in_stages(self, repo):
        add_item(repo, stage=Stage.TESTING)
        add_item(repo, stage=Stage.REVIEW)
        add_item(repo, stage=Stage.READY)
        assert repo.count_items_in_stages(PROJECT, ACTIVE_STAGES) == 2

    def test_archived_items_hidden(self, repo):
        item = add_item(repo, stage=Stage.TESTING)
        repo.insert_claim(AgentClaim(PROJECT, item.id, "murdock"))

        assert repo.archive_items(PROJECT, [item.id], "2026-01-01T00:00:00Z") == 1

        assert repo.get_item(PROJECT, item.id) is None
        assert repo.get_item(PROJECT, item.id, include_archived=True) is not None
        assert repo.list_items(PROJECT) == []
        assert repo.count_items_in_stages(PROJECT, ACTIVE_STAGES) == 0
        assert repo.get_claim(PROJECT, item.id) is None


class TestClaims:
    """Tests for claim rows."""

    def test_one_claim_per_item(self, repo):
        item = add_item(repo)
        repo.insert_claim(AgentClaim(PROJECT, item.id, "murdock"))
        with pytest.raises(sqlite3.IntegrityError):
            repo.insert_claim(AgentClaim(PROJECT, item.id, "ba"))

    def test_delete_returns_removed_claim(self, repo):
        item = add_item(repo)
        repo.insert_claim(AgentClaim(PROJECT, item.id, "murdock"))
        removed = repo.delete_claim(PROJECT, item.id)
        assert removed.agent == "murdock"
        assert repo.delete_claim(PROJECT, item.id) is None

    def test_list_claims_by_agent(self, repo):
        first = add_item(repo)
        second = add_item(repo)
        repo.insert_claim(AgentClaim(PROJECT, first.id, "murdock"))
        repo.insert_claim(AgentClaim(PROJECT, second.id, "ba"))
        assert [c.item_id for c in repo.list_claims(PROJECT, agent="ba")] == [second.id]
        assert len(repo.list_claims(PROJECT)) == 2


class TestWorkLogs:
    def test_history_in_order(self, repo):
        item = add_item(repo)
        for action in (WorkAction.STARTED, WorkAction.REJECTED):
            repo.add_work_log(WorkLogEntry(item.id, PROJECT, action, action.value, agent="amy"))
        logs = repo.list_work_logs(PROJECT, item.id)
        assert [log.action for log in logs] == [WorkAction.STARTED, WorkAction.REJECTED]
        assert logs[0].id < logs[1].id


class TestMissions:
    """Tests for mission rows."""

    def test_mission_ids_per_day(self, repo):
        day = datetime(2026, 3, 14)
        repo.ensure_project(PROJECT)
        first = repo.next_mission_id(day)
        assert first == "M-20260314-001"
        repo.insert_mission(Mission(id=first, project_id=PROJECT, name="One"))
        assert repo.next_mission_id(day) == "M-20260314-002"

    def test_save_mission_with_check_results(self, repo):
        repo.ensure_project(PROJECT)
        mission = Mission(id="M-20260314-001", project_id=PROJECT, name="One")
        repo.insert_mission(mission)
        mission.state = MissionState.RUNNING
        mission.precheck = CheckResult(passed=True, tests_passed=12)
        repo.save_mission(mission)

        loaded = repo.get_current_mission(PROJECT)
        assert loaded.state == MissionState.RUNNING
        assert loaded.precheck.tests_passed == 12
        assert loaded.postcheck is None


class TestActivity:
    """Tests for the activity log."""

    def test_ids_increase(self, repo):
        repo.ensure_project(PROJECT)
        first = repo.append_activity(ActivityLogEntry(PROJECT, "one"))
        second = repo.append_activity(ActivityLogEntry(PROJECT, "two"))
        assert second.id > first.id
        assert repo.latest_activity_id(PROJECT) == second.id

    def test_list_after_cursor(self, repo):
        repo.ensure_project(PROJECT)
        entries = [repo.append_activity(ActivityLogEntry(PROJECT, f"entry {n}")) for n in range(5)]
        after = repo.list_activity(PROJECT, after_id=entries[1].id)
        assert [e.message for e in after] == ["entry 2", "entry 3", "entry 4"]
        assert [e.message for e in repo.list_activity(PROJECT, limit=2)] == ["entry 0", "entry 1"]

    def test_recent_activity_oldest_first(self, repo):
        repo.ensure_project(PROJECT)
        for n in range(5):
            repo.append_activity(ActivityLogEntry(PROJECT, f"entry {n}"))
        assert [e.message for e in repo.recent_activity(PROJECT, limit=2)] == ["entry 3", "entry 4"]

    def test_latest_id_empty(self, repo):
        assert repo.latest_activity_id(PROJECT) == 0
