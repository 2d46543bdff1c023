"""Tests for the ateam command line."""

import pytest
from typer.testing import CliRunner

from ateam.cli import app

runner = CliRunner()


@pytest.fixture
def invoke(tmp_path, monkeypatch):
    """Run a command against a temporary board for project 'cli-project'."""
    monkeypatch.setattr("ateam.config.CONFIG_FILE", tmp_path / "config.json")
    for name in ("ATEAM_DB_PATH", "ATEAM_PROJECT_ID", "ATEAM_WIP_LIMIT", "SSE_POLL_INTERVAL_MS"):
        monkeypatch.delenv(name, raising=False)
    db = str(tmp_path / "board.db")

    def run(*args: str, project: str | None = "cli-project"):
        options = ["--db", db]
        if project is not None:
            options += ["--project", project]
        return runner.invoke(app, [*options, *args])

    return run


class TestItemCommands:
    def test_add_and_list(self, invoke):
        result = invoke("add-item", "Login form", "--type", "bug")
        assert result.exit_code == 0
        assert "Added WI-001" in result.output

        result = invoke("items")
        assert result.exit_code == 0
        assert "WI-001" in result.output

    def test_empty_board(self, invoke):
        result = invoke("items")
        assert result.exit_code == 0
        assert "No items on the board" in result.output

    def test_missing_project(self, invoke):
        result = invoke("items", project=None)
        assert result.exit_code == 1
        assert "VALIDATION_ERROR" in result.output

    def test_unknown_dependency(self, invoke):
        result = invoke("add-item", "Login form", "--dep", "WI-404")
        assert result.exit_code == 1
        assert "WI-404" in result.output


class TestPipelineCommands:
    """Tests for move, claim, release and reject."""

    def test_move_with_agent(self, invoke):
        invoke("add-item", "Login form")
        assert invoke("move", "WI-001", "ready").exit_code == 0

        result = invoke("move", "WI-001", "testing", "--agent", "murdock")

        assert result.exit_code == 0
        assert "claimed by murdock" in result.output

    def test_invalid_move(self, invoke):
        invoke("add-item", "Login form")
        result = invoke("move", "WI-001", "done")
        assert result.exit_code == 1
        assert "INVALID_TRANSITION" in result.output

    def test_claim_and_release(self, invoke):
        invoke("add-item", "Login form")
        invoke("move", "WI-001", "ready")

        assert "face claimed WI-001" in invoke("claim", "WI-001", "face").output
        conflict = invoke("claim", "WI-001", "amy")
        assert conflict.exit_code == 1
        assert "ITEM_CLAIMED" in conflict.output
        assert "was face" in invoke("release", "WI-001").output

    def test_reject_then_escalate(self, invoke):
        invoke("add-item", "Login form")
        invoke("move", "WI-001", "ready")

        invoke("move", "WI-001", "testing")
        first = invoke("reject", "WI-001", "missing error handling")
        assert "back to ready" in first.output

        invoke("move", "WI-001", "testing")
        second = invoke("reject", "WI-001", "still missing")
        assert "escalated to blocked" in second.output

        assert invoke("readmit", "WI-001").exit_code == 0

    def test_deps_json(self, invoke):
        invoke("add-item", "Base")
        invoke("add-item", "Login form", "--dep", "WI-001")
        result = invoke("deps", "--json")
        assert result.exit_code == 0
        assert '"ready_items"' in result.output


class TestMissionCommands:
    def test_mission_lifecycle(self, invoke):
        result = invoke("mission", "start", "Kanban viewer")
        assert result.exit_code == 0
        assert "Kanban viewer" in result.output

        assert invoke("mission", "precheck", "--passed", "--tests-passed", "12").exit_code == 0
        result = invoke("mission", "current")
        assert "running" in result.output

        result = invoke("mission", "archive")
        assert result.exit_code == 0
        assert "Archived" in result.output

    def test_archive_without_mission(self, invoke):
        result = invoke("mission", "archive")
        assert result.exit_code == 1
        assert "MISSION_NOT_FOUND" in result.output


class TestActivityCommands:
    def test_log_and_show_activity(self, invoke):
        assert invoke("log", "Plan approved", "--agent", "hannibal").exit_code == 0
        result = invoke("activity")
        assert "Plan approved" in result.output

    def test_board_log(self, invoke):
        invoke("add-item", "Login form")
        result = invoke("logs", "--type", "board")
        assert result.exit_code == 0
        assert "create_item" in result.output

    def test_unknown_log_type(self, invoke):
        assert invoke("logs", "--type", "audit").exit_code == 1
