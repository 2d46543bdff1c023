"""Shared fixtures: isolated log directory and a fresh board database per test."""

import pytest

from ateam.config import BoardConfig
from ateam.logging import LogConfig, reset_loggers, set_config
from ateam.orchestrator.board import Board
from ateam.persistence.repository import BoardRepository


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path):
    """Write JSONL logs under the test's tmp_path instead of ~/.ateam."""
    reset_loggers()
    config = LogConfig(log_dir=tmp_path / "logs")
    set_config(config)
    yield config
    reset_loggers()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "board.db"


@pytest.fixture
def repo(db_path):
    """Initialized repository, closed after the test."""
    with BoardRepository(db_path) as repository:
        yield repository


@pytest.fixture
def board(repo):
    """Board for project 'test-project' with default limits."""
    return Board(repo, "test-project", BoardConfig())
