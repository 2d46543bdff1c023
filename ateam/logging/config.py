"""
Logging Configuration for the A(i)-Team Orchestrator.

Where the JSONL logs live, how large they may grow, and which level each
of the two structured loggers records.

Environment:
    ATEAM_LOG_DIR          directory for board.jsonl and feed.jsonl
    ATEAM_LOG_LEVEL        level for both loggers (DEBUG, INFO, WARNING, ERROR)
    ATEAM_LOG_MAX_SIZE_MB  size at which a log file is rotated
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from ateam.exceptions import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class LogConfig:
    """Settings for the board and feed JSONL logs."""

    log_dir: Path = field(default_factory=lambda: Path.home() / ".ateam" / "logs")

    # Rotation: 10MB per file, five generations kept
    max_file_size_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    board_level: str = "INFO"
    feed_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "LogConfig":
        """
        Build the config from ATEAM_LOG_* variables.

        Raises:
            ConfigError: On an unknown level or a non-numeric size
        """
        config = cls()

        if log_dir := os.environ.get("ATEAM_LOG_DIR"):
            config.log_dir = Path(log_dir).expanduser()

        if level := os.environ.get("ATEAM_LOG_LEVEL"):
            level = level.upper()
            if level not in LOG_LEVELS:
                raise ConfigError(
                    f"ATEAM_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}",
                    {"value": level},
                )
            config.board_level = config.feed_level = level

        if max_size := os.environ.get("ATEAM_LOG_MAX_SIZE_MB"):
            if not max_size.isdigit() or int(max_size) < 1:
                raise ConfigError("ATEAM_LOG_MAX_SIZE_MB must be a positive integer", {"value": max_size})
            config.max_file_size_bytes = int(max_size) * 1024 * 1024

        return config

    def ensure_log_dir(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def board_log_path(self) -> Path:
        """Board mutations: claims, moves, rejections, mission changes."""
        return self.log_dir / "board.jsonl"

    @property
    def feed_log_path(self) -> Path:
        """Feed diagnostics: connections, poll failures, breaker trips."""
        return self.log_dir / "feed.jsonl"


_config: LogConfig | None = None


def get_config() -> LogConfig:
    """The process-wide log config, read from the environment on first use."""
    global _config
    if _config is None:
        _config = LogConfig.from_env()
        _config.ensure_log_dir()
    return _config


def set_config(config: LogConfig) -> None:
    """Replace the process-wide log config (tests point it at tmp_path)."""
    global _config
    _config = config
    _config.ensure_log_dir()
