"""
A(i)-Team Orchestrator Logging System.

Provides structured JSONL logging for:
- Board mutations (claims, releases, moves, rejections, mission changes)
- Event feed connections (poll failures, circuit breaker trips)

Usage:
    from ateam.logging import board_logger, BoardLogEntry, now_iso

    entry = BoardLogEntry(
        timestamp=now_iso(),
        project_id="my-project",
        operation="move",
        item_id="WI-001",
        ...
    )
    board_logger.info(entry.to_json())

Logs are written to ~/.ateam/logs/:
    - board.jsonl: Board mutations and their outcome
    - feed.jsonl: Event feed diagnostics
"""

import threading
from typing import Any

from .config import LogConfig, get_config, set_config
from .entries import BoardLogEntry, FeedLogEntry, now_iso
from .handlers import create_jsonl_logger, read_jsonl_tail

# Lazy-initialized loggers to avoid creating files before needed
_loggers: dict[str, Any] = {}
_init_lock = threading.Lock()


def _ensure_loggers() -> None:
    """Initialize loggers on first use."""
    if _loggers:
        return

    with _init_lock:
        # Double-check after acquiring lock
        if _loggers:
            return

        config = get_config()

        _loggers["feed"] = create_jsonl_logger(
            "ateam.feed",
            config.feed_log_path,
            level=config.feed_level,
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
        )
        _loggers["board"] = create_jsonl_logger(
            "ateam.board",
            config.board_log_path,
            level=config.board_level,
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
        )


def reset_loggers() -> None:
    """Drop initialized loggers so the next use picks up the current config."""
    with _init_lock:
        for logger in _loggers.values():
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        _loggers.clear()


class _LazyLogger:
    """Lazy wrapper that initializes the actual logger on first use."""

    def __init__(self, name: str):
        self._name = name

    def _get_logger(self) -> Any:
        _ensure_loggers()
        return _loggers[self._name]

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().error(msg, *args, **kwargs)


# Public logger instances
board_logger = _LazyLogger("board")
feed_logger = _LazyLogger("feed")


__all__ = [
    # Loggers
    "board_logger",
    "feed_logger",
    "reset_loggers",
    # Log entries
    "BoardLogEntry",
    "FeedLogEntry",
    # Utilities
    "now_iso",
    "read_jsonl_tail",
    # Config
    "LogConfig",
    "get_config",
    "set_config",
]
