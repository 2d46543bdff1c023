"""
Custom Log Handlers for the A(i)-Team Orchestrator.

JSONL rotating file handler for structured log output, plus a reader
used by the `ateam logs` command.
"""

import json
import logging
from collections import deque
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any


class JSONLRotatingHandler(RotatingFileHandler):
    """
    Rotating file handler that writes one JSON object per line.

    Messages produced by entry.to_json() are written as-is with the record
    level added; plain text messages are wrapped in a small envelope.
    """

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 10_000_000,  # 10MB
        backup_count: int = 5,
    ):
        filepath = Path(filename)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(filepath),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record as a JSONL line."""
        try:
            msg = self.format(record)

            try:
                data = json.loads(msg)
            except json.JSONDecodeError:
                data = None

            if isinstance(data, dict):
                data.setdefault("level", record.levelname)
            else:
                data = {
                    "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                    "level": record.levelname,
                    "message": msg,
                    "logger": record.name,
                }

            if self.shouldRollover(record):
                self.doRollover()
            self.stream.write(json.dumps(data, default=str) + "\n")
            self.flush()

        except Exception:
            self.handleError(record)


class SimpleFormatter(logging.Formatter):
    """Formatter that returns the message unchanged (entries are already JSON)."""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def create_jsonl_logger(
    name: str,
    filepath: Path,
    level: str = "INFO",
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create a logger configured for JSONL output.

    Args:
        name: Logger name
        filepath: Path to log file
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Max file size before rotation
        backup_count: Number of backup files

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = JSONLRotatingHandler(
        filepath,
        max_bytes=max_bytes,
        backup_count=backup_count,
    )
    handler.setFormatter(SimpleFormatter())
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def read_jsonl_tail(filepath: Path, limit: int = 20) -> list[dict[str, Any]]:
    """
    Read the last `limit` entries of a JSONL log file.

    Lines that are not valid JSON are skipped.
    """
    if not filepath.exists():
        return []

    tail: deque[dict[str, Any]] = deque(maxlen=limit)
    with open(filepath, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict):
                tail.append(entry)
    return list(tail)
