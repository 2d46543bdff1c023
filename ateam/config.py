"""
A(i)-Team Orchestrator - Configuration Management

Handles loading config.json, environment variables, and request-level
validation of project ids and agent names.
Settings are stored in ~/.config/ateam/config.json
"""

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ateam.exceptions import ConfigError, ValidationError


# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "ateam"
CONFIG_FILE = CONFIG_DIR / "config.json"
DEFAULT_DB_PATH = CONFIG_DIR / "board.db"

DEFAULT_WIP_LIMIT = 12
DEFAULT_POLL_INTERVAL_MS = 1000
DEFAULT_HEARTBEAT_INTERVAL_MS = 30000
MAX_CONSECUTIVE_ERRORS = 5
REJECTION_ESCALATION_THRESHOLD = 2

DEFAULT_AGENTS = ["hannibal", "face", "murdock", "ba", "amy", "lynch", "tawnia", "sosa"]

PROJECT_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,100}$")


@dataclass
class BoardConfig:
    """Main configuration container for the board."""

    db_path: str = str(DEFAULT_DB_PATH)
    default_project: str = ""
    wip_limit: int = DEFAULT_WIP_LIMIT
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS
    max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS
    rejection_escalation_threshold: int = REJECTION_ESCALATION_THRESHOLD
    # Advisory by default: cycles are reported, not refused
    reject_dependency_cycles: bool = False
    agents: list[str] = field(default_factory=lambda: list(DEFAULT_AGENTS))

    def __post_init__(self) -> None:
        self.db_path = str(Path(self.db_path).expanduser())

    def validate(self) -> None:
        """
        Check numeric settings.

        Raises:
            ConfigError: If any limit or interval is not positive
        """
        for name in (
            "wip_limit",
            "poll_interval_ms",
            "heartbeat_interval_ms",
            "max_consecutive_errors",
            "rejection_escalation_threshold",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigError(f"{name} must be a positive integer", {name: value})

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "db_path": self.db_path,
            "default_project": self.default_project,
            "wip_limit": self.wip_limit,
            "poll_interval_ms": self.poll_interval_ms,
            "heartbeat_interval_ms": self.heartbeat_interval_ms,
            "max_consecutive_errors": self.max_consecutive_errors,
            "rejection_escalation_threshold": self.rejection_escalation_threshold,
            "reject_dependency_cycles": self.reject_dependency_cycles,
            "agents": self.agents,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BoardConfig":
        """Create BoardConfig from dictionary."""
        return cls(
            db_path=data.get("db_path", str(DEFAULT_DB_PATH)),
            default_project=data.get("default_project", ""),
            wip_limit=data.get("wip_limit", DEFAULT_WIP_LIMIT),
            poll_interval_ms=data.get("poll_interval_ms", DEFAULT_POLL_INTERVAL_MS),
            heartbeat_interval_ms=data.get("heartbeat_interval_ms", DEFAULT_HEARTBEAT_INTERVAL_MS),
            max_consecutive_errors=data.get("max_consecutive_errors", MAX_CONSECUTIVE_ERRORS),
            rejection_escalation_threshold=data.get(
                "rejection_escalation_threshold", REJECTION_ESCALATION_THRESHOLD
            ),
            reject_dependency_cycles=data.get("reject_dependency_cycles", False),
            agents=data.get("agents", list(DEFAULT_AGENTS)),
        )


def _env_int(name: str, current: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return current
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer", {"value": raw})


def load_config(config_file: Path | None = None) -> BoardConfig:
    """
    Load configuration from files and environment.

    Environment variables override values from the config file.

    Returns:
        BoardConfig with all settings loaded

    Raises:
        ConfigError: If configuration is invalid
    """
    path = config_file or CONFIG_FILE
    config = BoardConfig()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}", {"error": str(e)})
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a JSON object in {path}", {"type": type(data).__name__})
        config = BoardConfig.from_dict(data)

    if db_path := os.environ.get("ATEAM_DB_PATH"):
        config.db_path = str(Path(db_path).expanduser())
    if project := os.environ.get("ATEAM_PROJECT_ID"):
        config.default_project = project

    config.wip_limit = _env_int("ATEAM_WIP_LIMIT", config.wip_limit)
    config.poll_interval_ms = _env_int("SSE_POLL_INTERVAL_MS", config.poll_interval_ms)
    config.heartbeat_interval_ms = _env_int("ATEAM_HEARTBEAT_INTERVAL_MS", config.heartbeat_interval_ms)

    config.validate()
    return config


def save_config(config: BoardConfig, config_file: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: BoardConfig to save
        config_file: Destination, defaults to ~/.config/ateam/config.json
    """
    path = config_file or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)


def validate_project_id(project_id: str | None) -> str:
    """
    Validate and normalize a project id.

    Returns:
        The lowercased project id

    Raises:
        ValidationError: If the id is missing or malformed
    """
    if project_id is None or project_id.strip() == "":
        raise ValidationError("project_id is required", {"field": "project_id"})
    project_id = project_id.strip()
    if not PROJECT_ID_PATTERN.match(project_id):
        raise ValidationError(
            "Invalid project_id: use 1-100 letters, digits, hyphens or underscores",
            {"field": "project_id", "value": project_id},
        )
    return project_id.lower()


def normalize_agent_name(name: str) -> str:
    """Normalize an agent name for storage ("B.A." -> "ba")."""
    return name.strip().lower().replace(".", "").replace(" ", "")


def validate_agent_name(name: str | None, roster: list[str] | None = DEFAULT_AGENTS) -> str:
    """
    Validate an agent name against the roster (None accepts any name).

    Returns:
        The normalized agent name

    Raises:
        ValidationError: If the name is empty or not on the roster
    """
    if name is None or not name.strip():
        raise ValidationError("agent is required", {"field": "agent"})
    normalized = normalize_agent_name(name)
    if roster is not None and normalized not in roster:
        raise ValidationError(
            f"Unknown agent '{name}'",
            {"field": "agent", "value": name, "valid_agents": list(roster)},
        )
    return normalized
