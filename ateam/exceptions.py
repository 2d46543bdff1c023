"""
A(i)-Team Orchestrator - Exception Hierarchy

All board errors inherit from AteamError and carry a stable error code,
a category from the error taxonomy, and a details dict with enough
context for the caller to act (e.g. who holds a conflicting claim).
"""

from typing import Any


class AteamError(Exception):
    """Base exception for all orchestration errors."""

    code = "INTERNAL_ERROR"
    category = "infrastructure"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the error payload returned to callers."""
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# Configuration Errors
class ConfigError(AteamError):
    """Raised when configuration is invalid or missing."""

    code = "CONFIG_ERROR"
    category = "validation"


# Validation Errors
class ValidationError(AteamError):
    """Raised when a request is malformed or misses a required field."""

    code = "VALIDATION_ERROR"
    category = "validation"


# Not Found Errors
class ItemNotFoundError(AteamError):
    """Raised when a referenced work item does not exist."""

    code = "ITEM_NOT_FOUND"
    category = "not_found"

    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id} not found", {"item_id": item_id})
        self.item_id = item_id


class MissionNotFoundError(AteamError):
    """Raised when no active mission exists for the project."""

    code = "MISSION_NOT_FOUND"
    category = "not_found"


# Conflict Errors
class InvalidTransitionError(AteamError):
    """Raised when a stage or mission state transition is not allowed."""

    code = "INVALID_TRANSITION"
    category = "conflict"

    def __init__(
        self,
        message: str,
        from_state: str,
        to_state: str,
        allowed: list[str] | None = None,
    ):
        super().__init__(
            message,
            {"from": from_state, "to": to_state, "allowed": allowed or []},
        )
        self.from_state = from_state
        self.to_state = to_state
        self.allowed = allowed or []


class InvalidStageError(AteamError):
    """Raised when an item is in a stage that does not permit the operation."""

    code = "INVALID_STAGE"
    category = "conflict"

    def __init__(self, message: str, current_stage: str, expected_stages: list[str]):
        super().__init__(
            message,
            {"current_stage": current_stage, "claimable_stages": expected_stages},
        )
        self.current_stage = current_stage
        self.expected_stages = expected_stages


class ItemClaimedError(AteamError):
    """Raised when an item already has a live claim."""

    code = "ITEM_CLAIMED"
    category = "conflict"

    def __init__(self, item_id: str, claimed_by: str, claimed_at: str | None = None):
        super().__init__(
            f"Item {item_id} is already claimed by {claimed_by}",
            {"item_id": item_id, "claimed_by": claimed_by, "claimed_at": claimed_at},
        )
        self.item_id = item_id
        self.claimed_by = claimed_by


class NotClaimedError(AteamError):
    """Raised when releasing an item that has no claim."""

    code = "NOT_CLAIMED"
    category = "conflict"

    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id} is not claimed", {"item_id": item_id})
        self.item_id = item_id


class DependencyCycleError(AteamError):
    """Raised when dependency declarations would form a cycle."""

    code = "DEPENDENCY_CYCLE"
    category = "conflict"

    def __init__(self, message: str, cycle: list[str]):
        super().__init__(message, {"cycle": cycle})
        self.cycle = cycle


# Resource Exhaustion Errors
class WipLimitExceededError(AteamError):
    """Raised when a move would exceed the work-in-progress limit."""

    code = "WIP_LIMIT_EXCEEDED"
    category = "resource_exhaustion"

    def __init__(self, stage: str, limit: int, current: int):
        super().__init__(
            f"WIP limit ({limit}) reached: {current} items already in progress",
            {"stage": stage, "limit": limit, "current": current},
        )
        self.stage = stage
        self.limit = limit
        self.current = current


# Infrastructure Errors
class StoreError(AteamError):
    """Raised when the database is unavailable or a query fails."""

    code = "DATABASE_ERROR"
    category = "infrastructure"
