"""
A(i)-Team Orchestrator - Stage and Mission State Machines

Defines the pipeline stages a work item moves through and the lifecycle
of a mission, together with the tables of allowed transitions.
"""

from enum import Enum

from ateam.exceptions import InvalidTransitionError


class Stage(str, Enum):
    """
    Pipeline stages for a work item.

    Stage transitions:
    BRIEFINGS -> READY (dependencies satisfied)
    READY -> TESTING -> IMPLEMENTING -> REVIEW -> PROBING -> DONE
    REVIEW -> READY, PROBING -> READY (sent back for another pass)
    Any active stage -> BLOCKED (escalation)
    """

    BRIEFINGS = "briefings"  # Backlog, waiting on dependencies
    READY = "ready"  # Dependencies met, waiting for an agent
    TESTING = "testing"  # Murdock writes tests
    IMPLEMENTING = "implementing"  # B.A. implements
    REVIEW = "review"  # Lynch reviews
    PROBING = "probing"  # Amy verifies
    DONE = "done"
    BLOCKED = "blocked"  # Needs a human

    @property
    def is_active(self) -> bool:
        """Whether items in this stage count against the WIP limit."""
        return self in ACTIVE_STAGES

    @property
    def is_claimable(self) -> bool:
        return self in CLAIMABLE_STAGES

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.DONE, Stage.BLOCKED)


ACTIVE_STAGES: frozenset[Stage] = frozenset(
    {Stage.TESTING, Stage.IMPLEMENTING, Stage.REVIEW, Stage.PROBING}
)

CLAIMABLE_STAGES: frozenset[Stage] = ACTIVE_STAGES | {Stage.READY}

# Display order, also used for sorting board output
STAGE_ORDER: list[Stage] = [
    Stage.BRIEFINGS,
    Stage.READY,
    Stage.TESTING,
    Stage.IMPLEMENTING,
    Stage.REVIEW,
    Stage.PROBING,
    Stage.DONE,
    Stage.BLOCKED,
]

# Valid stage transitions for move()
VALID_TRANSITIONS: dict[Stage, set[Stage]] = {
    Stage.BRIEFINGS: {Stage.READY},
    Stage.READY: {Stage.TESTING},
    Stage.TESTING: {Stage.IMPLEMENTING, Stage.BLOCKED},
    Stage.IMPLEMENTING: {Stage.REVIEW, Stage.BLOCKED},
    Stage.REVIEW: {Stage.PROBING, Stage.READY, Stage.BLOCKED},
    Stage.PROBING: {Stage.DONE, Stage.READY, Stage.BLOCKED},
    Stage.DONE: set(),  # Terminal
    Stage.BLOCKED: set(),  # Terminal until a human re-admits the item
}


def sorted_stages(stages: set[Stage] | frozenset[Stage]) -> list[str]:
    """Stage values in pipeline order."""
    return [s.value for s in STAGE_ORDER if s in stages]


def can_transition(from_stage: Stage, to_stage: Stage) -> bool:
    """Check if a move between two stages is on the allowed edge set."""
    return to_stage in VALID_TRANSITIONS.get(from_stage, set())


def require_transition(from_stage: Stage, to_stage: Stage) -> None:
    """
    Validate a stage move.

    Raises:
        InvalidTransitionError: If the edge is not allowed
    """
    if can_transition(from_stage, to_stage):
        return
    allowed = sorted_stages(VALID_TRANSITIONS.get(from_stage, set()))
    raise InvalidTransitionError(
        f"Invalid stage transition: {from_stage.value} -> {to_stage.value}. "
        f"Valid transitions from {from_stage.value}: {allowed or 'none'}",
        from_state=from_stage.value,
        to_state=to_stage.value,
        allowed=allowed,
    )


class MissionState(str, Enum):
    """
    Lifecycle of a mission.

    State transitions:
    INITIALIZING -> PRECHECKING (lint/tests before work starts)
    PRECHECKING -> RUNNING (precheck passed) or FAILED
    RUNNING -> POSTCHECKING (all items done) or FAILED
    POSTCHECKING -> COMPLETED (postcheck passed) or FAILED
    Any -> ARCHIVED
    """

    INITIALIZING = "initializing"
    PRECHECKING = "prechecking"
    RUNNING = "running"
    POSTCHECKING = "postchecking"
    COMPLETED = "completed"
    FAILED = "failed"
    ARCHIVED = "archived"


VALID_MISSION_TRANSITIONS: dict[MissionState, set[MissionState]] = {
    MissionState.INITIALIZING: {
        MissionState.PRECHECKING,
        MissionState.RUNNING,
        MissionState.FAILED,
        MissionState.ARCHIVED,
    },
    MissionState.PRECHECKING: {MissionState.RUNNING, MissionState.FAILED, MissionState.ARCHIVED},
    MissionState.RUNNING: {MissionState.POSTCHECKING, MissionState.FAILED, MissionState.ARCHIVED},
    MissionState.POSTCHECKING: {
        MissionState.COMPLETED,
        MissionState.FAILED,
        MissionState.ARCHIVED,
    },
    MissionState.COMPLETED: {MissionState.ARCHIVED},
    MissionState.FAILED: {MissionState.ARCHIVED},
    MissionState.ARCHIVED: set(),  # Terminal state
}


def require_mission_transition(from_state: MissionState, to_state: MissionState) -> None:
    """
    Validate a mission state change.

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    valid = VALID_MISSION_TRANSITIONS.get(from_state, set())
    if to_state in valid:
        return
    allowed = sorted(s.value for s in valid)
    raise InvalidTransitionError(
        f"Invalid mission transition: {from_state.value} -> {to_state.value}. "
        f"Valid transitions from {from_state.value}: {allowed or 'none'}",
        from_state=from_state.value,
        to_state=to_state.value,
        allowed=allowed,
    )
