"""
A(i)-Team orchestration core.

- board.py: project-scoped operation surface
- stages.py: stage state machine with WIP enforcement
- claims.py: per-item claims
- rejection.py: rejection and escalation policy
- dependencies.py: dependency waves and readiness
- missions.py: mission lifecycle
"""

from ateam.orchestrator.board import Board
from ateam.orchestrator.claims import ClaimManager
from ateam.orchestrator.dependencies import (
    DependencyReport,
    final_review_ready,
    find_cycles,
    resolve_dependencies,
)
from ateam.orchestrator.missions import MissionService
from ateam.orchestrator.rejection import RejectionHandler, RejectionResult
from ateam.orchestrator.stages import MoveResult, StageMachine

__all__ = [
    "Board",
    "ClaimManager",
    "DependencyReport",
    "MissionService",
    "MoveResult",
    "RejectionHandler",
    "RejectionResult",
    "StageMachine",
    "final_review_ready",
    "find_cycles",
    "resolve_dependencies",
]
