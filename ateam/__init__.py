"""
A(i)-Team Orchestrator - pipeline orchestration core

Tracks work items through the agent pipeline (briefings, ready, testing,
implementing, review, probing, done), guards them with per-item claims,
enforces the WIP limit and dependency order, escalates repeated
rejections, and streams board changes to live observers.
"""

__version__ = "0.1.0"

from ateam.exceptions import AteamError

__all__ = ["AteamError", "__version__"]
