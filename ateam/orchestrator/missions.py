"""
Missions - lifecycle of one end-to-end pipeline run

A project has at most one non-archived mission. Starting a new mission
archives the previous one together with its items. Precheck and
postcheck outcomes (pass/fail plus counts) are recorded here; running
the lint and test commands is the caller's business.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ateam.exceptions import MissionNotFoundError, ValidationError
from ateam.logging import BoardLogEntry, board_logger, now_iso
from ateam.orchestrator.activity import append_activity
from ateam.persistence.models import CheckResult, LogLevel, Mission
from ateam.persistence.repository import BoardRepository, Executor
from ateam.state import MissionState, require_mission_transition

logger = logging.getLogger(__name__)


class MissionService:
    """Mission operations for one project."""

    def __init__(self, repository: BoardRepository, project_id: str):
        self.repo = repository
        self.project_id = project_id

    def current(self) -> Mission | None:
        """The non-archived mission, or None."""
        return self.repo.get_current_mission(self.project_id)

    def start(self, name: str, prd_path: str = "") -> Mission:
        """
        Start a new mission, archiving the current one first.

        Raises:
            ValidationError: If the name is empty
        """
        if not name or not name.strip():
            raise ValidationError("name is required", {"field": "name"})
        pid = self.project_id

        with self.repo.transaction() as cursor:
            self.repo.ensure_project(pid, cursor)
            previous = self.repo.get_current_mission(pid, cursor)
            if previous is not None:
                archived_items = self._archive(previous, cursor)
                logger.info(
                    f"Missions: Archived {previous.id} ({archived_items} items) before starting a new mission"
                )

            mission = Mission(
                id=self.repo.next_mission_id(datetime.now(), cursor),
                project_id=pid,
                name=name.strip(),
                prd_path=prd_path,
            )
            self.repo.insert_mission(mission, cursor)
            append_activity(self.repo, pid, f"Mission started: {mission.name}", cursor)

        logger.info(f"Missions: Started {mission.id} '{mission.name}'")
        self._record("start_mission", mission, previous_id=previous.id if previous else None)
        return mission

    def begin_precheck(self) -> Mission:
        """Move the current mission into prechecking."""
        return self._transition(MissionState.PRECHECKING, "Precheck started")

    def record_precheck(self, result: CheckResult) -> Mission:
        """
        Record the precheck outcome: running on pass, failed otherwise.

        A mission still initializing passes through prechecking first.
        """
        with self.repo.transaction() as cursor:
            mission = self._require_current(cursor)
            if mission.state == MissionState.INITIALIZING:
                require_mission_transition(mission.state, MissionState.PRECHECKING)
                mission.state = MissionState.PRECHECKING

            target = MissionState.RUNNING if result.passed else MissionState.FAILED
            require_mission_transition(mission.state, target)
            mission.state = target
            mission.precheck = result
            if target == MissionState.FAILED:
                mission.completed_at = now_iso()
            self.repo.save_mission(mission, cursor)
            append_activity(
                self.repo,
                self.project_id,
                _check_message("Precheck", result),
                cursor,
                level=LogLevel.INFO if result.passed else LogLevel.ERROR,
            )

        logger.info(f"Missions: Precheck {'passed' if result.passed else 'failed'} for {mission.id}")
        self._record("precheck", mission, **result.to_dict())
        return mission

    def begin_postcheck(self) -> Mission:
        """Move the running mission into postchecking."""
        return self._transition(MissionState.POSTCHECKING, "Postcheck started")

    def record_postcheck(self, result: CheckResult) -> Mission:
        """
        Record the postcheck outcome: completed on pass, failed otherwise.

        A running mission passes through postchecking first.
        """
        with self.repo.transaction() as cursor:
            mission = self._require_current(cursor)
            if mission.state == MissionState.RUNNING:
                mission.state = MissionState.POSTCHECKING

            target = MissionState.COMPLETED if result.passed else MissionState.FAILED
            require_mission_transition(mission.state, target)
            mission.state = target
            mission.postcheck = result
            mission.completed_at = now_iso()
            self.repo.save_mission(mission, cursor)
            append_activity(
                self.repo,
                self.project_id,
                _check_message("Postcheck", result),
                cursor,
                level=LogLevel.INFO if result.passed else LogLevel.ERROR,
            )
            if target == MissionState.COMPLETED:
                append_activity(self.repo, self.project_id, f"Mission completed: {mission.name}", cursor)

        logger.info(f"Missions: Postcheck {'passed' if result.passed else 'failed'} for {mission.id}")
        self._record("postcheck", mission, **result.to_dict())
        return mission

    def archive(self) -> tuple[Mission, int]:
        """
        Archive the current mission and the items linked to it.

        Returns:
            (archived mission, number of items archived)

        Raises:
            MissionNotFoundError: If there is no current mission
        """
        with self.repo.transaction() as cursor:
            mission = self._require_current(cursor)
            archived_items = self._archive(mission, cursor)
            append_activity(
                self.repo,
                self.project_id,
                f"Mission archived: {mission.name} ({archived_items} items)",
                cursor,
            )

        logger.info(f"Missions: Archived {mission.id} with {archived_items} items")
        self._record("archive_mission", mission, archived_items=archived_items)
        return mission, archived_items

    def _archive(self, mission: Mission, cursor: Executor) -> int:
        require_mission_transition(mission.state, MissionState.ARCHIVED)
        archived_at = now_iso()
        mission.state = MissionState.ARCHIVED
        mission.archived_at = archived_at
        self.repo.save_mission(mission, cursor)
        item_ids = self.repo.mission_item_ids(mission.id, cursor)
        return self.repo.archive_items(self.project_id, item_ids, archived_at, cursor)

    def _require_current(self, cursor: Executor) -> Mission:
        mission = self.repo.get_current_mission(self.project_id, cursor)
        if mission is None:
            raise MissionNotFoundError(
                "No active mission found",
                {"project_id": self.project_id},
            )
        return mission

    def _transition(self, target: MissionState, message: str) -> Mission:
        with self.repo.transaction() as cursor:
            mission = self._require_current(cursor)
            require_mission_transition(mission.state, target)
            mission.state = target
            self.repo.save_mission(mission, cursor)
            append_activity(self.repo, self.project_id, message, cursor)

        logger.info(f"Missions: {mission.id} -> {target.value}")
        self._record("mission_state", mission)
        return mission

    def _record(self, operation: str, mission: Mission, **details) -> None:
        board_logger.info(
            BoardLogEntry(
                timestamp=now_iso(),
                project_id=self.project_id,
                operation=operation,
                mission_id=mission.id,
                to_stage=mission.state.value,
                details=details or None,
            ).to_json()
        )


def _check_message(label: str, result: CheckResult) -> str:
    outcome = "passed" if result.passed else "failed"
    message = (
        f"{label} {outcome}: {result.lint_errors} lint errors, "
        f"{result.tests_passed} tests passed, {result.tests_failed} tests failed"
    )
    if result.blockers:
        message += f" (blockers: {'; '.join(result.blockers)})"
    return message
