"""
A(i)-Team Repository - Database access layer

Provides all database operations for the board store.
Single connection per repository instance, with context manager support.

Thread Safety:
- SQLite in WAL mode for concurrent reads
- Mutations run inside BEGIN IMMEDIATE transactions, so concurrent
  writers serialize at the database rather than in-process
- Use separate BoardRepository instances per thread

Composability:
- Every query method accepts an optional cursor so that services can run
  several of them inside one transaction() block
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Union

from ateam.config import DEFAULT_DB_PATH
from ateam.persistence.models import (
    ActivityLogEntry,
    AgentClaim,
    Mission,
    WorkItem,
    WorkLogEntry,
    format_item_id,
    format_mission_id,
    item_number,
    now_iso,
)
from ateam.state import Stage

logger = logging.getLogger(__name__)

# Seconds a writer waits for the database lock before failing
DEFAULT_BUSY_TIMEOUT = 30.0

ITEM_COLUMNS = (
    "id, project_id, title, description, type, priority, stage, assigned_agent, "
    "rejection_count, parallel_group, outputs, created_at, updated_at, "
    "completed_at, archived_at"
)
MISSION_COLUMNS = (
    "id, project_id, name, state, prd_path, started_at, completed_at, "
    "archived_at, precheck_result, postcheck_result"
)
ACTIVITY_COLUMNS = "id, project_id, mission_id, agent, message, level, timestamp"
WORK_LOG_COLUMNS = "id, project_id, item_id, agent, action, summary, diagnosis, created_at"

Executor = Union[sqlite3.Cursor, sqlite3.Connection]


class BoardRepository:
    """
    Repository for all board persistence operations.

    Usage:
        repo = BoardRepository(tmp_path / "board.db")
        repo.initialize()

        # Atomic multi-step update
        with repo.transaction() as cursor:
            item = repo.get_item("my-project", "WI-001", cursor)
            repo.update_item("my-project", item.id, cursor, stage="ready")

        # Use in context manager for auto-cleanup
        with BoardRepository(path) as repo:
            ...
    """

    def __init__(self, db_path: Path | str | None = None, timeout: float = DEFAULT_BUSY_TIMEOUT):
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file. If None, uses default location.
            timeout: Seconds to wait for a locked database
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None
        self._initialized = False

    def __enter__(self) -> BoardRepository:
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get database connection, initializing if needed."""
        if self._conn is None:
            self.initialize()
        return self._conn  # type: ignore

    def initialize(self) -> None:
        """
        Initialize database connection and schema.

        Creates database file and parent directories if they don't exist.
        Applies schema if not already present.
        """
        if self._initialized and self._conn:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            check_same_thread=False,  # Event feeds query from worker threads
            isolation_level=None,  # Autocommit mode, we use explicit transactions
        )

        # Enable WAL mode for concurrent reads
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        self._apply_schema()
        self._initialized = True
        logger.debug(f"Board database ready at {self.db_path}")

    def _apply_schema(self) -> None:
        """Apply the database schema from schema.sql."""
        schema_path = Path(__file__).parent / "schema.sql"

        if not schema_path.exists():
            logger.error(f"Schema file not found: {schema_path}")
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        with open(schema_path) as f:
            schema_sql = f.read()

        # CREATE IF NOT EXISTS makes this idempotent
        self._conn.executescript(schema_sql)  # type: ignore

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._initialized = False

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """
        Execute operations in a write transaction.

        The write lock is taken up front so that checks made inside the
        block (WIP counts, existing claims) cannot be invalidated by another
        writer before COMMIT.

        Usage:
            with repo.transaction() as cursor:
                cursor.execute(...)
        """
        cursor = self.conn.cursor()
        cursor.execute("BEGIN IMMEDIATE")
        try:
            yield cursor
            cursor.execute("COMMIT")
        except Exception:
            cursor.execute("ROLLBACK")
            raise
        finally:
            cursor.close()

    def _ex(self, cursor: Executor | None) -> Executor:
        return cursor if cursor is not None else self.conn

    # =========================================================================
    # PROJECT OPERATIONS
    # =========================================================================

    def ensure_project(self, project_id: str, cursor: Executor | None = None) -> None:
        """Register a project id if it is not known yet."""
        self._ex(cursor).execute(
            "INSERT OR IGNORE INTO projects (id, name, created_at) VALUES (?, ?, ?)",
            (project_id, project_id, now_iso()),
        )

    def list_projects(self) -> list[str]:
        rows = self.conn.execute("SELECT id FROM projects ORDER BY id").fetchall()
        return [row[0] for row in rows]

    # =========================================================================
    # ITEM OPERATIONS
    # =========================================================================

    def next_item_id(self, project_id: str, cursor: Executor | None = None) -> str:
        """
        Allocate the next WI-NNN id for a project.

        Archived items keep their ids, so ids are never reused.
        """
        rows = self._ex(cursor).execute(
            "SELECT id FROM items WHERE project_id = ?", (project_id,)
        ).fetchall()
        numbers = [n for n in (item_number(row[0]) for row in rows) if n is not None]
        return format_item_id(max(numbers, default=0) + 1)

    def insert_item(self, item: WorkItem, cursor: Executor | None = None) -> WorkItem:
        ex = self._ex(cursor)
        ex.execute(
            f"INSERT INTO items ({ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            item.to_row(),
        )
        self.set_dependencies(item.project_id, item.id, item.dependencies, ex)
        return item

    def get_item(
        self,
        project_id: str,
        item_id: str,
        cursor: Executor | None = None,
        include_archived: bool = False,
    ) -> WorkItem | None:
        """Get one item with its dependencies, or None if absent."""
        ex = self._ex(cursor)
        query = f"SELECT {ITEM_COLUMNS} FROM items WHERE project_id = ? AND id = ?"
        if not include_archived:
            query += " AND archived_at IS NULL"
        row = ex.execute(query, (project_id, item_id)).fetchone()
        if not row:
            return None
        return WorkItem.from_row(row, self.get_dependencies(project_id, item_id, ex))

    def list_items(
        self,
        project_id: str,
        cursor: Executor | None = None,
        include_archived: bool = False,
        stage: Stage | None = None,
    ) -> list[WorkItem]:
        """List items of a project ordered by id number."""
        ex = self._ex(cursor)
        query = f"SELECT {ITEM_COLUMNS} FROM items WHERE project_id = ?"
        params: list[Any] = [project_id]
        if not include_archived:
            query += " AND archived_at IS NULL"
        if stage is not None:
            query += " AND stage = ?"
            params.append(stage.value)
        rows = ex.execute(query, params).fetchall()

        deps = self._dependency_map(project_id, ex)
        items = [WorkItem.from_row(row, deps.get(row[0], [])) for row in rows]
        items.sort(key=lambda i: (item_number(i.id) or 0, i.id))
        return items

    def update_item(self, project_id: str, item_id: str, cursor: Executor | None = None, **fields: Any) -> None:
        """
        Update item columns; updated_at is always refreshed.

        Enum values are stored by value.
        """
        updates = {k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()}
        updates["updated_at"] = now_iso()

        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        values = list(updates.values()) + [project_id, item_id]
        self._ex(cursor).execute(
            f"UPDATE items SET {set_clause} WHERE project_id = ? AND id = ?",
            values,
        )

    def count_items_in_stages(
        self,
        project_id: str,
        stages: Iterable[Stage],
        cursor: Executor | None = None,
    ) -> int:
        """Count non-archived items currently in any of the given stages."""
        values = [s.value for s in stages]
        placeholders = ", ".join("?" for _ in values)
        row = self._ex(cursor).execute(
            f"SELECT COUNT(*) FROM items WHERE project_id = ? AND archived_at IS NULL "
            f"AND stage IN ({placeholders})",
            [project_id, *values],
        ).fetchone()
        return row[0]

    def get_dependencies(self, project_id: str, item_id: str, cursor: Executor | None = None) -> list[str]:
        rows = self._ex(cursor).execute(
            "SELECT depends_on_id FROM item_dependencies "
            "WHERE project_id = ? AND item_id = ? ORDER BY position",
            (project_id, item_id),
        ).fetchall()
        return [row[0] for row in rows]

    def _dependency_map(self, project_id: str, cursor: Executor) -> dict[str, list[str]]:
        rows = cursor.execute(
            "SELECT item_id, depends_on_id FROM item_dependencies "
            "WHERE project_id = ? ORDER BY item_id, position",
            (project_id,),
        ).fetchall()
        result: dict[str, list[str]] = {}
        for item_id, dep_id in rows:
            result.setdefault(item_id, []).append(dep_id)
        return result

    def set_dependencies(
        self,
        project_id: str,
        item_id: str,
        dependencies: list[str],
        cursor: Executor | None = None,
    ) -> None:
        """Replace the ordered dependency list of an item."""
        ex = self._ex(cursor)
        ex.execute(
            "DELETE FROM item_dependencies WHERE project_id = ? AND item_id = ?",
            (project_id, item_id),
        )
        ex.executemany(
            "INSERT INTO item_dependencies (project_id, item_id, depends_on_id, position) "
            "VALUES (?, ?, ?, ?)",
            [(project_id, item_id, dep, pos) for pos, dep in enumerate(dependencies)],
        )

    def archive_items(self, project_id: str, item_ids: list[str], archived_at: str, cursor: Executor | None = None) -> int:
        """Archive items by id. Returns the number of rows changed."""
        if not item_ids:
            return 0
        placeholders = ", ".join("?" for _ in item_ids)
        ex = self._ex(cursor)
        ex.execute(
            f"DELETE FROM agent_claims WHERE project_id = ? AND item_id IN ({placeholders})",
            [project_id, *item_ids],
        )
        result = ex.execute(
            f"UPDATE items SET archived_at = ?, assigned_agent = NULL, updated_at = ? "
            f"WHERE project_id = ? AND archived_at IS NULL AND id IN ({placeholders})",
            [archived_at, archived_at, project_id, *item_ids],
        )
        return result.rowcount

    # =========================================================================
    # CLAIM OPERATIONS
    # =========================================================================

    def get_claim(self, project_id: str, item_id: str, cursor: Executor | None = None) -> AgentClaim | None:
        row = self._ex(cursor).execute(
            "SELECT project_id, item_id, agent, claimed_at FROM agent_claims "
            "WHERE project_id = ? AND item_id = ?",
            (project_id, item_id),
        ).fetchone()
        return AgentClaim.from_row(row) if row else None

    def insert_claim(self, claim: AgentClaim, cursor: Executor | None = None) -> AgentClaim:
        """
        Insert a claim row.

        Raises:
            sqlite3.IntegrityError: If the item is already claimed
        """
        self._ex(cursor).execute(
            "INSERT INTO agent_claims (project_id, item_id, agent, claimed_at) VALUES (?, ?, ?, ?)",
            claim.to_row(),
        )
        return claim

    def delete_claim(self, project_id: str, item_id: str, cursor: Executor | None = None) -> AgentClaim | None:
        """Delete the claim on an item, returning the removed claim if any."""
        ex = self._ex(cursor)
        claim = self.get_claim(project_id, item_id, ex)
        if claim is None:
            return None
        ex.execute(
            "DELETE FROM agent_claims WHERE project_id = ? AND item_id = ?",
            (project_id, item_id),
        )
        return claim

    def list_claims(self, project_id: str, agent: str | None = None, cursor: Executor | None = None) -> list[AgentClaim]:
        query = "SELECT project_id, item_id, agent, claimed_at FROM agent_claims WHERE project_id = ?"
        params: list[Any] = [project_id]
        if agent:
            query += " AND agent = ?"
            params.append(agent)
        rows = self._ex(cursor).execute(query + " ORDER BY claimed_at, item_id", params).fetchall()
        return [AgentClaim.from_row(row) for row in rows]

    # =========================================================================
    # WORK LOG OPERATIONS
    # =========================================================================

    def add_work_log(self, entry: WorkLogEntry, cursor: Executor | None = None) -> WorkLogEntry:
        result = self._ex(cursor).execute(
            "INSERT INTO work_logs (project_id, item_id, agent, action, summary, diagnosis, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                entry.project_id,
                entry.item_id,
                entry.agent,
                entry.action.value,
                entry.summary,
                entry.diagnosis,
                entry.created_at,
            ),
        )
        entry.id = result.lastrowid
        return entry

    def list_work_logs(self, project_id: str, item_id: str, cursor: Executor | None = None) -> list[WorkLogEntry]:
        rows = self._ex(cursor).execute(
            f"SELECT {WORK_LOG_COLUMNS} FROM work_logs WHERE project_id = ? AND item_id = ? ORDER BY id",
            (project_id, item_id),
        ).fetchall()
        return [WorkLogEntry.from_row(row) for row in rows]

    # =========================================================================
    # MISSION OPERATIONS
    # =========================================================================

    def next_mission_id(self, day: datetime, cursor: Executor | None = None) -> str:
        """Allocate the next M-YYYYMMDD-NNN id for the given day."""
        prefix = f"M-{day.strftime('%Y%m%d')}-"
        rows = self._ex(cursor).execute(
            "SELECT id FROM missions WHERE id LIKE ?", (prefix + "%",)
        ).fetchall()
        sequences = [int(row[0][len(prefix):]) for row in rows if row[0][len(prefix):].isdigit()]
        return format_mission_id(day, max(sequences, default=0) + 1)

    def get_current_mission(self, project_id: str, cursor: Executor | None = None) -> Mission | None:
        """Get the non-archived mission of a project, if any."""
        row = self._ex(cursor).execute(
            f"SELECT {MISSION_COLUMNS} FROM missions "
            "WHERE project_id = ? AND archived_at IS NULL ORDER BY started_at DESC LIMIT 1",
            (project_id,),
        ).fetchone()
        return Mission.from_row(row) if row else None

    def get_mission(self, mission_id: str, cursor: Executor | None = None) -> Mission | None:
        row = self._ex(cursor).execute(
            f"SELECT {MISSION_COLUMNS} FROM missions WHERE id = ?", (mission_id,)
        ).fetchone()
        return Mission.from_row(row) if row else None

    def insert_mission(self, mission: Mission, cursor: Executor | None = None) -> Mission:
        self._ex(cursor).execute(
            f"INSERT INTO missions ({MISSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            mission.to_row(),
        )
        return mission

    def save_mission(self, mission: Mission, cursor: Executor | None = None) -> None:
        """Write back the mutable columns of a mission."""
        row = mission.to_row()
        self._ex(cursor).execute(
            "UPDATE missions SET name = ?, state = ?, prd_path = ?, completed_at = ?, "
            "archived_at = ?, precheck_result = ?, postcheck_result = ? WHERE id = ?",
            (row[2], row[3], row[4], row[6], row[7], row[8], row[9], mission.id),
        )

    def link_mission_item(self, mission_id: str, project_id: str, item_id: str, cursor: Executor | None = None) -> None:
        self._ex(cursor).execute(
            "INSERT OR IGNORE INTO mission_items (mission_id, project_id, item_id) VALUES (?, ?, ?)",
            (mission_id, project_id, item_id),
        )

    def mission_item_ids(self, mission_id: str, cursor: Executor | None = None) -> list[str]:
        rows = self._ex(cursor).execute(
            "SELECT item_id FROM mission_items WHERE mission_id = ? ORDER BY item_id",
            (mission_id,),
        ).fetchall()
        return [row[0] for row in rows]

    # =========================================================================
    # ACTIVITY LOG OPERATIONS
    # =========================================================================

    def append_activity(self, entry: ActivityLogEntry, cursor: Executor | None = None) -> ActivityLogEntry:
        result = self._ex(cursor).execute(
            "INSERT INTO activity_log (project_id, mission_id, agent, message, level, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                entry.project_id,
                entry.mission_id,
                entry.agent,
                entry.message,
                entry.level.value,
                entry.timestamp,
            ),
        )
        entry.id = result.lastrowid
        return entry

    def list_activity(
        self,
        project_id: str,
        after_id: int = 0,
        limit: int | None = None,
        cursor: Executor | None = None,
    ) -> list[ActivityLogEntry]:
        """Activity entries with id > after_id in ascending id order."""
        query = f"SELECT {ACTIVITY_COLUMNS} FROM activity_log WHERE project_id = ? AND id > ? ORDER BY id"
        params: list[Any] = [project_id, after_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = self._ex(cursor).execute(query, params).fetchall()
        return [ActivityLogEntry.from_row(row) for row in rows]

    def recent_activity(self, project_id: str, limit: int = 50) -> list[ActivityLogEntry]:
        """Most recent entries, returned oldest first."""
        rows = self.conn.execute(
            f"SELECT {ACTIVITY_COLUMNS} FROM activity_log WHERE project_id = ? ORDER BY id DESC LIMIT ?",
            (project_id, limit),
        ).fetchall()
        return [ActivityLogEntry.from_row(row) for row in reversed(rows)]

    def latest_activity_id(self, project_id: str, cursor: Executor | None = None) -> int:
        row = self._ex(cursor).execute(
            "SELECT COALESCE(MAX(id), 0) FROM activity_log WHERE project_id = ?",
            (project_id,),
        ).fetchone()
        return row[0]
