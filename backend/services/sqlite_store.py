"""SQLite-backed entity store.

One connection per store, shared across request threads behind a lock.
Timestamps are stored as ISO-8601 text; labels and settings as JSON text.
"""

import json
import logging
import os
import sqlite3
import threading
from typing import Optional

from services.errors import NotFoundError, PulseError
from services.models import (
    Cycle,
    Issue,
    Workspace,
    format_timestamp,
    parse_timestamp,
)
from services.store import EntityStore

logger = logging.getLogger(__name__)

DB_FILENAME = "pulse.db"

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS workspaces (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        settings TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS issues (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT DEFAULT 'backlog',
        priority INTEGER DEFAULT 0,
        assignee_id TEXT,
        estimate INTEGER,
        cycle_id TEXT,
        labels TEXT,
        parent_id TEXT,
        created_at TEXT,
        updated_at TEXT,
        completed_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS cycles (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        name TEXT NOT NULL,
        start_date TEXT,
        end_date TEXT,
        status TEXT DEFAULT 'upcoming',
        created_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_issues_workspace ON issues(workspace_id)",
    "CREATE INDEX IF NOT EXISTS idx_issues_status ON issues(status)",
    "CREATE INDEX IF NOT EXISTS idx_issues_assignee ON issues(assignee_id)",
    "CREATE INDEX IF NOT EXISTS idx_issues_cycle ON issues(cycle_id)",
    "CREATE INDEX IF NOT EXISTS idx_cycles_workspace ON cycles(workspace_id)",
    "CREATE INDEX IF NOT EXISTS idx_cycles_status ON cycles(status)",
]

ISSUE_COLUMNS = (
    "id", "workspace_id", "title", "description", "status", "priority",
    "assignee_id", "estimate", "cycle_id", "labels", "parent_id",
    "created_at", "updated_at", "completed_at",
)


def _issue_row(issue: Issue) -> tuple:
    return (
        issue.id,
        issue.workspace_id,
        issue.title,
        issue.description,
        issue.status,
        issue.priority,
        issue.assignee_id,
        issue.estimate,
        issue.cycle_id,
        json.dumps(list(issue.labels)),
        issue.parent_id,
        format_timestamp(issue.created_at),
        format_timestamp(issue.updated_at),
        format_timestamp(issue.completed_at),
    )


def _row_to_issue(row: sqlite3.Row) -> Issue:
    data = dict(row)
    try:
        data["labels"] = json.loads(data.get("labels") or "[]")
    except json.JSONDecodeError:
        logger.warning("Discarding malformed labels for issue %s", data["id"])
        data["labels"] = []
    return Issue.from_dict(data)


def _row_to_workspace(row: sqlite3.Row) -> Workspace:
    try:
        settings = json.loads(row["settings"] or "{}")
    except json.JSONDecodeError:
        logger.warning("Discarding malformed settings for workspace %s", row["id"])
        settings = {}
    return Workspace(
        id=row["id"],
        name=row["name"],
        description=row["description"] or "",
        settings=settings if isinstance(settings, dict) else {},
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def _row_to_cycle(row: sqlite3.Row) -> Cycle:
    return Cycle(
        id=row["id"],
        workspace_id=row["workspace_id"],
        name=row["name"],
        start_date=parse_timestamp(row["start_date"]),
        end_date=parse_timestamp(row["end_date"]),
        status=row["status"] or "upcoming",
        created_at=parse_timestamp(row["created_at"]),
    )


class SqliteEntityStore(EntityStore):
    """Durable store in ``<data_dir>/pulse.db``."""

    name = "sqlite"

    def __init__(self, data_dir: str, seed_default: bool = True):
        os.makedirs(data_dir, exist_ok=True)
        self.path = os.path.join(data_dir, DB_FILENAME)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA busy_timeout=30000")
        self.migrate()

        if seed_default:
            self.ensure_default_workspace()

    def migrate(self) -> None:
        with self._lock, self._conn:
            for statement in SCHEMA:
                self._conn.execute(statement)
        logger.info("SQLite store ready at %s", self.path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock, self._conn:
            try:
                return self._conn.execute(query, params)
            except sqlite3.IntegrityError as e:
                raise PulseError(f"Constraint violation: {e}") from e

    def _query(self, query: str, params: tuple = ()) -> list:
        with self._lock:
            return self._conn.execute(query, params).fetchall()

    # Workspaces

    def create_workspace(self, workspace: Workspace) -> Workspace:
        self._execute(
            """
            INSERT INTO workspaces (id, name, description, settings, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                workspace.id,
                workspace.name,
                workspace.description,
                json.dumps(workspace.settings),
                format_timestamp(workspace.created_at),
                format_timestamp(workspace.updated_at),
            ),
        )
        return workspace

    def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        rows = self._query("SELECT * FROM workspaces WHERE id = ?", (workspace_id,))
        return _row_to_workspace(rows[0]) if rows else None

    def list_workspaces(self) -> list:
        rows = self._query("SELECT * FROM workspaces ORDER BY created_at DESC")
        return [_row_to_workspace(row) for row in rows]

    def update_workspace(self, workspace: Workspace) -> Workspace:
        cursor = self._execute(
            """
            UPDATE workspaces SET name = ?, description = ?, settings = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                workspace.name,
                workspace.description,
                json.dumps(workspace.settings),
                format_timestamp(workspace.updated_at),
                workspace.id,
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("workspace", workspace.id)
        return workspace

    def delete_workspace(self, workspace_id: str) -> None:
        cursor = self._execute("DELETE FROM workspaces WHERE id = ?", (workspace_id,))
        if cursor.rowcount == 0:
            raise NotFoundError("workspace", workspace_id)

    # Issues

    def create_issue(self, issue: Issue) -> Issue:
        placeholders = ", ".join("?" for _ in ISSUE_COLUMNS)
        self._execute(
            f"INSERT INTO issues ({', '.join(ISSUE_COLUMNS)}) VALUES ({placeholders})",
            _issue_row(issue),
        )
        return issue

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        rows = self._query("SELECT * FROM issues WHERE id = ?", (issue_id,))
        return _row_to_issue(rows[0]) if rows else None

    def list_issues(self, workspace_id: Optional[str] = None, status: Optional[str] = None,
                    cycle_id: Optional[str] = None, limit: int = 0, offset: int = 0) -> list:
        query = "SELECT * FROM issues WHERE 1 = 1"
        args = []

        if workspace_id:
            query += " AND workspace_id = ?"
            args.append(workspace_id)
        if status:
            query += " AND status = ?"
            args.append(status)
        if cycle_id:
            query += " AND cycle_id = ?"
            args.append(cycle_id)

        query += " ORDER BY priority ASC, created_at DESC"

        # SQLite needs a LIMIT clause before OFFSET; -1 means unbounded
        if limit > 0 or offset > 0:
            query += " LIMIT ?"
            args.append(limit if limit > 0 else -1)
        if offset > 0:
            query += " OFFSET ?"
            args.append(offset)

        return [_row_to_issue(row) for row in self._query(query, tuple(args))]

    def update_issue(self, issue: Issue) -> Issue:
        assignments = ", ".join(f"{column} = ?" for column in ISSUE_COLUMNS[1:])
        row = _issue_row(issue)
        cursor = self._execute(
            f"UPDATE issues SET {assignments} WHERE id = ?",
            row[1:] + (issue.id,),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("issue", issue.id)
        return issue

    def delete_issue(self, issue_id: str) -> None:
        cursor = self._execute("DELETE FROM issues WHERE id = ?", (issue_id,))
        if cursor.rowcount == 0:
            raise NotFoundError("issue", issue_id)

    def count_issues_by_status(self, workspace_id: str) -> dict:
        rows = self._query(
            "SELECT status, COUNT(*) AS n FROM issues WHERE workspace_id = ? GROUP BY status",
            (workspace_id,),
        )
        return {row["status"]: row["n"] for row in rows}

    # Cycles

    def create_cycle(self, cycle: Cycle) -> Cycle:
        self._execute(
            """
            INSERT INTO cycles (id, workspace_id, name, start_date, end_date, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                cycle.id,
                cycle.workspace_id,
                cycle.name,
                format_timestamp(cycle.start_date),
                format_timestamp(cycle.end_date),
                cycle.status,
                format_timestamp(cycle.created_at),
            ),
        )
        return cycle

    def get_cycle(self, cycle_id: str) -> Optional[Cycle]:
        rows = self._query("SELECT * FROM cycles WHERE id = ?", (cycle_id,))
        return _row_to_cycle(rows[0]) if rows else None

    def list_cycles(self, workspace_id: Optional[str] = None) -> list:
        if workspace_id:
            rows = self._query(
                "SELECT * FROM cycles WHERE workspace_id = ? ORDER BY created_at DESC",
                (workspace_id,),
            )
        else:
            rows = self._query("SELECT * FROM cycles ORDER BY created_at DESC")
        return [_row_to_cycle(row) for row in rows]

    def update_cycle(self, cycle: Cycle) -> Cycle:
        cursor = self._execute(
            """
            UPDATE cycles SET name = ?, start_date = ?, end_date = ?, status = ?
            WHERE id = ?
            """,
            (
                cycle.name,
                format_timestamp(cycle.start_date),
                format_timestamp(cycle.end_date),
                cycle.status,
                cycle.id,
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("cycle", cycle.id)
        return cycle

    def delete_cycle(self, cycle_id: str) -> None:
        cursor = self._execute("DELETE FROM cycles WHERE id = ?", (cycle_id,))
        if cursor.rowcount == 0:
            raise NotFoundError("cycle", cycle_id)

    def get_active_cycle(self, workspace_id: str) -> Optional[Cycle]:
        rows = self._query(
            "SELECT * FROM cycles WHERE workspace_id = ? AND status = 'active' LIMIT 1",
            (workspace_id,),
        )
        return _row_to_cycle(rows[0]) if rows else None

    def list_upcoming_cycles(self, workspace_id: str) -> list:
        rows = self._query(
            "SELECT * FROM cycles WHERE workspace_id = ? AND status = 'upcoming' "
            "ORDER BY created_at ASC",
            (workspace_id,),
        )
        return [_row_to_cycle(row) for row in rows]
