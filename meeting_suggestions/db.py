"""
db.py: SQLite helper functions for the suggestion pipeline

This module provides:
  - Database path setup
  - Connection helper with row factory
  - Initialization of the meetings, suggestions and tasks tables
  - Row helpers for each table, including the conditional status update
    that guards suggestion review

Every sqlite3 failure is re-raised as StorageError.
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional, List, Dict, Any
from pathlib import Path
from datetime import datetime, timezone

from .errors import StorageError

# Path to the SQLite database file (beside the package unless overridden)
_DB_PATH_ENV = os.getenv("SUGGEST_DB_PATH")
if _DB_PATH_ENV:
    DB_PATH = Path(_DB_PATH_ENV).expanduser()
else:
    DB_PATH = Path(__file__).parent / "suggestions.db"
DB_PATH = DB_PATH.resolve()


def configure_db_path(path: str | Path) -> Path:
    """Point all helpers at a different database file."""
    global DB_PATH
    DB_PATH = Path(path).expanduser().resolve()
    return DB_PATH


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def get_connection() -> sqlite3.Connection:
    """
    Open a SQLite connection to our DB file with safe defaults.
    - Enables foreign keys.
    - Returns rows as sqlite3.Row so columns are addressed by name.
    """
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(DB_PATH), timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def _transaction() -> Iterator[sqlite3.Cursor]:
    """Yield a cursor inside a transaction; commit on success, roll back on error."""
    try:
        conn = get_connection()
    except sqlite3.Error as e:
        raise StorageError(f"database unavailable: {e}") from e
    try:
        with conn:
            yield conn.cursor()
    except sqlite3.Error as e:
        raise StorageError(f"database error: {e}") from e
    finally:
        conn.close()


def initialize_db() -> None:
    """
    Create tables if they don't exist.
    This is idempotent and safe to call on startup.
    """
    with _transaction() as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meetings (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id   TEXT,
                title        TEXT NOT NULL,
                notes        TEXT NOT NULL,
                meeting_date TEXT NOT NULL,
                created_by   TEXT,
                created_at   TEXT NOT NULL
            );
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id      TEXT,
                meeting_id      INTEGER,
                title           TEXT NOT NULL,
                description     TEXT,
                priority        TEXT NOT NULL DEFAULT 'medium',
                estimated_hours REAL NOT NULL DEFAULT 1,
                assigned_to     TEXT,
                due_date        TEXT,
                created_by      TEXT,
                created_at      TEXT NOT NULL,
                FOREIGN KEY (meeting_id) REFERENCES meetings(id) ON DELETE SET NULL
            );
            """
        )

        # suggestions: original_text and suggested_description are separate columns
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS suggestions (
                id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                meeting_id            INTEGER NOT NULL,
                original_text         TEXT NOT NULL,
                suggested_task        TEXT NOT NULL,
                suggested_description TEXT,
                confidence_score      REAL NOT NULL,
                status                TEXT NOT NULL DEFAULT 'pending'
                                      CHECK (status IN ('pending', 'approved', 'rejected')),
                reviewed_by           TEXT,
                reviewed_at           TEXT,
                rejection_reason      TEXT,
                task_id               INTEGER,
                created_at            TEXT NOT NULL,
                FOREIGN KEY (meeting_id) REFERENCES meetings(id) ON DELETE CASCADE,
                FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE SET NULL
            );
            """
        )

        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_suggestions_meeting_status
            ON suggestions(meeting_id, status);
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_tasks_project
            ON tasks(project_id);
            """
        )


# ------------------------------- Meetings ---------------------------------
def new_meeting(
    title: str,
    notes: str,
    meeting_date: str,
    project_id: Optional[str] = None,
    created_by: Optional[str] = None,
) -> int:
    """Insert a new meeting and return its ID."""
    with _transaction() as cur:
        cur.execute(
            """
            INSERT INTO meetings (project_id, title, notes, meeting_date, created_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (project_id, title, notes, meeting_date, created_by, utc_now_iso()),
        )
        return int(cur.lastrowid)


def get_meeting(meeting_id: int) -> Optional[Dict[str, Any]]:
    with _transaction() as cur:
        cur.execute("SELECT * FROM meetings WHERE id = ?", (meeting_id,))
        row = cur.fetchone()
        return dict(row) if row else None


def list_meetings(limit: int = 200) -> List[Dict[str, Any]]:
    """Return recent meetings (newest first)."""
    with _transaction() as cur:
        cur.execute("SELECT * FROM meetings ORDER BY id DESC LIMIT ?", (limit,))
        return [dict(r) for r in cur.fetchall()]


# ------------------------------ Suggestions -------------------------------
def insert_suggestion(
    meeting_id: int,
    original_text: str,
    suggested_task: str,
    suggested_description: Optional[str],
    confidence_score: float,
) -> int:
    """Insert one pending suggestion; each insert is its own transaction."""
    with _transaction() as cur:
        cur.execute("SELECT 1 FROM meetings WHERE id = ?", (meeting_id,))
        if cur.fetchone() is None:
            raise StorageError(f"Meeting {meeting_id} does not exist")
        cur.execute(
            """
            INSERT INTO suggestions (
                meeting_id, original_text, suggested_task, suggested_description,
                confidence_score, status, created_at
            ) VALUES (?, ?, ?, ?, ?, 'pending', ?)
            """,
            (
                meeting_id,
                original_text,
                suggested_task,
                suggested_description,
                max(0.0, min(1.0, float(confidence_score))),
                utc_now_iso(),
            ),
        )
        return int(cur.lastrowid)


def get_suggestion(suggestion_id: int) -> Optional[Dict[str, Any]]:
    with _transaction() as cur:
        cur.execute("SELECT * FROM suggestions WHERE id = ?", (suggestion_id,))
        row = cur.fetchone()
        return dict(row) if row else None


def list_suggestions(
    status: Optional[str] = None,
    meeting_id: Optional[int] = None,
    statuses: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """Return suggestions (newest first), optionally filtered by status and meeting."""
    clauses: List[str] = []
    params: List[Any] = []
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    if statuses:
        clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
        params.extend(statuses)
    if meeting_id is not None:
        clauses.append("meeting_id = ?")
        params.append(meeting_id)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    with _transaction() as cur:
        # id breaks ties between rows inserted within the same second
        cur.execute(
            f"SELECT * FROM suggestions {where} ORDER BY created_at DESC, id DESC",
            params,
        )
        return [dict(r) for r in cur.fetchall()]


def transition_suggestion(
    suggestion_id: int,
    expected_status: str,
    new_status: str,
    reviewed_by: Optional[str],
    reviewed_at: Optional[str],
    rejection_reason: Optional[str] = None,
) -> bool:
    """
    Compare-and-swap on status.

    Returns True only if the row was still in `expected_status`; concurrent
    reviewers of the same suggestion therefore see exactly one success.
    """
    with _transaction() as cur:
        cur.execute(
            """
            UPDATE suggestions
               SET status = ?, reviewed_by = ?, reviewed_at = ?, rejection_reason = ?
             WHERE id = ? AND status = ?
            """,
            (new_status, reviewed_by, reviewed_at, rejection_reason, suggestion_id, expected_status),
        )
        return cur.rowcount == 1


def set_suggestion_task(suggestion_id: int, task_id: int) -> None:
    with _transaction() as cur:
        cur.execute(
            "UPDATE suggestions SET task_id = ? WHERE id = ?",
            (task_id, suggestion_id),
        )


def revert_suggestion_approval(suggestion_id: int) -> bool:
    """Undo an approval whose Task could not be created."""
    with _transaction() as cur:
        cur.execute(
            """
            UPDATE suggestions
               SET status = 'pending', reviewed_by = NULL, reviewed_at = NULL
             WHERE id = ? AND status = 'approved' AND task_id IS NULL
            """,
            (suggestion_id,),
        )
        return cur.rowcount == 1


# --------------------------------- Tasks ----------------------------------
def insert_task(
    title: str,
    description: Optional[str],
    project_id: Optional[str] = None,
    meeting_id: Optional[int] = None,
    priority: str = "medium",
    estimated_hours: float = 1.0,
    assigned_to: Optional[str] = None,
    due_date: Optional[str] = None,
    created_by: Optional[str] = None,
) -> int:
    with _transaction() as cur:
        cur.execute(
            """
            INSERT INTO tasks (
                project_id, meeting_id, title, description, priority,
                estimated_hours, assigned_to, due_date, created_by, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                project_id,
                meeting_id,
                title,
                description,
                priority,
                estimated_hours,
                assigned_to,
                due_date,
                created_by,
                utc_now_iso(),
            ),
        )
        return int(cur.lastrowid)


def get_task(task_id: int) -> Optional[Dict[str, Any]]:
    with _transaction() as cur:
        cur.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
        row = cur.fetchone()
        return dict(row) if row else None


def list_task_labels(
    project_id: Optional[str] = None,
    meeting_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Title/description pairs of tasks in a project or created from a meeting."""
    clauses: List[str] = []
    params: List[Any] = []
    if project_id is not None:
        clauses.append("project_id = ?")
        params.append(project_id)
    if meeting_id is not None:
        clauses.append("meeting_id = ?")
        params.append(meeting_id)
    if not clauses:
        return []
    with _transaction() as cur:
        cur.execute(
            f"SELECT title, description FROM tasks WHERE {' OR '.join(clauses)} ORDER BY id ASC",
            params,
        )
        return [{"title": r["title"], "description": r["description"]} for r in cur.fetchall()]


def count_tasks(meeting_id: Optional[int] = None) -> int:
    with _transaction() as cur:
        if meeting_id is None:
            cur.execute("SELECT COUNT(1) FROM tasks")
        else:
            cur.execute("SELECT COUNT(1) FROM tasks WHERE meeting_id = ?", (meeting_id,))
        return int(cur.fetchone()[0])
