"""SQLite persistence layer."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

SCHEMA_VERSION = 1

_TASK_COLUMNS = (
    "title",
    "description",
    "status",
    "priority",
    "group_id",
    "created_by",
    "assigned_to_json",
    "due_date",
    "start_time",
    "end_time",
    "time_segment",
    "source",
    "is_recurring",
    "recurring_rule_json",
    "recurring_parent_id",
    "completed_by",
    "completed_at",
)


class Database:
    """Small SQLite wrapper with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                priority TEXT NOT NULL DEFAULT 'medium',
                group_id INTEGER,
                created_by INTEGER NOT NULL,
                assigned_to_json TEXT NOT NULL DEFAULT '[]',
                due_date TEXT,
                start_time TEXT,
                end_time TEXT,
                time_segment TEXT,
                source TEXT NOT NULL DEFAULT 'human',
                is_recurring INTEGER NOT NULL DEFAULT 0,
                recurring_rule_json TEXT,
                recurring_parent_id INTEGER,
                completed_by INTEGER,
                completed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(due_date);

            CREATE TABLE IF NOT EXISTS reminders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                task_id INTEGER,
                remind_at TEXT NOT NULL,
                content TEXT NOT NULL,
                status TEXT NOT NULL,
                channel TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                type TEXT NOT NULL DEFAULT 'text',
                payload_json TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS tool_executions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                tool_name TEXT NOT NULL,
                input_json TEXT NOT NULL,
                output_json TEXT NOT NULL,
                succeeded INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )

    # -- tasks ---------------------------------------------------------------

    def insert_task(self, values: dict[str, Any]) -> int:
        now = _utc_now_iso()
        columns = [c for c in _TASK_COLUMNS if c in values]
        placeholders = ", ".join("?" for _ in columns)
        with self._connect() as conn:
            cur = conn.execute(
                f"INSERT INTO tasks({', '.join(columns)}, created_at, updated_at) VALUES ({placeholders}, ?, ?)",
                (*[values[c] for c in columns], now, now),
            )
            return int(cur.lastrowid)

    def get_task(self, task_id: int) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return dict(row) if row else None

    def list_tasks(
        self,
        user_id: int,
        status: str | None = None,
        due_date: str | None = None,
        priority: str | None = None,
        group_id: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return (rows, total) for tasks the user created or is assigned to."""

        conditions = [
            "(created_by = ? OR EXISTS (SELECT 1 FROM json_each(tasks.assigned_to_json) WHERE value = ?))"
        ]
        params: list[Any] = [user_id, user_id]
        if status is not None:
            conditions.append("status = ?")
            params.append(status)
        if due_date is not None:
            conditions.append("due_date = ?")
            params.append(due_date)
        if priority is not None:
            conditions.append("priority = ?")
            params.append(priority)
        if group_id is not None:
            conditions.append("group_id = ?")
            params.append(group_id)
        where = " AND ".join(conditions)
        with self._connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) AS n FROM tasks WHERE {where}", params).fetchone()["n"]
            rows = conn.execute(
                f"SELECT * FROM tasks WHERE {where} ORDER BY id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
        return [dict(row) for row in rows], int(total)

    def update_task(self, task_id: int, values: dict[str, Any]) -> None:
        columns = [c for c in _TASK_COLUMNS if c in values]
        if not columns:
            return
        assignments = ", ".join(f"{c} = ?" for c in columns)
        with self._connect() as conn:
            conn.execute(
                f"UPDATE tasks SET {assignments}, updated_at = ? WHERE id = ?",
                (*[values[c] for c in columns], _utc_now_iso(), task_id),
            )

    def delete_task(self, task_id: int) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    # -- reminders -----------------------------------------------------------

    def create_reminder(
        self,
        user_id: int,
        task_id: int | None,
        remind_at: datetime,
        content: str,
        channel: str = "console",
    ) -> int:
        now = _utc_now_iso()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO reminders(user_id, task_id, remind_at, content, status, channel, created_at, updated_at)
                VALUES (?, ?, ?, ?, 'pending', ?, ?, ?)
                """,
                (user_id, task_id, _to_utc_iso(remind_at), content, channel, now, now),
            )
            return int(cur.lastrowid)

    def get_reminder(self, reminder_id: int) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
        return dict(row) if row else None

    def list_reminders(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """List a user's reminders, optionally within ``[start, end)``."""

        query = "SELECT * FROM reminders WHERE user_id = ?"
        params: list[Any] = [user_id]
        if start is not None:
            query += " AND remind_at >= ?"
            params.append(_to_utc_iso(start))
        if end is not None:
            query += " AND remind_at < ?"
            params.append(_to_utc_iso(end))
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY remind_at ASC", params).fetchall()
        return [dict(row) for row in rows]

    def get_due_reminders(self, now: datetime) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM reminders
                WHERE status = 'pending' AND remind_at <= ?
                ORDER BY remind_at ASC
                """,
                (_to_utc_iso(now),),
            ).fetchall()
        return [dict(row) for row in rows]

    def mark_reminder_status(self, reminder_id: int, status: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE reminders SET status = ?, updated_at = ? WHERE id = ?",
                (status, _utc_now_iso(), reminder_id),
            )

    # -- conversation history -----------------------------------------------

    def add_message(
        self,
        user_id: int,
        role: str,
        content: str,
        message_type: str = "text",
        payload: dict[str, Any] | None = None,
    ) -> None:
        payload_json = json.dumps(payload, ensure_ascii=False) if payload else None
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO messages(user_id, role, content, type, payload_json, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (user_id, role, content, message_type, payload_json, _utc_now_iso()),
            )

    def get_recent_messages(self, user_id: int, limit: int) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, role, content, type, payload_json, created_at
                FROM messages
                WHERE user_id = ? AND role != 'system'
                ORDER BY id DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        ordered = list(reversed(rows))
        return [
            {
                "id": row["id"],
                "role": row["role"],
                "content": row["content"],
                "type": row["type"],
                "payload": json.loads(row["payload_json"]) if row["payload_json"] else None,
                "createdAt": row["created_at"],
            }
            for row in ordered
        ]

    def clear_history(self, user_id: int) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM messages WHERE user_id = ?", (user_id,))

    def log_tool_execution(
        self,
        user_id: int,
        tool_name: str,
        tool_input: dict[str, Any],
        tool_output: Any,
        succeeded: bool,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tool_executions(user_id, tool_name, input_json, output_json, succeeded, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    tool_name,
                    json.dumps(tool_input, ensure_ascii=False),
                    json.dumps(tool_output, ensure_ascii=False),
                    int(succeeded),
                    _utc_now_iso(),
                ),
            )

    def list_tool_executions(self, user_id: int) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT tool_name, input_json, output_json, succeeded FROM tool_executions WHERE user_id = ? ORDER BY id",
                (user_id,),
            ).fetchall()
        return [dict(row) for row in rows]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()
