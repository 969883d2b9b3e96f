# src/todo_chat/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .task_models import ChatMessage, ChatRole, Task, TodoSuggestion

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite store for todos, chat messages and todo suggestions.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    - every mutation is a single transaction, so SQLite is the serialization point
    """

    def __init__(self, db_path: str | Path = "todo-chat.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s todos=%s", self._db_path, self.count_todos())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS todos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                    content TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS todo_suggestions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_message_id INTEGER NOT NULL REFERENCES chat_messages(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    accepted INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            def add_cols(table: str, wanted: dict[str, str]) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                for name, decl in wanted.items():
                    if name in cols:
                        continue
                    cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                    logger.info("TaskStore migration: added column %s.%s", table, name)

            add_cols(
                "todos",
                {
                    "completed": "INTEGER NOT NULL DEFAULT 0",
                    "created_at": "REAL NOT NULL DEFAULT 0",
                    "updated_at": "REAL NOT NULL DEFAULT 0",
                },
            )
            add_cols("todo_suggestions", {"accepted": "INTEGER NOT NULL DEFAULT 0"})

            cur.execute("CREATE INDEX IF NOT EXISTS idx_todos_created ON todos(created_at)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_suggestions_message "
                "ON todo_suggestions(chat_message_id)"
            )

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            completed=bool(row["completed"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> ChatMessage:
        return ChatMessage(
            id=int(row["id"]),
            role=ChatRole.from_db(row["role"]),
            content=str(row["content"] or ""),
            created_at=float(row["created_at"] or 0.0),
        )

    @staticmethod
    def _row_to_suggestion(row: sqlite3.Row) -> TodoSuggestion:
        return TodoSuggestion(
            id=int(row["id"]),
            chat_message_id=int(row["chat_message_id"]),
            title=str(row["title"] or ""),
            accepted=bool(row["accepted"]),
        )

    @staticmethod
    def _select_todo(conn: sqlite3.Connection, todo_id: int) -> Task | None:
        row = conn.execute("SELECT * FROM todos WHERE id = ?", (int(todo_id),)).fetchone()
        return TaskStore._row_to_task(row) if row else None

    # ---- todos ----

    def count_todos(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM todos").fetchone()
            return int(n)
        finally:
            conn.close()

    def list_todos(self) -> list[Task]:
        """All todos, most recently created first."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM todos ORDER BY created_at DESC, id DESC"
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def get_todo(self, todo_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            return self._select_todo(conn, todo_id)
        finally:
            conn.close()

    def create_todo(self, title: str) -> Task:
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "INSERT INTO todos(title, completed, created_at, updated_at) VALUES (?, 0, ?, ?)",
                (title, now, now),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for todos insert")
            task = self._select_todo(conn, int(rowid))
            conn.commit()
            if task is None:
                raise RuntimeError(f"Todo {rowid} vanished right after insert")
            logger.debug("Todo added id=%s", task.id)
            return task
        finally:
            conn.close()

    def update_todo(
        self,
        todo_id: int,
        *,
        title: str | None = None,
        completed: bool | None = None,
    ) -> Task | None:
        """Apply the given fields. Returns the fresh row, or None if the id does not exist."""
        fields: list[str] = []
        params: list[Any] = []

        if title is not None:
            fields.append("title = ?")
            params.append(title)

        if completed is not None:
            fields.append("completed = ?")
            params.append(1 if completed else 0)

        conn = self._get_conn()
        try:
            if not fields:
                return self._select_todo(conn, todo_id)

            fields.append("updated_at = ?")
            params.append(time.time())
            params.append(int(todo_id))

            cur = conn.execute(f"UPDATE todos SET {', '.join(fields)} WHERE id = ?", params)
            if cur.rowcount == 0:
                conn.rollback()
                return None
            task = self._select_todo(conn, todo_id)
            conn.commit()
            return task
        finally:
            conn.close()

    def delete_todo(self, todo_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM todos WHERE id = ?", (int(todo_id),))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    # ---- chat messages ----

    def list_chat_messages(self, limit: int | None = None) -> list[ChatMessage]:
        """Chat history in chronological order (the newest `limit` messages when given)."""
        conn = self._get_conn()
        try:
            if limit is None:
                rows = conn.execute(
                    "SELECT * FROM chat_messages ORDER BY created_at ASC, id ASC"
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM (
                        SELECT * FROM chat_messages ORDER BY created_at DESC, id DESC LIMIT ?
                    ) ORDER BY created_at ASC, id ASC
                    """,
                    (max(0, int(limit)),),
                ).fetchall()
            return [self._row_to_message(r) for r in rows]
        finally:
            conn.close()

    def create_chat_message(self, role: ChatRole, content: str) -> ChatMessage:
        conn = self._get_conn()
        try:
            msg = self._insert_chat_message(conn, role, content)
            conn.commit()
            return msg
        finally:
            conn.close()

    def _insert_chat_message(self, conn: sqlite3.Connection, role: ChatRole, content: str) -> ChatMessage:
        cur = conn.execute(
            "INSERT INTO chat_messages(role, content, created_at) VALUES (?, ?, ?)",
            (ChatRole(role).value, content, time.time()),
        )
        row = conn.execute("SELECT * FROM chat_messages WHERE id = ?", (cur.lastrowid,)).fetchone()
        return self._row_to_message(row)

    def clear_chat_history(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM todo_suggestions")
            conn.execute("DELETE FROM chat_messages")
            conn.commit()
        finally:
            conn.close()

    def save_assistant_turn(
        self, content: str, suggestion_titles: Iterable[str]
    ) -> tuple[ChatMessage, list[TodoSuggestion]]:
        """
        Persist the assistant message and its suggestions in one transaction,
        so a failure never leaves suggestions without their message (or the reverse).
        """
        now = time.time()
        conn = self._get_conn()
        try:
            msg = self._insert_chat_message(conn, ChatRole.ASSISTANT, content)
            suggestions: list[TodoSuggestion] = []
            for title in suggestion_titles:
                cur = conn.execute(
                    "INSERT INTO todo_suggestions(chat_message_id, title, accepted, created_at) "
                    "VALUES (?, ?, 0, ?)",
                    (msg.id, title, now),
                )
                row = conn.execute(
                    "SELECT * FROM todo_suggestions WHERE id = ?", (cur.lastrowid,)
                ).fetchone()
                suggestions.append(self._row_to_suggestion(row))
            conn.commit()
            logger.debug("Assistant turn saved id=%s suggestions=%d", msg.id, len(suggestions))
            return msg, suggestions
        finally:
            conn.close()

    # ---- suggestions ----

    def get_suggestion(self, suggestion_id: int) -> TodoSuggestion | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM todo_suggestions WHERE id = ?", (int(suggestion_id),)
            ).fetchone()
            return self._row_to_suggestion(row) if row else None
        finally:
            conn.close()

    def accept_suggestion(self, suggestion_id: int) -> TodoSuggestion | None:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE todo_suggestions SET accepted = 1 WHERE id = ?", (int(suggestion_id),)
            )
            if cur.rowcount == 0:
                conn.rollback()
                return None
            row = conn.execute(
                "SELECT * FROM todo_suggestions WHERE id = ?", (int(suggestion_id),)
            ).fetchone()
            conn.commit()
            return self._row_to_suggestion(row)
        finally:
            conn.close()
