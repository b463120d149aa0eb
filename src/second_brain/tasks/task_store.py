# src/second_brain/tasks/task_store.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
import time
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path
from typing import Any, TypeVar

from ..core.models import SEARCH_ALL, Category, CreatedRecord, Priority, Task, TaskFields, TaskStatus
from ..core.ports import RecordStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEARCH_LIMIT = 15
EVERYTHING_TERMS = {SEARCH_ALL, "", "everything", "everyone"}

_ORDER_BY = (
    "ORDER BY priority ASC, "
    "CASE WHEN due_date IS NULL OR due_date = '' THEN 1 ELSE 0 END ASC, "
    "due_date ASC, created_at ASC"
)


def _contains_pattern(text: str) -> str:
    """LIKE pattern matching `text` literally as a substring for `LIKE ? ESCAPE`."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def locator_for(task_id: str) -> str:
    return f"sqlite://tasks/{task_id}"


class SqliteTaskStore:
    """
    SQLite record store for local/offline runs.

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Every method opens its own connection; the async API runs the blocking
    work in a worker thread. Archiving is a soft delete (`archived = 1`).
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("SqliteTaskStore ready db=%s total=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    summary TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL DEFAULT 'Personal',
                    priority TEXT NOT NULL DEFAULT 'P3',
                    due_date TEXT,
                    status TEXT NOT NULL DEFAULT 'Todo',
                    assignee TEXT,
                    context_signature TEXT,
                    thread_key TEXT,
                    archived INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("SqliteTaskStore migration: added column %s", name)

            add_col("assignee", "TEXT")
            add_col("context_signature", "TEXT")
            add_col("thread_key", "TEXT")
            add_col("archived", "INTEGER NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_thread ON tasks(thread_key)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_open ON tasks(archived, status, due_date)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            summary=str(row["summary"] or ""),
            category=Category.from_raw(row["category"]),
            priority=Priority.from_raw(row["priority"]),
            due_date=row["due_date"] or None,
            status=TaskStatus.from_raw(row["status"]),
            assignee=row["assignee"],
            context_signature=row["context_signature"],
            thread_key=row["thread_key"],
        )

    def _select(self, where: str, params: tuple[Any, ...], *, limit: int | None = None) -> list[Task]:
        sql = f"SELECT * FROM tasks WHERE archived = 0 AND ({where}) {_ORDER_BY}"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        conn = self._get_conn()
        try:
            return [self._row_to_task(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def _mutate(self, task_id: str, sql: str, params: tuple[Any, ...]) -> None:
        try:
            row_id = int(task_id)
        except (TypeError, ValueError):
            raise RecordStoreError(f"Invalid task id: {task_id!r}") from None

        conn = self._get_conn()
        try:
            cur = conn.execute(sql, (*params, time.time(), row_id))
            conn.commit()
            if cur.rowcount != 1:
                raise RecordStoreError(f"Task not found: {task_id}")
        except sqlite3.Error as e:
            raise RecordStoreError(f"SQLite update failed for task {task_id}: {e}") from e
        finally:
            conn.close()

    @staticmethod
    async def _lookup(fn: Callable[..., T], *args: Any, default: T) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error:
            logger.exception("SQLite lookup failed (%s)", getattr(fn, "__name__", "?"))
            return default

    # ---- sync API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def create_sync(self, fields: TaskFields) -> CreatedRecord:
        if not fields.title or not fields.title.strip():
            raise RecordStoreError("title is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                INSERT INTO tasks(
                    title, summary, category, priority, due_date, status,
                    assignee, context_signature, thread_key, archived,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    fields.title.strip()[:100],
                    fields.summary or "",
                    fields.category.value,
                    fields.priority.value,
                    fields.due_date or None,
                    fields.status.value,
                    fields.assignee,
                    fields.context_signature,
                    fields.thread_key,
                    now,
                    now,
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RecordStoreError(f"SQLite insert failed: {e}") from e
        finally:
            conn.close()

        if cur.lastrowid is None:
            raise RecordStoreError("SQLite did not return lastrowid for tasks insert")
        task_id = str(cur.lastrowid)
        logger.debug("Task added id=%s title=%r thread_key=%s", task_id, fields.title, fields.thread_key)
        return CreatedRecord(id=task_id, url=locator_for(task_id))

    def get_sync(self, task_id: str) -> Task | None:
        try:
            row_id = int(task_id)
        except (TypeError, ValueError):
            return None
        found = self._select("id = ?", (row_id,), limit=1)
        return found[0] if found else None

    def find_by_thread_key_sync(self, key: str) -> Task | None:
        if not key:
            return None
        found = self._select("thread_key = ?", (key,), limit=1)
        return found[0] if found else None

    def find_by_fuzzy_title_sync(self, text: str) -> Task | None:
        text = (text or "").strip()
        if not text:
            return None
        found = self._select("title LIKE ? ESCAPE '\\'", (_contains_pattern(text),), limit=1)
        return found[0] if found else None

    def search_sync(self, term: str) -> list[Task]:
        """At most SEARCH_LIMIT records, also for "all"; archive_tasks archives only what this returns."""
        t = (term or "").strip()
        if t.lower() in EVERYTHING_TERMS:
            return self._select("status != ?", (TaskStatus.DONE.value,), limit=SEARCH_LIMIT)
        like = _contains_pattern(t)
        return self._select(
            "title LIKE ? ESCAPE '\\' OR assignee LIKE ? ESCAPE '\\' "
            "OR lower(category) = lower(?)",
            (like, like, t),
            limit=SEARCH_LIMIT,
        )

    def query_due_sync(self, on_or_before: date) -> list[Task]:
        return self._select(
            "status != ? AND due_date IS NOT NULL AND due_date != '' AND due_date <= ?",
            (TaskStatus.DONE.value, on_or_before.isoformat()),
        )

    def query_modified_since_sync(self, since: datetime) -> list[Task]:
        return self._select("updated_at >= ?", (since.timestamp(),))

    # ---- RecordStore (async) ----

    async def create(self, fields: TaskFields) -> CreatedRecord:
        return await asyncio.to_thread(self.create_sync, fields)

    async def get(self, task_id: str) -> Task | None:
        return await self._lookup(self.get_sync, task_id, default=None)

    async def find_by_thread_key(self, key: str) -> Task | None:
        return await self._lookup(self.find_by_thread_key_sync, key, default=None)

    async def find_by_fuzzy_title(self, text: str) -> Task | None:
        return await self._lookup(self.find_by_fuzzy_title_sync, text, default=None)

    async def search(self, term: str) -> list[Task]:
        return await self._lookup(self.search_sync, term, default=[])

    async def query_due(self, on_or_before: date) -> list[Task]:
        return await self._lookup(self.query_due_sync, on_or_before, default=[])

    async def query_modified_since(self, since: datetime) -> list[Task]:
        return await self._lookup(self.query_modified_since_sync, since, default=[])

    async def update_status(self, task_id: str, status: TaskStatus) -> None:
        await asyncio.to_thread(
            self._mutate, task_id,
            "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ? AND archived = 0",
            (status.value,),
        )
        logger.info("Task %s -> %s", task_id, status.value)

    async def append_note(self, task_id: str, text: str) -> None:
        await asyncio.to_thread(
            self._mutate, task_id,
            """
            UPDATE tasks
            SET summary = CASE WHEN summary = '' THEN ? ELSE summary || ? END,
                updated_at = ?
            WHERE id = ? AND archived = 0
            """,
            (text, f"\n\n[Update]: {text}"),
        )

    async def update_due_date(self, task_id: str, due_date: str) -> None:
        await asyncio.to_thread(
            self._mutate, task_id,
            "UPDATE tasks SET due_date = ?, updated_at = ? WHERE id = ? AND archived = 0",
            (due_date,),
        )

    async def archive(self, task_id: str) -> None:
        await asyncio.to_thread(
            self._mutate, task_id,
            "UPDATE tasks SET archived = 1, updated_at = ? WHERE id = ? AND archived = 0",
            (),
        )
        logger.info("Task %s archived", task_id)
