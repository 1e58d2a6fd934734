"""Async Data Access Layer for the TASK_HISTORY table.

Provides TaskHistoryDAL with async CRUD, search and statistics operations
compatible with `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence

from models.task_record import TaskRecord, TaskStatus
from utils.database_init import AsyncDatabaseInitializer


class TaskHistoryDAL:
    """Data access layer for TASK_HISTORY records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "task_description",
        "model",
        "start_time",
        "end_time",
        "duration_ms",
        "status",
        "status_message",
        "step_count",
        "messages_json",
        "actions_json",
        "api_context_json",
        "created_at",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])
    _UPDATABLE = frozenset(_COLUMNS[4:12])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_task(self, record: TaskRecord) -> int:
        """Insert a new TASK_HISTORY row and return the new id.

        Args:
            record: TaskRecord with `id=None` and fields to insert.

        Returns:
            The integer primary key of the created row.
        """
        created_at = record.created_at or int(time.time())
        placeholders = ", ".join("?" for _ in self._COLUMNS[1:])

        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO TASK_HISTORY ({self._INSERT_COLUMNS}) VALUES ({placeholders})",
                (
                    record.task_description,
                    record.model,
                    record.start_time,
                    record.end_time,
                    record.duration_ms,
                    record.status.value,
                    record.status_message,
                    record.step_count,
                    record.messages_json,
                    record.actions_json,
                    record.api_context_json,
                    created_at,
                ),
            )
            await conn.commit()
            return cur.lastrowid

    async def get_task(self, task_id: int) -> Optional[TaskRecord]:
        """Return the TaskRecord for `task_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM TASK_HISTORY WHERE id = ?",
                (task_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_tasks(
        self,
        limit: int = 20,
        offset: int = 0,
        status: Optional[TaskStatus] = None,
    ) -> List[TaskRecord]:
        """List TASK_HISTORY rows, newest first.

        Args:
            limit: Maximum number of rows to return.
            offset: Rows to skip.
            status: Only return rows with this status when given.
        """
        where, params = "", []
        if status is not None:
            where = "WHERE status = ?"
            params.append(status.value)
        params.extend([limit, offset])

        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM TASK_HISTORY {where} "
                "ORDER BY start_time DESC, id DESC LIMIT ? OFFSET ?",
                tuple(params),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def search_tasks(self, query: str, limit: int = 20) -> List[TaskRecord]:
        """Return rows whose description contains `query` (case-insensitive)."""
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM TASK_HISTORY "
                "WHERE task_description LIKE ? ESCAPE '\\' ORDER BY start_time DESC LIMIT ?",
                (f"%{escaped}%", limit),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def update_task(
        self,
        task_id: int,
        *,
        end_time: Optional[int] = None,
        duration_ms: Optional[int] = None,
        status: Optional[TaskStatus] = None,
        status_message: Optional[str] = None,
        step_count: Optional[int] = None,
        messages_json: Optional[str] = None,
        actions_json: Optional[str] = None,
        api_context_json: Optional[str] = None,
    ) -> bool:
        """Update fields of a TASK_HISTORY row. Returns True if a row was changed."""
        updates = {
            "end_time": end_time, "duration_ms": duration_ms,
            "status": status.value if status is not None else None,
            "status_message": status_message, "step_count": step_count,
            "messages_json": messages_json, "actions_json": actions_json,
            "api_context_json": api_context_json,
        }
        fields = [f"{col} = ?" for col, val in updates.items() if val is not None and col in self._UPDATABLE]

        if not fields:
            return False

        params: List[Any] = [val for val in updates.values() if val is not None]
        params.append(task_id)
        sql = f"UPDATE TASK_HISTORY SET {', '.join(fields)} WHERE id = ?"

        async with self._db.connection() as conn:
            await conn.execute(sql, tuple(params))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    async def update_step_count(self, task_id: int, step_count: int) -> bool:
        return await self.update_task(task_id, step_count=step_count)

    async def delete_task(self, task_id: int) -> bool:
        """Delete a TASK_HISTORY row by id. Returns True if a row was deleted."""
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM TASK_HISTORY WHERE id = ?", (task_id,))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    async def delete_all(self) -> int:
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM TASK_HISTORY")
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return int(changed[0]) if changed else 0

    async def get_stats(self) -> Dict[str, Any]:
        """Return counts per status, success rate and averages over finished tasks."""
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT status, COUNT(*) FROM TASK_HISTORY GROUP BY status")
            counts = {status: count for status, count in await cur.fetchall()}
            cur = await conn.execute(
                "SELECT AVG(duration_ms), AVG(step_count) FROM TASK_HISTORY WHERE end_time IS NOT NULL"
            )
            avg_duration, avg_steps = await cur.fetchone()

        total = sum(counts.values())
        completed = counts.get(TaskStatus.COMPLETED.value, 0)
        return {
            "total": total,
            "by_status": {status.value: counts.get(status.value, 0) for status in TaskStatus},
            "success_rate": completed / total if total else 0.0,
            "average_duration_ms": int(avg_duration) if avg_duration is not None else None,
            "average_steps": round(avg_steps, 1) if avg_steps is not None else None,
        }

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> TaskRecord:
        """Convert a DB row tuple into a TaskRecord."""
        return TaskRecord(
            id=row[0],
            task_description=row[1],
            model=row[2],
            start_time=row[3],
            end_time=row[4],
            duration_ms=row[5],
            status=TaskStatus.parse(row[6]),
            status_message=row[7],
            step_count=row[8],
            messages_json=row[9],
            actions_json=row[10],
            api_context_json=row[11],
            created_at=row[12],
        )
