"""Helpers to remove stale TASK_HISTORY rows from the SQLite database."""

import asyncio
import logging
import time

from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class DatabaseCleaner:
    """Delete TASK_HISTORY rows older than the configured retention window."""

    def __init__(self, db_initializer: AsyncDatabaseInitializer, retention_days: int = 30) -> None:
        """
        Args:
            db_initializer: Shared database initializer/connection provider.
            retention_days: Age threshold in days; tasks that started earlier are removed.
        """
        self._db = db_initializer
        self.retention_days = retention_days

    async def prune_old_tasks(self, retention_days: int | None = None) -> int:
        """Delete tasks older than the retention window and return count removed."""
        days = self.retention_days if retention_days is None else retention_days
        cutoff_ms = int((time.time() - days * 86_400) * 1000)
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM TASK_HISTORY WHERE start_time < ?", (cutoff_ms,))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            deleted = await cur.fetchone()
            removed = int(deleted[0]) if deleted and deleted[0] is not None else 0
        if removed:
            LOGGER.info("Pruned %d tasks older than %d days", removed, days)
        return removed

    async def run_periodic_cleanup(self, interval_seconds: int = 3_600) -> None:
        """
        Repeatedly prune old tasks at the given interval until cancelled.

        Args:
            interval_seconds: Seconds to sleep between cleanup runs.
        """
        while True:
            try:
                await self.prune_old_tasks()
            except Exception as exc:
                LOGGER.error("History cleanup failed: %s", exc)
            await asyncio.sleep(interval_seconds)
