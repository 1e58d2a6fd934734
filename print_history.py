"""Print the tasks stored in the project's SQLite task history.

Reuses the same `DATABASE_DIR` behavior as the application via
`utils.database_init.AsyncDatabaseInitializer`.

Run: set the `DATABASE_DIR` environment variable and run
      `python print_history.py [--limit N] [--status COMPLETED] [--verbose]`.
"""
import argparse
import asyncio
import json
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv

from dal.task_history_dal import TaskHistoryDAL
from models.task_record import TaskRecord, TaskStatus
from utils.database_init import AsyncDatabaseInitializer


def _format_time(value_ms: Optional[int]) -> str:
    if not value_ms:
        return "-"
    return datetime.fromtimestamp(value_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _print_record(record: TaskRecord, verbose: bool) -> None:
    """Print one task summary line and, when verbose, its transcript.

    Args:
        record: Stored task.
        verbose: Also print the transcript entries.
    """
    duration = f"{record.duration_ms / 1000:.1f}s" if record.duration_ms is not None else "-"
    print(
        f"#{record.id} [{record.status.value}] {_format_time(record.start_time)} "
        f"steps={record.step_count} duration={duration} model={record.model}"
    )
    print(f"  task: {record.task_description}")
    if record.status_message:
        print(f"  result: {record.status_message}")
    if not verbose:
        return
    for entry in json.loads(record.messages_json or "[]"):
        step = entry.get("step")
        prefix = f"  [{step}] " if step is not None else "  "
        print(f"{prefix}{entry.get('kind')}: {entry.get('text')}")


async def main(limit: int, status: Optional[str], verbose: bool) -> None:
    """Ensure the DB exists and print stored tasks, newest first."""
    dal = TaskHistoryDAL(AsyncDatabaseInitializer())
    status_filter = TaskStatus(status.upper()) if status else None
    records = await dal.list_tasks(limit=limit, status=status_filter)
    if not records:
        print("No tasks stored.")
        return
    for record in records:
        _print_record(record, verbose)
        print()

    stats = await dal.get_stats()
    print(f"Total: {stats['total']}  success rate: {stats['success_rate']:.0%}")


if __name__ == "__main__":
    load_dotenv()
    parser = argparse.ArgumentParser(description="Print stored agent tasks.")
    parser.add_argument("--limit", type=int, default=20)
    parser.add_argument("--status", choices=[s.value for s in TaskStatus], type=str.upper)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()
    asyncio.run(main(args.limit, args.status, args.verbose))
