import json
import time

import pytest

from dal.task_history_dal import TaskHistoryDAL
from models.task_record import TaskRecord, TaskStatus
from utils.database_cleaner import DatabaseCleaner
from utils.database_init import AsyncDatabaseInitializer


@pytest.fixture
def db_initializer(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_DIR", str(tmp_path / "db"))
    return AsyncDatabaseInitializer()


@pytest.fixture
def dal(db_initializer):
    return TaskHistoryDAL(db_initializer)


def _record(description: str, start_time: int = None, status: TaskStatus = TaskStatus.RUNNING) -> TaskRecord:
    return TaskRecord(
        id=None,
        task_description=description,
        model="autoglm-phone",
        start_time=start_time if start_time is not None else int(time.time() * 1000),
        status=status,
    )


def test_missing_database_dir_raises(monkeypatch):
    monkeypatch.delenv("DATABASE_DIR", raising=False)

    with pytest.raises(RuntimeError):
        AsyncDatabaseInitializer()


@pytest.mark.asyncio
async def test_create_and_get(dal):
    task_id = await dal.create_task(_record("Open settings"))

    record = await dal.get_task(task_id)

    assert record.task_description == "Open settings"
    assert record.status is TaskStatus.RUNNING
    assert record.messages_json == "[]"
    assert record.created_at is not None


@pytest.mark.asyncio
async def test_update_completion(dal):
    task_id = await dal.create_task(_record("Send message"))
    context = [{"role": "user", "content": "Task: Send message"}]

    changed = await dal.update_task(
        task_id,
        end_time=2_000,
        duration_ms=1_500,
        status=TaskStatus.COMPLETED,
        status_message="Sent",
        step_count=4,
        api_context_json=json.dumps(context),
    )

    record = await dal.get_task(task_id)
    assert changed
    assert record.status is TaskStatus.COMPLETED
    assert record.step_count == 4
    assert json.loads(record.api_context_json) == context
    assert not await dal.update_task(task_id)


@pytest.mark.asyncio
async def test_list_filter_search_and_delete(dal):
    first = await dal.create_task(_record("Order coffee", start_time=1_000, status=TaskStatus.COMPLETED))
    await dal.create_task(_record("Check weather", start_time=2_000, status=TaskStatus.FAILED))
    await dal.create_task(_record("Order 100% juice", start_time=3_000, status=TaskStatus.COMPLETED))

    newest_first = await dal.list_tasks()
    completed = await dal.list_tasks(status=TaskStatus.COMPLETED)
    found = await dal.search_tasks("order")
    percent = await dal.search_tasks("100%")

    assert [r.start_time for r in newest_first] == [3_000, 2_000, 1_000]
    assert {r.task_description for r in completed} == {"Order coffee", "Order 100% juice"}
    assert len(found) == 2
    assert [r.task_description for r in percent] == ["Order 100% juice"]

    assert await dal.delete_task(first)
    assert await dal.get_task(first) is None
    assert not await dal.delete_task(first)


@pytest.mark.asyncio
async def test_stats(dal):
    a = await dal.create_task(_record("a"))
    b = await dal.create_task(_record("b"))
    await dal.update_task(a, status=TaskStatus.COMPLETED, end_time=1, duration_ms=1_000, step_count=2)
    await dal.update_task(b, status=TaskStatus.TIMEOUT, end_time=1, duration_ms=3_000, step_count=50)

    stats = await dal.get_stats()

    assert stats["total"] == 2
    assert stats["by_status"]["COMPLETED"] == 1
    assert stats["by_status"]["TIMEOUT"] == 1
    assert stats["success_rate"] == 0.5
    assert stats["average_duration_ms"] == 2_000
    assert stats["average_steps"] == 26.0


@pytest.mark.asyncio
async def test_cleaner_prunes_old_tasks(dal, db_initializer):
    old_start = int((time.time() - 40 * 86_400) * 1000)
    old = await dal.create_task(_record("old", start_time=old_start))
    recent = await dal.create_task(_record("recent"))

    removed = await DatabaseCleaner(db_initializer, retention_days=30).prune_old_tasks()

    assert removed == 1
    assert await dal.get_task(old) is None
    assert await dal.get_task(recent) is not None


@pytest.mark.asyncio
async def test_history_survives_new_initializer(dal, db_initializer):
    task_id = await dal.create_task(_record("persisted"))

    reopened = TaskHistoryDAL(AsyncDatabaseInitializer(db_initializer.db_dir))

    assert (await reopened.get_task(task_id)).task_description == "persisted"
