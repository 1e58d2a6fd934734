import time
from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from routes.history_route import router as history_router
from routes.task_route import router as task_router
from services.agent.task_supervisor import TaskSupervisor
from utils.database_init import AsyncDatabaseInitializer


class FakeCompletions:
    """Mimic `AsyncOpenAI().chat.completions`."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        content = self.replies.pop(0) if self.replies else 'finish(message="done")'
        message = SimpleNamespace(content=content)
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


@pytest.fixture
def completions():
    return FakeCompletions(['<think>open it</think><answer>do(action="Launch", app="Settings")</answer>'])


@pytest.fixture
def client(tmp_path, device, registry, config, completions):
    app = FastAPI()
    app.include_router(task_router)
    app.include_router(history_router)
    app.state.db_initializer = AsyncDatabaseInitializer(tmp_path / "db")
    app.state.openai_client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    app.state.config_loader = lambda: config
    app.state.device = device
    app.state.app_registry = registry
    app.state.supervisor = TaskSupervisor()
    app.state.current_run = None
    with TestClient(app) as test_client:
        yield test_client


def _wait_until_idle(client: TestClient) -> dict:
    for _ in range(300):
        body = client.get("/tasks/current").json()
        if not body["running"]:
            return body
        time.sleep(0.01)
    raise AssertionError("task did not finish")


def test_no_task_yet(client):
    assert client.get("/tasks/current").json() == {"running": False, "task": None}
    assert client.post("/tasks/confirmation", json={"confirmed": True}).status_code == 404


def test_empty_task_rejected(client):
    assert client.post("/tasks", json={"task": "   "}).status_code == 400


def test_run_task_and_browse_history(client, device, completions):
    response = client.post("/tasks", json={"task": "open settings"})
    assert response.status_code == 200
    assert response.json()["started"] is True

    current = _wait_until_idle(client)
    assert current["status"] == "COMPLETED"
    assert current["step_count"] == 2
    assert device.shell_commands == ["monkey -p com.android.settings -c android.intent.category.LAUNCHER 1"]
    assert completions.calls[0]["model"] == "autoglm-phone"
    assert client.post("/tasks/confirmation", json={"confirmed": True}).status_code == 409

    listing = client.get("/history").json()
    assert len(listing["items"]) == 1
    task_id = listing["items"][0]["id"]
    assert listing["items"][0]["status"] == "COMPLETED"

    detail = client.get(f"/history/{task_id}").json()
    assert [a["verb"] for a in detail["actions"]] == ["launch", "finish"]
    assert detail["messages"][-1]["kind"] == "outcome"

    resumed = client.post(f"/history/{task_id}/resume").json()
    assert resumed["resumed"] is True
    assert resumed["resumed_from"] == task_id
    _wait_until_idle(client)

    stats = client.get("/history/stats").json()
    assert stats["total"] == 2
    assert stats["by_status"]["COMPLETED"] == 2

    assert client.get("/history", params={"status": "bogus"}).status_code == 400
    assert client.delete(f"/history/{task_id}").json() == {"deleted": True, "id": task_id}
    assert client.get(f"/history/{task_id}").status_code == 404


def test_stop_endpoint(client, completions):
    completions.replies[:] = ['do(action="Wait", duration="60000")']
    client.post("/tasks", json={"task": "wait forever"})

    body = client.post("/tasks/stop").json()

    assert body["stopped"] is True
    assert client.get("/tasks/current").json()["running"] is False
