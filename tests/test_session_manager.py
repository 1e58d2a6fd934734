import json

import httpx
import openai
import pytest

from models.session_models import Message
from services.agent.session_manager import NO_NOTES_SUMMARY, PLACEHOLDER_RATIONALE, AgentSession
from services.device.frame_capture import Frame

FRAME = Frame(image_bytes=b"\xff\xd8fake-jpeg", width=1080, height=2400)
BACK = '<think>go back</think><answer>do(action="Back")</answer>'


def _image_count(messages) -> int:
    count = 0
    for message in messages:
        content = message["content"]
        if isinstance(content, list) and any(part["type"] == "image_url" for part in content):
            count += 1
    return count


@pytest.fixture
def session_factory(make_reasoning, device, registry):
    def factory(replies=None, default=None, on_error=None):
        reasoning = make_reasoning(replies, default)
        return AgentSession(reasoning, device, registry, on_error=on_error), reasoning

    return factory


@pytest.mark.asyncio
async def test_step_when_not_running_has_no_side_effects(session_factory):
    session, reasoning = session_factory(default=BACK)

    assert await session.step(FRAME) is None
    assert reasoning.requests == []
    assert session.history() == []


@pytest.mark.asyncio
async def test_only_one_image_per_request(session_factory):
    session, reasoning = session_factory(default=BACK)
    session.start_session("open settings")

    for _ in range(4):
        command = await session.step(FRAME)
        assert command.verb == "back"

    assert len(reasoning.requests) == 4
    for request in reasoning.requests:
        assert _image_count(request["messages"]) == 1
        assert request["messages"][-1]["content"][1]["type"] == "image_url"
    assert not any(message.has_image for message in session.history())


@pytest.mark.asyncio
async def test_first_step_carries_task_and_screen_info(session_factory, device):
    session, reasoning = session_factory(default=BACK)
    device.foreground = "com.tencent.mm"
    session.start_session("send a message")

    await session.step(FRAME)

    text = reasoning.requests[0]["messages"][-1]["content"][0]["text"]
    assert text.startswith("Task: send a message")
    info = json.loads(text.split("** Screen Info **\n\n", 1)[1])
    assert info["current_app"] == "WeChat"
    assert "current_time" in info


@pytest.mark.asyncio
async def test_history_keeps_text_turn_and_reply(session_factory):
    session, _ = session_factory(default=BACK)
    session.start_session("task")

    await session.step(FRAME)

    roles = [message.role for message in session.history()]
    assert roles == ["system", "user", "user", "assistant"]
    assert session.history()[-1].content == BACK


@pytest.mark.asyncio
async def test_rationale_falls_back_to_previous(session_factory):
    session, _ = session_factory(
        replies=[
            '<think>first</think><answer>do(action="Home")</answer>',
            '<answer>do(action="Back")</answer>',
        ]
    )
    session.start_session("task")

    await session.step(FRAME)
    assert session.last_rationale == "first"

    await session.step(FRAME)
    assert session.last_rationale == "first"


@pytest.mark.asyncio
async def test_rationale_placeholder_without_any_history(session_factory):
    session, _ = session_factory(replies=['do(action="Home")'])
    session.start_session("task")

    await session.step(FRAME)

    assert session.last_rationale == PLACEHOLDER_RATIONALE


@pytest.mark.asyncio
async def test_api_error_is_classified_and_reported(session_factory):
    errors = []
    response = httpx.Response(401, request=httpx.Request("POST", "https://x/v1/chat/completions"))
    session, _ = session_factory(
        replies=[openai.APIStatusError("unauthorized", response=response, body=None)],
        on_error=errors.append,
    )
    session.start_session("task")

    assert await session.step(FRAME) is None
    assert errors == ["API authentication failed"]
    assert not any(message.has_image for message in session.history())


@pytest.mark.asyncio
async def test_call_api_summarizes_notes(session_factory):
    session, reasoning = session_factory(
        replies=['do(action="Call_API", instruction="total the prices")', "Total is 30"]
    )
    session.start_session("compare prices")
    session.add_note("Item A costs 10")
    session.add_note("Item B costs 20")

    command = await session.step(FRAME)

    assert command.verb == "call_api"
    summary_request = reasoning.requests[1]
    assert summary_request["params"] == {"max_tokens": 512, "temperature": 0.3}
    assert "Item A costs 10" in summary_request["messages"][1]["content"]
    assert session.history()[-1].content == "API Summary: Total is 30"


@pytest.mark.asyncio
async def test_call_api_without_notes(session_factory):
    session, _ = session_factory()
    session.start_session("task")

    assert await session.call_api("anything") == NO_NOTES_SUMMARY


def test_restore_session_seeds_history_without_running(session_factory):
    session, _ = session_factory()
    previous = [
        Message(role="system", content="old prompt"),
        Message(role="user", content="Task: old"),
        Message(role="assistant", content=BACK),
    ]

    session.restore_session("old", previous)

    history = session.history()
    assert not session.is_running
    assert [message.role for message in history] == ["system", "user", "assistant", "user"]
    assert history[0].content != "old prompt"
    assert history[-1].content == "Task: old (continuing from history)"


def test_start_session_clears_notes(session_factory):
    session, _ = session_factory()
    session.add_note("stale")

    session.start_session("fresh")

    assert session.notes == []
    assert session.is_running
