import asyncio
import base64

import pytest

from models.agent_config import AUTOMATION_IME as ADB_IME
from models.command import Command
from services.agent.action_executor import ActionExecutor
from services.agent.interaction_gate import InteractionCancelled
from services.device.coordinate_mapper import CoordinateMapper


@pytest.fixture
def mapper():
    return CoordinateMapper(1000, 2000)


@pytest.fixture
def make_executor(device, mapper, registry, config):
    def factory(**callbacks):
        return ActionExecutor(device, mapper, registry, config, **callbacks)

    return factory


@pytest.mark.asyncio
async def test_tap_maps_coordinates(make_executor, device):
    result = await make_executor().execute(Command(verb="tap", coordinates=[500, 250]))

    assert result.success and result.should_continue
    assert device.shell_commands == ["input tap 500 500"]


@pytest.mark.asyncio
async def test_declined_confirmation_skips_tap(make_executor, device):
    asked = []

    async def decline(message):
        asked.append(message)
        return False

    executor = make_executor(on_confirmation=decline)
    result = await executor.execute(Command(verb="tap", coordinates=[10, 10], message="Pay 100"))

    assert result.success is True
    assert result.should_continue is False
    assert asked == ["Pay 100"]
    assert device.shell_commands == []


@pytest.mark.asyncio
async def test_confirmed_tap_is_dispatched(make_executor, device):
    async def accept(message):
        return True

    result = await make_executor(on_confirmation=accept).execute(
        Command(verb="tap", coordinates=[10, 10], message="Delete file")
    )

    assert result.should_continue
    assert device.shell_commands == ["input tap 10 20"]


@pytest.mark.asyncio
async def test_sensitive_tap_without_handler_is_declined(make_executor, device):
    result = await make_executor().execute(Command(verb="tap", coordinates=[10, 10], message="Pay"))

    assert not result.should_continue
    assert device.shell_commands == []


@pytest.mark.asyncio
async def test_double_tap_long_press_and_swipe(make_executor, device):
    executor = make_executor()

    await executor.execute(Command(verb="double tap", coordinates=[100, 100]))
    await executor.execute(Command(verb="long press", coordinates=[100, 100]))
    await executor.execute(Command(verb="long press", coordinates=[100, 100], duration=2500))
    await executor.execute(Command(verb="swipe", coordinates=[500, 800, 500, 200]))

    assert device.shell_commands == [
        "input tap 100 200",
        "input tap 100 200",
        "input swipe 100 200 100 200 1000",
        "input swipe 100 200 100 200 2500",
        "input swipe 500 1600 500 400 300",
    ]


@pytest.mark.asyncio
async def test_key_events(make_executor, device):
    executor = make_executor()
    for verb in ("home", "back", "enter"):
        await executor.execute(Command(verb=verb))

    assert device.shell_commands == [
        "input keyevent KEYCODE_HOME",
        "input keyevent KEYCODE_BACK",
        "input keyevent KEYCODE_ENTER",
    ]


@pytest.mark.asyncio
async def test_launch_resolves_case_insensitively(make_executor, device):
    result = await make_executor().execute(Command(verb="launch", text="wechat"))

    assert result.success
    assert device.shell_commands == ["monkey -p com.tencent.mm -c android.intent.category.LAUNCHER 1"]


@pytest.mark.asyncio
async def test_unresolved_launch_fails_with_message(make_executor, device):
    result = await make_executor().execute(Command(verb="launch", text="Nonexistent App"))

    assert result.success is False
    assert result.should_continue is True
    assert "Nonexistent App" in result.error_message
    assert device.shell_commands == []


@pytest.mark.asyncio
async def test_type_switches_ime_once_and_injects_base64(make_executor, device):
    original = device.ime
    executor = make_executor()

    await executor.execute(Command(verb="type", text="héllo"))
    await executor.execute(Command(verb="type_name", text="Bob"))

    assert device.set_ime_calls == [ADB_IME]
    assert executor.ime_switched
    assert executor.ime.original_ime == original
    assert [base64.b64decode(p).decode("utf-8") for p in device.injected] == ["héllo", "Bob"]


@pytest.mark.asyncio
async def test_restore_ime_is_idempotent(make_executor, device):
    original = device.ime
    executor = make_executor()
    await executor.execute(Command(verb="type", text="x"))

    await executor.restore_ime()
    await executor.restore_ime()

    assert device.set_ime_calls == [ADB_IME, original]
    assert device.ime == original
    assert not executor.ime_switched


@pytest.mark.asyncio
async def test_restore_without_switch_is_noop(make_executor, device):
    await make_executor().restore_ime()

    assert device.set_ime_calls == []


@pytest.mark.asyncio
async def test_restore_attempted_after_failed_switch(make_executor, device):
    original = device.ime
    device.set_ime_result = False
    executor = make_executor()

    await executor.execute(Command(verb="type", text="x"))
    device.set_ime_result = True
    await executor.restore_ime()

    assert device.set_ime_calls == [ADB_IME, original]


@pytest.mark.asyncio
async def test_no_switch_when_automation_ime_active(make_executor, device):
    device.ime = ADB_IME
    executor = make_executor()

    await executor.execute(Command(verb="type", text="x"))
    await executor.restore_ime()

    assert device.set_ime_calls == []


@pytest.mark.asyncio
async def test_note_wait_and_unknown(make_executor, device):
    notes = []
    executor = make_executor(on_note=notes.append)

    assert (await executor.execute(Command(verb="note", text="price is 10", message="price is 10"))).success
    assert (await executor.execute(Command(verb="wait", duration=0))).success
    assert (await executor.execute(Command(verb="fly"))).success

    assert notes == ["price is 10"]
    assert device.shell_commands == []


@pytest.mark.asyncio
async def test_take_over_cancellation_stops_loop(make_executor):
    async def cancelled(message):
        raise InteractionCancelled("take_over cancelled")

    result = await make_executor(on_take_over=cancelled).execute(Command(verb="take_over"))

    assert result.should_continue is False


@pytest.mark.asyncio
async def test_interact_uses_default_message(make_executor):
    asked = []

    async def choose(message):
        asked.append(message)
        return "Option A"

    result = await make_executor(on_interact=choose).execute(Command(verb="interact"))

    assert result.success and result.should_continue
    assert asked == ["please choose"]


@pytest.mark.asyncio
async def test_take_over_uses_default_message(make_executor):
    asked = []

    async def take_over(message):
        asked.append(message)

    result = await make_executor(on_take_over=take_over).execute(Command(verb="take_over"))

    assert result.success and result.should_continue
    assert asked == ["needs manual intervention"]


@pytest.mark.asyncio
async def test_device_failure_is_logged_as_success(make_executor, device):
    async def broken(command):
        raise RuntimeError("device offline")

    device.execute_shell_command = broken

    result = await make_executor().execute(Command(verb="back"))

    assert result.success


@pytest.mark.asyncio
async def test_wait_is_cancellable(make_executor):
    task = asyncio.create_task(make_executor().execute(Command(verb="wait", duration=60_000)))
    await asyncio.sleep(0)

    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
