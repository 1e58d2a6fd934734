"""Dispatch parsed commands onto the device."""

import asyncio
import base64
import logging
from typing import Awaitable, Callable, Dict, Optional

from models.agent_config import AgentConfig
from models.command import Command, ExecuteResult
from services.agent.ime_reservation import InputMethodReservation
from services.agent.interaction_gate import InteractionCancelled
from services.device.app_registry import AppRegistry
from services.device.coordinate_mapper import CoordinateMapper
from services.device.shell_commands import (
    ShellCommandRejected,
    build_keyevent_command,
    build_launch_command,
    build_swipe_command,
    build_tap_command,
    ensure_allowed,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_TAKE_OVER_MESSAGE = "needs manual intervention"
DEFAULT_INTERACT_MESSAGE = "please choose"
DEFAULT_FINISH_MESSAGE = "task complete"
DEFAULT_WAIT_MS = 2000
DEFAULT_LONG_PRESS_MS = 1000
DEFAULT_SWIPE_MS = 300

ConfirmationCallback = Callable[[str], Awaitable[bool]]
TakeOverCallback = Callable[[str], Awaitable[None]]
InteractCallback = Callable[[str], Awaitable[Optional[str]]]
NoteCallback = Callable[[str], None]

OK = ExecuteResult(success=True)
STOP = ExecuteResult(success=True, should_continue=False)


class ActionExecutor:
    """Turn one `Command` into device operations and report an `ExecuteResult`.

    Device-call failures are logged and treated as no-op successes. Only an
    unresolved `launch` target and a command outside the shell allow-list
    come back as `success=False`.
    """

    def __init__(
        self,
        device,
        mapper: CoordinateMapper,
        app_registry: AppRegistry,
        config: AgentConfig,
        *,
        on_confirmation: Optional[ConfirmationCallback] = None,
        on_take_over: Optional[TakeOverCallback] = None,
        on_interact: Optional[InteractCallback] = None,
        on_note: Optional[NoteCallback] = None,
    ) -> None:
        self.device = device
        self.mapper = mapper
        self.app_registry = app_registry
        self.timing = config.timing
        self.on_confirmation = on_confirmation
        self.on_take_over = on_take_over
        self.on_interact = on_interact
        self.on_note = on_note
        self.ime = InputMethodReservation(device, config.automation_ime, config.timing.keyboard_switch_delay)
        self._handlers: Dict[str, Callable[[Command], Awaitable[ExecuteResult]]] = {
            "tap": self._tap,
            "double tap": self._double_tap,
            "long press": self._long_press,
            "swipe": self._swipe,
            "type": self._type,
            "type_name": self._type,
            "launch": self._launch,
            "home": self._home,
            "back": self._back,
            "enter": self._enter,
            "wait": self._wait,
            "note": self._note,
            "take_over": self._take_over,
            "interact": self._interact,
            "call_api": self._call_api,
            "finish": self._finish,
        }

    @property
    def ime_switched(self) -> bool:
        return self.ime.switched

    async def execute(self, command: Command) -> ExecuteResult:
        handler = self._handlers.get(command.verb)
        if handler is None:
            LOGGER.warning("Unknown action: %s", command.verb)
            return OK

        LOGGER.info("Executing %s", command.describe())
        try:
            return await handler(command)
        except asyncio.CancelledError:
            raise
        except ShellCommandRejected as exc:
            LOGGER.error("Rejected shell command for %s: %s", command.verb, exc)
            return ExecuteResult(success=False, error_message=str(exc))
        except InteractionCancelled:
            LOGGER.info("%s cancelled", command.verb)
            return STOP
        except Exception as exc:
            LOGGER.exception("Action %s failed: %s", command.verb, exc)
            return OK

    async def restore_ime(self) -> None:
        await self.ime.restore()

    async def _shell(self, command: str) -> None:
        ensure_allowed(command)
        try:
            await self.device.execute_shell_command(command)
        except ShellCommandRejected:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.error("Device command failed (%s): %s", command, exc)

    def _point(self, command: Command):
        coords = command.coordinates or []
        if len(coords) < 2:
            return None
        return self.mapper.map_point(coords[0], coords[1])

    async def _tap(self, command: Command) -> ExecuteResult:
        point = self._point(command)
        if point is None:
            LOGGER.warning("Tap without coordinates ignored")
            return OK

        if command.message:
            if self.on_confirmation is None:
                LOGGER.warning("No confirmation handler, declining sensitive tap: %s", command.message)
                return STOP
            if not await self.on_confirmation(command.message):
                LOGGER.info("User declined sensitive tap: %s", command.message)
                return STOP

        await self._shell(build_tap_command(*point))
        await asyncio.sleep(self.timing.tap_delay)
        return OK

    async def _double_tap(self, command: Command) -> ExecuteResult:
        point = self._point(command)
        if point is None:
            LOGGER.warning("Double tap without coordinates ignored")
            return OK
        tap = build_tap_command(*point)
        await self._shell(tap)
        await asyncio.sleep(self.timing.double_tap_interval)
        await self._shell(tap)
        await asyncio.sleep(self.timing.double_tap_delay)
        return OK

    async def _long_press(self, command: Command) -> ExecuteResult:
        point = self._point(command)
        if point is None:
            LOGGER.warning("Long press without coordinates ignored")
            return OK
        duration = command.duration if command.duration is not None else DEFAULT_LONG_PRESS_MS
        x, y = point
        await self._shell(build_swipe_command(x, y, x, y, duration))
        await asyncio.sleep(self.timing.long_press_delay)
        return OK

    async def _swipe(self, command: Command) -> ExecuteResult:
        coords = command.coordinates or []
        if len(coords) < 4:
            LOGGER.warning("Swipe needs start and end coordinates, got %s", coords)
            return OK
        x1, y1, x2, y2 = self.mapper.map_points(coords[:4])
        await self._shell(build_swipe_command(x1, y1, x2, y2, DEFAULT_SWIPE_MS))
        await asyncio.sleep(self.timing.swipe_delay)
        return OK

    async def _type(self, command: Command) -> ExecuteResult:
        if command.text is None:
            LOGGER.warning("Type without text ignored")
            return OK
        await self.ime.acquire()
        payload = base64.b64encode(command.text.encode("utf-8")).decode("ascii")
        try:
            await self.device.inject_text_base64(payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.error("Text injection failed: %s", exc)
        await asyncio.sleep(self.timing.text_input_delay)
        return OK

    async def _launch(self, command: Command) -> ExecuteResult:
        app_name = (command.text or "").strip()
        if not app_name:
            return ExecuteResult(success=False, error_message="Launch requires an app name")
        package = self.app_registry.resolve(app_name)
        if package is None:
            LOGGER.warning("App not found: %s", app_name)
            return ExecuteResult(success=False, error_message=f"App not found: {app_name}")
        await self._shell(build_launch_command(package))
        await asyncio.sleep(self.timing.launch_delay)
        return OK

    async def _key(self, keycode: str, delay: float) -> ExecuteResult:
        await self._shell(build_keyevent_command(keycode))
        await asyncio.sleep(delay)
        return OK

    async def _home(self, command: Command) -> ExecuteResult:
        return await self._key("KEYCODE_HOME", self.timing.home_delay)

    async def _back(self, command: Command) -> ExecuteResult:
        return await self._key("KEYCODE_BACK", self.timing.back_delay)

    async def _enter(self, command: Command) -> ExecuteResult:
        return await self._key("KEYCODE_ENTER", self.timing.tap_delay)

    async def _wait(self, command: Command) -> ExecuteResult:
        duration = command.duration if command.duration is not None else DEFAULT_WAIT_MS
        await asyncio.sleep(max(duration, 0) / 1000.0)
        return OK

    async def _note(self, command: Command) -> ExecuteResult:
        text = command.message or command.text
        if not text:
            LOGGER.warning("Note without text ignored")
            return OK
        if self.on_note is not None:
            self.on_note(text)
        return OK

    async def _take_over(self, command: Command) -> ExecuteResult:
        message = command.message or command.text or DEFAULT_TAKE_OVER_MESSAGE
        if self.on_take_over is None:
            LOGGER.warning("Take over requested with no handler: %s", message)
            return OK
        await self.on_take_over(message)
        return OK

    async def _interact(self, command: Command) -> ExecuteResult:
        message = command.message or command.text or DEFAULT_INTERACT_MESSAGE
        if self.on_interact is None:
            LOGGER.warning("Interaction requested with no handler: %s", message)
            return OK
        choice = await self.on_interact(message)
        LOGGER.info("User choice: %s", choice)
        return OK

    async def _call_api(self, command: Command) -> ExecuteResult:
        LOGGER.debug("call_api handled by the session")
        return OK

    async def _finish(self, command: Command) -> ExecuteResult:
        LOGGER.info("Finish: %s", command.message or DEFAULT_FINISH_MESSAGE)
        return OK
