"""Device-control interface backed by ADB through `adbutils`."""

import asyncio
import logging
import re
import tempfile
from typing import Optional

from adbutils import AdbClient, AdbError

from services.device.shell_commands import build_set_ime_command, ensure_allowed

LOGGER = logging.getLogger(__name__)

_FOCUS_PATTERN = re.compile(r"(?:mCurrentFocus|mFocusedApp)=.*?\s([A-Za-z][\w.]*)/")
_BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/=]*$")


class DeviceError(RuntimeError):
    """Raised when an ADB call fails."""


class AdbDevice:
    """Privileged automation interface consumed by the agent core.

    Every public method is a coroutine; the blocking `adbutils` calls run in a
    worker thread so the control loop stays cancellable.
    """

    def __init__(self, serial: Optional[str] = None, host: str = "127.0.0.1", port: int = 5037) -> None:
        self.serial = serial
        self._client = AdbClient(host=host, port=port)
        self._device = None

    def _resolve_device(self):
        if self._device is None:
            try:
                self._device = self._client.device(serial=self.serial)
            except AdbError as exc:
                raise DeviceError(f"No ADB device available: {exc}") from exc
        return self._device

    async def _shell(self, command: str) -> str:
        def run() -> str:
            device = self._resolve_device()
            output = device.shell(command)
            return output if isinstance(output, str) else str(output)

        try:
            return await asyncio.to_thread(run)
        except AdbError as exc:
            raise DeviceError(f"adb shell failed for {command.split()[0]!r}: {exc}") from exc

    async def get_current_ime(self) -> str:
        return (await self._shell("settings get secure default_input_method")).strip()

    async def set_ime(self, ime_id: str) -> bool:
        """Switch the active input method and report whether it took effect."""
        output = await self._shell(build_set_ime_command(ime_id))
        LOGGER.debug("ime set output: %s", output.strip())
        return (await self.get_current_ime()) == ime_id

    async def is_ime_enabled(self, ime_id: str) -> bool:
        output = await self._shell("ime list -s")
        return ime_id in output.split()

    async def get_current_foreground_app(self) -> str:
        """Return the package of the focused window, or an empty string."""
        output = await self._shell("dumpsys window")
        match = _FOCUS_PATTERN.search(output)
        return match.group(1) if match else ""

    async def capture_screen_to_file(self) -> str:
        """Capture the screen into a local PNG file and return its path."""

        def grab() -> str:
            image = self._resolve_device().screenshot()
            with tempfile.NamedTemporaryFile(delete=False, suffix=".png") as tf:
                image.save(tf, format="PNG")
                return tf.name

        try:
            return await asyncio.to_thread(grab)
        except (AdbError, OSError) as exc:
            raise DeviceError(f"Screen capture failed: {exc}") from exc

    async def inject_text_base64(self, payload: str) -> None:
        """Send base64 text to the automation keyboard."""
        if not _BASE64_PATTERN.match(payload):
            raise ValueError("Text payload must be base64-encoded.")
        await self._shell(f"am broadcast -a ADB_INPUT_B64 --es msg {payload}")

    async def execute_shell_command(self, command: str) -> str:
        """Run an allow-listed shell command.

        Raises:
            ShellCommandRejected: If the command family is not allow-listed.
        """
        ensure_allowed(command)
        LOGGER.debug("Running: %s", command)
        return await self._shell(command)
