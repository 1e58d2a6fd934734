"""Shared fakes for the device and the reasoning service."""

import os
import tempfile
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

from models.agent_config import AgentConfig, TimingConfig
from services.device.app_registry import AppRegistry
from services.device.shell_commands import ensure_allowed

SYSTEM_IME = "com.google.android.inputmethod.latin/com.android.inputmethod.latin.LatinIME"


class FakeDevice:
    """In-memory stand-in for `AdbDevice` that records every call."""

    def __init__(self, tmp_dir: str, ime: str = SYSTEM_IME, size=(1080, 2400)) -> None:
        self.tmp_dir = tmp_dir
        self.ime = ime
        self.size = size
        self.foreground = "com.android.settings"
        self.shell_commands: List[str] = []
        self.injected: List[str] = []
        self.set_ime_calls: List[str] = []
        self.set_ime_result = True
        self.fail_capture = False
        self.captures = 0

    async def get_current_ime(self) -> str:
        return self.ime

    async def set_ime(self, ime_id: str) -> bool:
        self.set_ime_calls.append(ime_id)
        if self.set_ime_result:
            self.ime = ime_id
        return self.set_ime_result

    async def is_ime_enabled(self, ime_id: str) -> bool:
        return True

    async def get_current_foreground_app(self) -> str:
        return self.foreground

    async def capture_screen_to_file(self) -> str:
        if self.fail_capture:
            return "ERROR: device offline"
        self.captures += 1
        fd, path = tempfile.mkstemp(suffix=".png", dir=self.tmp_dir)
        os.close(fd)
        Image.new("RGB", self.size, color=(20, 40, 60)).save(path, format="PNG")
        return path

    async def inject_text_base64(self, payload: str) -> None:
        self.injected.append(payload)

    async def execute_shell_command(self, command: str) -> str:
        ensure_allowed(command)
        self.shell_commands.append(command)
        return ""


class FakeReasoningClient:
    """Return scripted replies; an exception in the script is raised instead."""

    def __init__(self, config: AgentConfig, replies: Optional[List[Any]] = None, default: Any = None) -> None:
        self.config = config
        self.replies = list(replies or [])
        self.default = default
        self.requests: List[Dict[str, Any]] = []

    async def complete(self, messages, **params) -> str:
        self.requests.append({"messages": messages, "params": params})
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        if reply is None:
            raise AssertionError("No scripted reply left")
        return reply


@pytest.fixture
def config() -> AgentConfig:
    return AgentConfig(api_key="test-key", timing=TimingConfig.immediate())


@pytest.fixture
def device(tmp_path) -> FakeDevice:
    return FakeDevice(str(tmp_path))


@pytest.fixture
def registry() -> AppRegistry:
    return AppRegistry({"Settings": "com.android.settings", "WeChat": "com.tencent.mm"})


@pytest.fixture
def make_reasoning(config):
    def factory(replies=None, default=None) -> FakeReasoningClient:
        return FakeReasoningClient(config, replies, default)

    return factory
