"""Immutable per-task configuration.

A task receives one `AgentConfig` when it starts. Values are read from the
environment (after `load_dotenv()` in `main.py`) exactly once, so edits to the
environment or `.env` never leak into a task that is already running.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_MODEL = "autoglm-phone"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
AUTOMATION_IME = "com.android.adbkeyboard/.AdbIME"
MAX_STEPS = 50
MAX_CONSECUTIVE_FAILURES = 3


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class TimingConfig:
    """Delays in seconds applied around device operations and loop steps."""

    tap_delay: float = 1.0
    double_tap_delay: float = 1.0
    double_tap_interval: float = 0.1
    long_press_delay: float = 1.0
    swipe_delay: float = 1.0
    back_delay: float = 1.0
    home_delay: float = 1.0
    launch_delay: float = 1.0
    keyboard_switch_delay: float = 1.0
    text_input_delay: float = 1.0
    after_action_pause: float = 0.5
    after_failure_pause: float = 0.5
    after_empty_step_pause: float = 1.0

    @classmethod
    def immediate(cls) -> "TimingConfig":
        """Return a timing profile with every delay set to zero."""
        return cls(**{name: 0.0 for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class AgentConfig:
    """Settings snapshot handed to the control loop at task start."""

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_tokens: int = 1024
    temperature: float = 0.5
    top_p: float = 0.9
    summary_max_tokens: int = 512
    summary_temperature: float = 0.3
    request_timeout: float = 60.0
    max_retries: int = 0
    adb_serial: Optional[str] = None
    adb_host: str = "127.0.0.1"
    adb_port: int = 5037
    automation_ime: str = AUTOMATION_IME
    timing: TimingConfig = field(default_factory=TimingConfig)

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Build a config from environment variables.

        Raises:
            RuntimeError: If no API key is configured or a numeric value is malformed.
        """
        api_key = os.getenv("AGENT_API_KEY") or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("AGENT_API_KEY (or OPENAI_API_KEY) environment variable is not set")

        return cls(
            api_key=api_key,
            base_url=os.getenv("AGENT_BASE_URL") or DEFAULT_BASE_URL,
            model=os.getenv("AGENT_MODEL") or DEFAULT_MODEL,
            max_tokens=_env_int("AGENT_MAX_TOKENS", 1024),
            temperature=_env_float("AGENT_TEMPERATURE", 0.5),
            top_p=_env_float("AGENT_TOP_P", 0.9),
            request_timeout=_env_float("AGENT_REQUEST_TIMEOUT", 60.0),
            max_retries=_env_int("AGENT_MAX_RETRIES", 0),
            adb_serial=os.getenv("ADB_SERIAL") or None,
            adb_host=os.getenv("ADB_HOST") or "127.0.0.1",
            adb_port=_env_int("ADB_PORT", 5037),
            automation_ime=os.getenv("AGENT_AUTOMATION_IME") or AUTOMATION_IME,
        )
