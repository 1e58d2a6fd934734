"""Build validated `adb shell` commands and enforce the command allow-list.

Only a handful of command families are ever sent to the device. Builders
validate every parameter so model output can never be spliced into a shell
line unchecked.
"""

import re

ALLOWED_COMMANDS = frozenset({"input", "monkey", "ime", "pm", "settings"})

ALLOWED_KEYEVENTS = frozenset(
    {
        "KEYCODE_HOME",
        "KEYCODE_BACK",
        "KEYCODE_ENTER",
        "KEYCODE_MENU",
        "KEYCODE_SEARCH",
        "KEYCODE_VOLUME_UP",
        "KEYCODE_VOLUME_DOWN",
        "KEYCODE_POWER",
        "KEYCODE_DPAD_UP",
        "KEYCODE_DPAD_DOWN",
        "KEYCODE_DPAD_LEFT",
        "KEYCODE_DPAD_RIGHT",
        "KEYCODE_DPAD_CENTER",
        "KEYCODE_TAB",
        "KEYCODE_SPACE",
    }
)

PACKAGE_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*(\.[a-zA-Z][a-zA-Z0-9_]*)+$")
MAX_SWIPE_DURATION_MS = 10_000


class ShellCommandRejected(Exception):
    """Raised when a command is not on the allow-list."""


def is_command_allowed(command: str) -> bool:
    """Return True when the first token of `command` is allow-listed."""
    tokens = command.split()
    return bool(tokens) and tokens[0] in ALLOWED_COMMANDS


def ensure_allowed(command: str) -> None:
    if not is_command_allowed(command):
        name = command.split()[0] if command.split() else "<empty>"
        raise ShellCommandRejected(f"Command not allowed: {name}")


def is_valid_package_name(package_name: str) -> bool:
    return bool(PACKAGE_NAME_PATTERN.match(package_name))


def build_tap_command(x: int, y: int) -> str:
    if x < 0 or y < 0:
        raise ValueError(f"Invalid tap coordinates: ({x}, {y}) must be >= 0")
    return f"input tap {x} {y}"


def build_swipe_command(x1: int, y1: int, x2: int, y2: int, duration_ms: int) -> str:
    if min(x1, y1, x2, y2) < 0:
        raise ValueError(f"Invalid swipe coordinates: ({x1}, {y1}) -> ({x2}, {y2})")
    if not 0 <= duration_ms <= MAX_SWIPE_DURATION_MS:
        raise ValueError(f"Invalid duration: {duration_ms} (must be 0-{MAX_SWIPE_DURATION_MS}ms)")
    return f"input swipe {x1} {y1} {x2} {y2} {duration_ms}"


def build_keyevent_command(keycode: str) -> str:
    if keycode not in ALLOWED_KEYEVENTS:
        raise ValueError(f"Invalid key event: {keycode} (not in allow-list)")
    return f"input keyevent {keycode}"


def build_launch_command(package_name: str) -> str:
    if not is_valid_package_name(package_name):
        raise ValueError(f"Invalid package name: {package_name}")
    return f"monkey -p {package_name} -c android.intent.category.LAUNCHER 1"


def build_set_ime_command(ime_id: str) -> str:
    if not re.match(r"^[\w.]+/[\w.$]+$", ime_id):
        raise ValueError(f"Invalid input method id: {ime_id}")
    return f"ime set {ime_id}"
