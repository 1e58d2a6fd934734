import pytest

from services.device.shell_commands import (
    ShellCommandRejected,
    build_keyevent_command,
    build_launch_command,
    build_set_ime_command,
    build_swipe_command,
    build_tap_command,
    ensure_allowed,
    is_command_allowed,
)


def test_builders_produce_allow_listed_commands():
    commands = [
        build_tap_command(10, 20),
        build_swipe_command(1, 2, 3, 4, 300),
        build_keyevent_command("KEYCODE_BACK"),
        build_launch_command("com.android.settings"),
        build_set_ime_command("com.android.adbkeyboard/.AdbIME"),
    ]

    assert all(is_command_allowed(command) for command in commands)
    assert commands[3] == "monkey -p com.android.settings -c android.intent.category.LAUNCHER 1"


@pytest.mark.parametrize(
    "build",
    [
        lambda: build_tap_command(-1, 5),
        lambda: build_swipe_command(0, 0, 1, 1, 20_000),
        lambda: build_keyevent_command("KEYCODE_CAMERA; reboot"),
        lambda: build_launch_command("com.evil; rm -rf /"),
        lambda: build_set_ime_command("not an ime"),
    ],
)
def test_builders_reject_bad_input(build):
    with pytest.raises(ValueError):
        build()


def test_non_allow_listed_command_is_rejected():
    assert not is_command_allowed("reboot")
    assert not is_command_allowed("")
    with pytest.raises(ShellCommandRejected):
        ensure_allowed("rm -rf /sdcard")
