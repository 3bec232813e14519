"""Tests for target process detection rules."""

import pytest

from antigravity_manager.process.patterns import ProcessInfo, ProcessMatcher


def proc(name: str, cmdline: str = "", pid: int = 100) -> ProcessInfo:
    return ProcessInfo(pid=pid, name=name, cmdline=cmdline)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("platform", "process", "expected"),
    [
        ("linux", proc("antigravity", "/usr/share/antigravity/antigravity"), True),
        ("linux", proc("electron", "/opt/Antigravity/antigravity --no-sandbox"), True),
        ("linux", proc("code", "/usr/bin/code"), False),
        (
            "darwin",
            proc("Electron", "/Applications/Antigravity.app/Contents/MacOS/Electron"),
            True,
        ),
        ("darwin", proc("Antigravity"), True),
        ("win32", proc("Antigravity.exe", "C:\\Programs\\Antigravity\\Antigravity.exe"), True),
        ("win32", proc("Code.exe"), False),
    ],
)
def test_matches_main_process(platform: str, process: ProcessInfo, expected: bool) -> None:
    matcher = ProcessMatcher("Antigravity", platform=platform)
    assert matcher.is_target(process) is expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "process",
    [
        proc("antigravity", "/usr/share/antigravity/antigravity --type=renderer"),
        proc("antigravity", "/usr/share/antigravity/antigravity --type=gpu-process"),
        proc("Antigravity Helper (GPU)", "/Applications/Antigravity.app/Helper"),
        proc("chrome_crashpad_handler", "/usr/share/antigravity/chrome_crashpad_handler"),
        proc("language_server_linux_x64", "/usr/share/antigravity/language_server"),
    ],
)
def test_helpers_are_excluded(process: ProcessInfo) -> None:
    assert not ProcessMatcher("Antigravity", platform="linux").is_target(process)


@pytest.mark.unit
@pytest.mark.parametrize(
    "process",
    [
        proc("python", "/home/u/.venv/bin/antigravity-manager serve"),
        proc("Antigravity Manager", "/Applications/Antigravity Manager.app"),
        proc("node", "/src/antigravitymanager/node_modules/electron/dist/electron ."),
    ],
)
def test_manager_and_dev_builds_are_excluded(process: ProcessInfo) -> None:
    assert not ProcessMatcher("Antigravity", platform="linux").is_target(process)


@pytest.mark.unit
def test_own_pid_is_excluded() -> None:
    matcher = ProcessMatcher("Antigravity", platform="linux", own_pid=4242)

    assert not matcher.is_target(proc("antigravity", "/usr/bin/antigravity", pid=4242))
    assert matcher.is_target(proc("antigravity", "/usr/bin/antigravity", pid=4243))


@pytest.mark.unit
def test_exe_name() -> None:
    assert ProcessMatcher("Antigravity", platform="win32").exe_name == "Antigravity.exe"
