"""Identify the target application among running processes.

Electron apps spawn many helper processes, and the manager itself may share
part of the target's name, so matching combines a per-platform signature
with several exclusion lists.
"""

import re
from dataclasses import dataclass

from antigravity_manager.core.system import get_platform


HELPER_NAME_MARKERS = (
    "helper",
    "plugin",
    "renderer",
    "gpu",
    "crashpad",
    "utility",
    "audio",
    "sandbox",
    "language_server",
)

DEV_MODE_MARKERS = (
    "electron-forge",
    "node_modules/electron",
    "node_modules\\electron",
)


@dataclass
class ProcessInfo:
    """Minimal process snapshot used for matching."""

    pid: int
    name: str
    cmdline: str


class ProcessMatcher:
    """Decides whether a process is the target application's main process."""

    def __init__(
        self,
        app_name: str = "Antigravity",
        platform: str | None = None,
        own_pid: int | None = None,
    ) -> None:
        self.app_name = app_name
        self.platform = platform or get_platform()
        self.own_pid = own_pid

        name = re.escape(app_name.lower())
        self._manager_re = re.compile(rf"\b{name}[-\s]?manager\b")
        self._manager_name_re = re.compile(r"\bmanager\b")
        self._mac_app_re = re.compile(rf"\b{name}\.app\b")
        self._win_exe_re = re.compile(rf"\b{name}\.exe\b")
        self._exact_name_re = re.compile(rf"^{name}(\.exe)?$")
        self._path_re = re.compile(rf"[/\\]{name}\b")
        self._dev_markers = (
            *DEV_MODE_MARKERS,
            f"{app_name.lower()}manager",
            f"{app_name.lower()}-tools",
        )

    @property
    def exe_name(self) -> str:
        return f"{self.app_name}.exe"

    def is_manager(self, proc: ProcessInfo) -> bool:
        name = proc.name.lower()
        cmdline = proc.cmdline.lower()
        return bool(
            self._manager_re.search(name)
            or self._manager_re.search(cmdline)
            or self._manager_name_re.search(name)
        )

    def is_helper(self, proc: ProcessInfo) -> bool:
        name = proc.name.lower()
        cmdline = proc.cmdline.lower()
        if "--type=" in cmdline or "crashpad" in cmdline:
            return True
        return any(marker in name for marker in HELPER_NAME_MARKERS)

    def is_dev_mode(self, proc: ProcessInfo) -> bool:
        cmdline = proc.cmdline.lower()
        return any(marker in cmdline for marker in self._dev_markers)

    def matches_signature(self, proc: ProcessInfo) -> bool:
        name = proc.name.lower()
        cmdline = proc.cmdline.lower()
        if self.platform == "darwin":
            return bool(
                self._mac_app_re.search(cmdline) or self._exact_name_re.match(name)
            )
        if self.platform == "win32":
            return bool(
                self._win_exe_re.search(name) or self._exact_name_re.match(name)
            )
        return bool(self._exact_name_re.match(name) or self._path_re.search(cmdline))

    def is_target(self, proc: ProcessInfo) -> bool:
        """True for the application's main process and nothing else."""
        if self.own_pid is not None and proc.pid == self.own_pid:
            return False
        if self.is_manager(proc) or self.is_helper(proc) or self.is_dev_mode(proc):
            return False
        return self.matches_signature(proc)
