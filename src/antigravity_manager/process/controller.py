"""Cross-platform lifecycle control of the target application.

Features:
- Detection of the main process via psutil, excluding helpers and ourselves
- Two-stage close: ask the app to quit, then kill what is left
- Bounded wait for exit
- Detached relaunch via URI scheme or executable
"""

import asyncio
import os
import subprocess
from pathlib import Path
from typing import Any

import psutil
import structlog

from antigravity_manager.config.settings import ProcessSettings
from antigravity_manager.core.async_utils import run_in_executor, wait_for_condition
from antigravity_manager.core.system import get_platform, is_wsl
from antigravity_manager.exceptions import ProcessExitTimeoutError, ProcessStartError
from antigravity_manager.process.paths import resolve_executable_path
from antigravity_manager.process.patterns import ProcessInfo, ProcessMatcher


logger = structlog.get_logger(__name__)

# (command timeout, grace period) for the graceful quit request
GRACEFUL_QUIT_TIMING = {
    "darwin": (3.0, 2.0),
    "win32": (2.0, 1.0),
    "linux": (2.0, 1.0),
}


def _snapshot(proc: psutil.Process) -> ProcessInfo:
    info = proc.info
    name = info.get("name") or ""
    cmdline = info.get("cmdline") or []
    return ProcessInfo(pid=info["pid"], name=name, cmdline=" ".join(cmdline))


class ProcessController:
    """Detects, stops and starts the target application."""

    def __init__(
        self,
        settings: ProcessSettings,
        platform: str | None = None,
        matcher: ProcessMatcher | None = None,
    ) -> None:
        self._settings = settings
        self.platform = platform or get_platform()
        self.matcher = matcher or ProcessMatcher(
            settings.app_name, self.platform, own_pid=os.getpid()
        )

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def _find_targets_sync(self) -> list[psutil.Process]:
        targets: list[psutil.Process] = []
        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            snapshot = _snapshot(proc)
            if self.matcher.is_target(snapshot):
                targets.append(proc)
        return targets

    async def find_targets(self) -> list[psutil.Process]:
        return await run_in_executor(self._find_targets_sync)

    async def is_running(self) -> bool:
        """Whether the application's main process is alive.

        Enumeration failures are logged and reported as not running.
        """
        try:
            return bool(await self.find_targets())
        except (psutil.Error, OSError) as e:
            # psutil.Error: process table access failed
            # OSError: /proc unreadable
            logger.error("process_enumeration_failed", error=str(e))
            return False

    # ------------------------------------------------------------------
    # Stopping
    # ------------------------------------------------------------------

    async def _run_command(self, args: list[str], timeout: float) -> int | None:
        """Run a helper command, returning its exit code or None on timeout."""
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            return await asyncio.wait_for(proc.wait(), timeout=timeout)
        except TimeoutError:
            proc.kill()
            logger.warning("process_command_timeout", command=args[0], timeout=timeout)
            return None

    def _graceful_command(self) -> list[str] | None:
        if self.platform == "darwin":
            return [
                "osascript",
                "-e",
                f'tell application "{self._settings.app_name}" to quit',
            ]
        if self.platform == "win32":
            return ["taskkill", "/IM", self.matcher.exe_name, "/T"]
        return None

    async def _request_quit(self) -> None:
        timeout, grace = GRACEFUL_QUIT_TIMING.get(self.platform, (2.0, 1.0))
        command = self._graceful_command()
        if command is not None:
            try:
                await self._run_command(command, timeout)
            except OSError as e:
                logger.debug("graceful_quit_command_failed", error=str(e))
        else:
            for proc in await self.find_targets():
                try:
                    proc.terminate()
                except psutil.Error as e:
                    logger.debug("process_terminate_failed", pid=proc.pid, error=str(e))
        await asyncio.sleep(grace)

    def _kill_targets_sync(self) -> int:
        killed = 0
        for proc in self._find_targets_sync():
            try:
                proc.kill()
                killed += 1
            except psutil.Error as e:
                # NoSuchProcess: already gone; AccessDenied: not ours
                logger.debug("process_kill_failed", pid=proc.pid, error=str(e))
        return killed

    def _fallback_kill_command(self) -> list[str]:
        if self.platform == "win32":
            return ["taskkill", "/F", "/IM", self.matcher.exe_name, "/T"]
        if self.platform == "darwin":
            return ["pkill", "-9", "-f", f"{self._settings.app_name}.app/Contents/MacOS"]
        executable = resolve_executable_path(self._settings)
        return ["pkill", "-9", "-f", str(executable or self._settings.app_name.lower())]

    async def close(self) -> None:
        """Stop the application: graceful quit request, then force kill.

        If the kill path itself fails, a platform kill command is used as a
        last resort. Errors from that fallback are logged, not raised.
        """
        logger.info("process_close_start", app=self._settings.app_name)
        try:
            await self._request_quit()
            killed = await run_in_executor(self._kill_targets_sync)
            logger.info("process_close_complete", force_killed=killed)
        except (psutil.Error, OSError) as e:
            logger.warning("process_close_failed_using_fallback", error=str(e))
            try:
                await self._run_command(self._fallback_kill_command(), timeout=5.0)
            except OSError as fallback_error:
                logger.error("process_fallback_kill_failed", error=str(fallback_error))

    async def wait_for_exit(self, timeout: float | None = None) -> None:
        """Poll until the application is gone.

        Raises:
            ProcessExitTimeoutError: Still running after ``timeout`` seconds
        """
        timeout = self._settings.stop_timeout_seconds if timeout is None else timeout

        async def _exited() -> bool:
            return not await self.is_running()

        if not await wait_for_condition(
            _exited, timeout=timeout, interval=self._settings.poll_interval_seconds
        ):
            raise ProcessExitTimeoutError(timeout)

    # ------------------------------------------------------------------
    # Starting
    # ------------------------------------------------------------------

    def _spawn_detached(self, args: list[str]) -> None:
        kwargs: dict[str, Any] = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
            "close_fds": True,
        }
        if self.platform == "win32":
            kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS  # type: ignore[attr-defined]
                | subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]
            )
        else:
            kwargs["start_new_session"] = True
        subprocess.Popen(args, **kwargs)  # noqa: S603

    def _uri_command(self) -> list[str]:
        uri = self._settings.launch_uri
        if self.platform == "darwin":
            return ["open", uri]
        if self.platform == "win32":
            return ["cmd", "/c", "start", "", uri]
        if is_wsl():
            return ["cmd.exe", "/c", "start", "", uri]
        return ["xdg-open", uri]

    def _executable_command(self) -> list[str]:
        if self.platform == "darwin":
            return ["open", "-a", self._settings.app_name]
        executable = resolve_executable_path(self._settings)
        if executable is None:
            raise ProcessStartError(
                f"Cannot locate the {self._settings.app_name} executable; "
                "set AGM_PROCESS__EXECUTABLE_PATH"
            )
        if self.platform == "win32":
            return ["cmd", "/c", "start", "", str(executable)]
        if is_wsl() and str(executable).startswith("/mnt/"):
            return ["cmd.exe", "/c", "start", "", _wsl_to_windows_path(executable)]
        return [str(executable)]

    async def _launch_uri(self) -> bool:
        try:
            code = await self._run_command(self._uri_command(), timeout=5.0)
        except OSError as e:
            logger.debug("uri_launch_failed", error=str(e))
            return False
        return code == 0

    async def start(self, use_uri: bool = True) -> None:
        """Launch the application detached, unless it is already running.

        Raises:
            ProcessStartError: Neither the URI nor the executable launched
        """
        if await self.is_running():
            logger.info("process_already_running", app=self._settings.app_name)
            return

        if use_uri and await self._launch_uri():
            logger.info("process_started", method="uri")
            return

        command = self._executable_command()
        try:
            await run_in_executor(self._spawn_detached, command)
        except OSError as e:
            raise ProcessStartError(
                f"Failed to launch {self._settings.app_name}: {e}"
            ) from e
        logger.info("process_started", method="executable", command=command[0])


def _wsl_to_windows_path(path: Path) -> str:
    """Translate ``/mnt/c/Users/...`` to ``C:\\Users\\...``."""
    parts = path.parts  # ("/", "mnt", "c", ...)
    drive = parts[2].upper()
    return f"{drive}:\\" + "\\".join(parts[3:])

