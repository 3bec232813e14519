"""Default install and state locations of the target application."""

import os
import shutil
from pathlib import Path

from antigravity_manager.config.settings import ProcessSettings
from antigravity_manager.core.system import get_platform


def default_executable_path(app_name: str, platform: str | None = None) -> Path | None:
    """Best guess at the application's executable for this platform."""
    platform = platform or get_platform()
    if platform == "darwin":
        return Path(f"/Applications/{app_name}.app/Contents/MacOS/Electron")
    if platform == "win32":
        local = os.environ.get("LOCALAPPDATA")
        if not local:
            return None
        return Path(local) / "Programs" / app_name / f"{app_name}.exe"
    found = shutil.which(app_name.lower())
    if found:
        return Path(found)
    for candidate in (
        Path(f"/usr/share/{app_name.lower()}/{app_name.lower()}"),
        Path(f"/opt/{app_name}/{app_name.lower()}"),
    ):
        if candidate.exists():
            return candidate
    return None


def default_state_db_path(app_name: str, platform: str | None = None) -> Path:
    """Location of the application's ``state.vscdb`` global storage."""
    platform = platform or get_platform()
    if platform == "darwin":
        base = Path.home() / "Library" / "Application Support" / app_name
    elif platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming")) / app_name
    else:
        config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
        base = Path(config_home) / app_name
    return base / "User" / "globalStorage" / "state.vscdb"


def resolve_executable_path(settings: ProcessSettings) -> Path | None:
    return settings.executable_path or default_executable_path(settings.app_name)


def resolve_state_db_path(settings: ProcessSettings) -> Path:
    return settings.state_db_path or default_state_db_path(settings.app_name)
