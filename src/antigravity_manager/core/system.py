import sys
from functools import lru_cache
from pathlib import Path

import platformdirs


APP_DIR_NAME = "AntigravityManager"


def get_user_data_dir() -> Path:
    """Get the per-user data directory using platformdirs.

    Returns:
        Path to the application data directory (cross-platform).
    """
    return Path(platformdirs.user_data_dir(APP_DIR_NAME, appauthor=False))


def get_platform() -> str:
    """Return ``darwin``, ``win32`` or ``linux``."""
    if sys.platform.startswith("win"):
        return "win32"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


@lru_cache
def is_wsl() -> bool:
    """Detect Windows Subsystem for Linux.

    Returns:
        True when running inside WSL.
    """
    if get_platform() != "linux":
        return False
    try:
        return "microsoft" in Path("/proc/version").read_text().lower()
    except OSError:
        return False
