"""File helpers."""

import os
import time
from pathlib import Path


def atomic_write(path: Path, data: bytes, mode: int | None = None) -> None:
    """Write ``data`` to ``path`` via a temp file and rename.

    The temp file lives next to the target as ``<name>.tmp.<pid>.<ns>`` so the
    rename stays on one filesystem. On failure the temp file is removed and
    the original error propagates.

    Args:
        path: Target file
        data: Bytes to write
        mode: Optional permission bits applied before the rename
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}.{time.time_ns()}")
    try:
        with open(temp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
