"""
Crash-safe file persistence.

Every write lands in a uniquely named temporary sibling first and is then
renamed onto the destination, so readers only ever observe the previous
complete file or the new complete file.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from app.config.constants import WALLET_FILE_MODE


def atomic_write(path: Path, data: bytes, mode: int = WALLET_FILE_MODE) -> None:
    """
    Atomically replace ``path`` with ``data``.

    The temporary file is created in the destination directory (same
    filesystem, so ``os.replace`` is atomic), chmod'ed to ``mode`` before any
    byte is written, flushed and fsync'ed, then renamed into place. On any
    failure the temporary file is removed and the original error propagates.

    Args:
        path: Destination file
        data: Full file contents
        mode: Permission bits for the destination

    Raises:
        OSError: Any filesystem failure, unchanged
    """
    path = Path(path)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            os.fchmod(f.fileno(), mode)
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_json(path: Path, payload: Any, mode: int = WALLET_FILE_MODE) -> None:
    """Serialize ``payload`` as indented JSON and write it atomically."""
    data = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
    atomic_write(path, data, mode)
