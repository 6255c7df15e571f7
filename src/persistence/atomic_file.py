"""
Atomic File Persistence — Replace files without partial writes.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def write_atomic(path: Path, data: bytes, mode: int = 0o644) -> None:
    """
    Replace `path` with `data`.

    Uses atomic write (write to temp, fsync, then rename) so readers see
    either the old file or the new one, never a mix. Every call gets its
    own temp file, so concurrent writers never share one.

    Args:
        path: File to replace
        data: Complete new contents
        mode: Permission bits for a newly created file (an existing
            file's mode is preserved)
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists():
        mode = path.stat().st_mode & 0o777

    # Temp file in the same directory so the rename stays on one filesystem
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    temp_path = Path(temp_name)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_path, mode)

        # Atomic rename
        temp_path.replace(path)
    except OSError:
        if temp_path.exists():
            temp_path.unlink()
        raise

    _fsync_dir(path.parent)
    logger.debug(f"Wrote {len(data)} bytes → {path}")


def _fsync_dir(directory: Path) -> None:
    """Persist a rename by syncing the directory entry."""
    try:
        fd = os.open(directory, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError as e:
        # The new contents are already in place
        logger.warning(f"Could not sync directory {directory}: {e}")
