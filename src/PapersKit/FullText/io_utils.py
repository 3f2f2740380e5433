"""Atomic file write utilities for the extraction cache.

**Responsibilities**
--------------------
- Write a byte payload to disk atomically using temporary file + fsync + rename
- Clean up temporary files on failures
- Provide the primitive under every cache write (store writes, bundle unpacks)

**Safety & Reliability**
------------------------
- **Atomic writes**: Temporary file + fsync + os.replace ensures no partial files
- **Directory fsync**: Ensures rename is durable on crashes
- **Cross-filesystem support**: Temporary file lives in the destination directory
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

__all__ = ["atomic_write_bytes"]

logger = logging.getLogger(__name__)


def atomic_write_bytes(dest_path: Union[str, Path], data: bytes) -> int:
    """Write ``data`` to ``dest_path`` atomically.

    Either the entire payload is visible at ``dest_path`` or the previous
    contents (if any) are left untouched.

    Args:
        dest_path: Destination file. Parent directories are created.
        data: Payload to persist.

    Returns:
        Number of bytes written.

    Raises:
        OSError: If file I/O fails (permission denied, disk full, etc.).
    """
    dest = os.fspath(dest_path)
    dest_dir = os.path.dirname(dest) or "."
    os.makedirs(dest_dir, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=dest_dir, prefix=".part-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb", buffering=0) as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, dest)

        dir_fd = os.open(dest_dir, os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise

    logger.debug(f"Wrote {len(data)} bytes to {dest}")
    return len(data)
