"""
Atomic file writing with fsync to prevent corrupt secret files.

Pattern:
  1. Write to temporary file in the same directory
  2. Call fsync to flush to disk
  3. Hard-link onto the final name, which fails if it already exists

Partial writes are never visible.  ``atomic_create_bytes`` never replaces an
existing file, so two writers racing for the same path resolve to exactly one
winner.
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path


def _write_temp(path: Path, content: bytes, mode: int) -> str:
    """Write *content* to a fsynced temp file next to *path* and return its name."""
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory keeps the link on one filesystem
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )

    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
    return temp_path


def atomic_create_bytes(path: Path, content: bytes, mode: int = 0o600) -> None:
    """
    Atomically create *path* with *content*; never overwrites.

    Raises FileExistsError if *path* already exists.  The temp file is
    hard-linked onto the final name, which the kernel refuses when the
    target exists.
    """
    temp_path = _write_temp(path, content, mode)
    try:
        os.link(temp_path, path)
    finally:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
