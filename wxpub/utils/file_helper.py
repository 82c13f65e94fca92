"""Filesystem helpers."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def ensure_parent(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def read_text(path: Path, *, encoding: str = "utf-8") -> str:
    # newline="" keeps CRLF frontmatter intact for byte-exact rewrites
    with path.open("r", encoding=encoding, newline="") as fp:
        return fp.read()


def atomic_write_text(path: Path, data: str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``data`` via a sibling temp file and rename."""
    atomic_write_bytes(path, data.encode(encoding))


def atomic_write_bytes(path: Path, data: bytes) -> None:
    ensure_parent(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        if path.exists():
            os.chmod(tmp_path, path.stat().st_mode & 0o777)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def write_new_bytes(path: Path, data: bytes) -> None:
    """Create ``path`` exclusively; fails if it already exists.

    A write that fails halfway removes the partial file again.
    """
    fp = path.open("xb")
    try:
        with fp:
            fp.write(data)
    except BaseException:
        path.unlink(missing_ok=True)
        raise


__all__ = [
    "atomic_write_bytes",
    "atomic_write_text",
    "ensure_parent",
    "read_text",
    "write_new_bytes",
]
