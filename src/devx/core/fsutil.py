"""Atomic file replacement helpers."""

import os
import tempfile
from pathlib import Path


def atomic_write_bytes(path: Path, data: bytes, mode: int = 0o644) -> None:
    """Write data to path so readers see either the old or the new bytes.

    Writes a temp file in the target directory, fsyncs it and renames it over
    the target. Creates the parent directory if needed.

    Args:
        path: Destination file.
        data: Full file contents.
        mode: Permission bits for the resulting file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def atomic_write_text(path: Path, text: str, mode: int = 0o644) -> None:
    """UTF-8 text variant of atomic_write_bytes."""
    atomic_write_bytes(path, text.encode("utf-8"), mode)
