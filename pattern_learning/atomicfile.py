"""Crash-safe atomic JSON operations with temp-file + rename pattern."""

import json
import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, data: dict) -> None:
    """Write JSON file atomically (for new files or complete overwrites).

    1. Write to temp file in same directory
    2. fsync to ensure data is on disk
    3. Atomic rename (POSIX guarantees this is atomic on same filesystem)

    A crash at any point leaves either the old or new file intact, never a
    partial write.

    Args:
        path: JSON file path
        data: Data dict to write
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.stem}.",
        suffix=".tmp"
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as tf:
            json.dump(data, tf, indent=2)
            tf.flush()
            os.fsync(tf.fileno())

        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path and os.path.exists(temp_path):
            try:
                os.unlink(temp_path)
            except OSError:
                pass


def read_json(path: Path) -> dict:
    """Read a JSON file. Raises json.JSONDecodeError / UnicodeDecodeError / OSError to the caller."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)
