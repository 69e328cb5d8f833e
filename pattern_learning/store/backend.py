"""Snapshot storage backends.

A backend holds one whole-store snapshot:
    {"patterns": [...], "metadata": {"version", "created_at", "last_modified", "total_patterns"}}

load() returns None when nothing has been saved yet; save() replaces the
snapshot in full.
"""

import copy
import json
from pathlib import Path
from typing import Optional

from ..atomicfile import atomic_write, read_json
from ..errors import SnapshotParseError

SNAPSHOT_VERSION = "2.0.0"


class JsonFileBackend:
    """Snapshot in a single JSON file, rewritten atomically on every save."""

    def __init__(self, path):
        self.path = Path(path)

    @property
    def location(self) -> str:
        return str(self.path)

    def load(self) -> Optional[dict]:
        """Read the snapshot.

        Returns:
            Snapshot dict, or None if the file does not exist

        Raises:
            SnapshotParseError: file exists but is not valid UTF-8 JSON
            OSError: file exists but cannot be read
        """
        if not self.path.exists():
            return None
        try:
            return read_json(self.path)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SnapshotParseError(f"{self.path} is not valid UTF-8 JSON: {e}")

    def save(self, snapshot: dict) -> None:
        atomic_write(self.path, snapshot)


class MemoryBackend:
    """Snapshot kept in process memory. Used by tests and ephemeral engines."""

    def __init__(self, snapshot: Optional[dict] = None):
        self.snapshot = copy.deepcopy(snapshot)
        self.saves = 0

    @property
    def location(self) -> str:
        return ":memory:"

    def load(self) -> Optional[dict]:
        return copy.deepcopy(self.snapshot)

    def save(self, snapshot: dict) -> None:
        self.snapshot = copy.deepcopy(snapshot)
        self.saves += 1
