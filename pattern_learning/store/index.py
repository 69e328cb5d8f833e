"""Secondary indexes over the pattern map.

Four multi-maps of id lists:
- type: pattern type value
- effectiveness: effectiveness rounded to the nearest 0.1, as a string ("0.7")
- language: metadata.language, else context.language, else "unknown"
- framework: metadata.framework, else context.framework, else "unknown"

The index remembers which keys each id was filed under, so remove() never
needs the old record.
"""

import math
from typing import Dict, Iterable, List

from ..models import Pattern

INDEX_NAMES = ("type", "effectiveness", "language", "framework")
UNKNOWN = "unknown"


def effectiveness_bucket(value: float) -> str:
    return f"{math.floor(value * 10 + 0.5) / 10:.1f}"


def index_keys(pattern: Pattern) -> Dict[str, str]:
    return {
        "type": pattern.type.value,
        "effectiveness": effectiveness_bucket(pattern.effectiveness),
        "language": pattern.language or UNKNOWN,
        "framework": pattern.framework or UNKNOWN,
    }


class PatternIndex:

    def __init__(self):
        self._maps: Dict[str, Dict[str, List[str]]] = {name: {} for name in INDEX_NAMES}
        self._entries: Dict[str, Dict[str, str]] = {}

    def add(self, pattern: Pattern) -> None:
        """File pattern under its current keys, moving it if already indexed."""
        if pattern.id in self._entries:
            self.remove(pattern.id)
        keys = index_keys(pattern)
        for name, key in keys.items():
            self._maps[name].setdefault(key, []).append(pattern.id)
        self._entries[pattern.id] = keys

    def remove(self, pattern_id: str) -> bool:
        keys = self._entries.pop(pattern_id, None)
        if keys is None:
            return False
        for name, key in keys.items():
            bucket = self._maps[name].get(key)
            if bucket and pattern_id in bucket:
                bucket.remove(pattern_id)
                if not bucket:
                    del self._maps[name][key]
        return True

    def clear(self) -> None:
        for name in INDEX_NAMES:
            self._maps[name].clear()
        self._entries.clear()

    def rebuild(self, patterns: Iterable[Pattern]) -> None:
        self.clear()
        for pattern in patterns:
            self.add(pattern)

    def lookup(self, name: str, key: str) -> List[str]:
        if name not in self._maps:
            raise KeyError(f"Unknown index {name!r}")
        return list(self._maps[name].get(key, []))

    def keys(self, name: str) -> List[str]:
        return list(self._maps[name].keys())

    def __contains__(self, pattern_id: str) -> bool:
        return pattern_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def verify(self, patterns: Dict[str, Pattern]) -> dict:
        """Compare the index against the primary map.

        Returns:
            {"consistent": bool, "orphaned": [...], "missing": [...], "misplaced": [...]}
            orphaned: ids indexed but not stored
            missing: ids stored but not indexed
            misplaced: ids filed under keys that no longer match the record
        """
        orphaned = sorted(pid for pid in self._entries if pid not in patterns)
        missing = sorted(pid for pid in patterns if pid not in self._entries)
        misplaced = []
        for pid, pattern in patterns.items():
            if pid not in self._entries:
                continue
            expected = index_keys(pattern)
            for name, key in expected.items():
                if pid not in self._maps[name].get(key, []):
                    misplaced.append({"id": pid, "index": name, "expected": key})
        return {
            "consistent": not (orphaned or missing or misplaced),
            "orphaned": orphaned,
            "missing": missing,
            "misplaced": misplaced,
        }

    def get_stats(self) -> dict:
        return {
            name: {key: len(ids) for key, ids in sorted(buckets.items())}
            for name, buckets in self._maps.items()
        }
