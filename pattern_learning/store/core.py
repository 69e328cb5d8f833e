"""PatternStore: the in-memory pattern map with indexes and snapshot persistence.

Core API:
- store(pattern) -> id
- get(id) / require(id) -> Pattern
- update(id, data) -> Pattern
- delete(id)
- search(criteria) -> [Pattern]
- find_similar_patterns(target, context) -> [SimilarityMatch]
- cleanup(max_age_days, min_effectiveness, max_patterns, keep_minimum) -> summary
- export_patterns / import_patterns
- create_backup / restore_from_backup
- get_stats() -> store status

Every mutation re-indexes under the store lock and rewrites the snapshot.
Snapshot write failures are logged and remembered; flush() retries them.
"""

import json
import threading
import time
from collections import Counter
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..atomicfile import atomic_write, read_json
from ..config import EngineConfig
from ..errors import (
    DuplicateError,
    NotFoundError,
    PatternLearningError,
    PersistenceError,
    SnapshotParseError,
    ValidationError,
)
from ..logging_config import get_logger
from ..models import Pattern, PatternType, coerce_pattern, generate_pattern_id, now_iso, parse_timestamp
from .backend import SNAPSHOT_VERSION
from .filters import matches_criteria
from .index import PatternIndex

logger = get_logger("pattern_learning.store")

EXPORT_FORMATS = ("full", "minimal")
MINIMAL_FIELDS = ("id", "type", "category", "title", "tags", "effectiveness",
                  "usage_count", "success_rate")
RECENT_USE_DAYS = 7


class PatternStore:
    """Pattern map, secondary indexes and persistence behind one re-entrant lock."""

    def __init__(self, backend, config: Optional[EngineConfig] = None, search_strategy=None):
        self.backend = backend
        self.config = config or EngineConfig()
        if search_strategy is None:
            from ..search import SearchStrategy
            from ..similarity import SimilarityEngine
            search_strategy = SearchStrategy(SimilarityEngine(self.config.similarity_weights), self.config)
        self.search_strategy = search_strategy

        self._lock = threading.RLock()
        self._patterns: Dict[str, Pattern] = {}
        self._index = PatternIndex()
        self._index_stale = False
        self._last_rebuild = 0.0
        self._dirty = False
        self._created_at = now_iso()
        self.operations = Counter()

        self._load()

    # =========================================================================
    # LOADING AND PERSISTENCE
    # =========================================================================

    def _load(self) -> None:
        try:
            snapshot = self.backend.load()
            if snapshot:
                patterns, skipped = self._parse_snapshot(snapshot)
        except (ValidationError, OSError) as e:
            logger.warning(f"Could not load pattern snapshot from {self.backend.location}: {e}; starting empty")
            snapshot = None

        if snapshot:
            self._patterns = patterns
            self._created_at = (snapshot.get("metadata") or {}).get("created_at") or self._created_at
            if skipped:
                logger.warning(f"Skipped {skipped} invalid patterns while loading {self.backend.location}")
        self._rebuild_locked()
        logger.debug(f"Loaded {len(self._patterns)} patterns from {self.backend.location}")

    @staticmethod
    def _parse_snapshot(snapshot) -> tuple:
        """Return ({id: Pattern}, skipped_count). Raises ValidationError on wrong shape."""
        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("patterns"), list):
            raise ValidationError("Snapshot must be an object with a 'patterns' list")
        patterns = {}
        skipped = 0
        for item in snapshot["patterns"]:
            try:
                pattern = Pattern.from_dict(item)
                pattern.validate()
            except (ValueError, TypeError) as e:
                logger.debug(f"Skipping snapshot entry: {e}")
                skipped += 1
                continue
            patterns[pattern.id] = pattern
        return patterns, skipped

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "patterns": [p.to_dict() for p in self._patterns.values()],
                "metadata": {
                    "version": SNAPSHOT_VERSION,
                    "created_at": self._created_at,
                    "last_modified": now_iso(),
                    "total_patterns": len(self._patterns),
                },
            }

    def _persist(self) -> None:
        """Autosave. Failures are logged and left for flush() to retry."""
        self._dirty = True
        if not self.config.autosave:
            return
        try:
            self.backend.save(self.snapshot())
            self._dirty = False
        except (OSError, PersistenceError, TypeError, ValueError) as e:
            logger.error(f"Failed to save patterns to {self.backend.location}: {e}")

    def flush(self) -> bool:
        """Write the snapshot if anything is unsaved.

        Returns:
            True if a write happened, False if there was nothing pending

        Raises:
            PersistenceError: the write failed again
        """
        with self._lock:
            if not self._dirty:
                return False
            try:
                self.backend.save(self.snapshot())
            except (OSError, TypeError, ValueError) as e:
                raise PersistenceError(f"Failed to save patterns to {self.backend.location}: {e}")
            self._dirty = False
            return True

    @property
    def dirty(self) -> bool:
        return self._dirty

    # =========================================================================
    # INDEXES
    # =========================================================================

    def _rebuild_locked(self) -> None:
        self._index.rebuild(self._patterns.values())
        self._index_stale = False
        self._last_rebuild = time.monotonic()
        self.operations["index_rebuilds"] += 1
        self.search_strategy.clear_cache()

    def _index_changed(self, pattern: Optional[Pattern] = None, removed_id: Optional[str] = None) -> None:
        if self.config.index_consistency == "lazy":
            self._index_stale = True
            return
        if removed_id is not None:
            self._index.remove(removed_id)
        if pattern is not None:
            self._index.add(pattern)
        self.search_strategy.clear_cache()

    def _fresh_index(self) -> PatternIndex:
        if self._index_stale and time.monotonic() - self._last_rebuild >= self.config.index_rebuild_interval:
            self._rebuild_locked()
        return self._index

    def rebuild_indexes(self) -> None:
        with self._lock:
            self._rebuild_locked()

    def verify_indexes(self) -> dict:
        with self._lock:
            report = self._index.verify(self._patterns)
            report["stale"] = self._index_stale
            return report

    def candidate_ids(self, pattern_type=None) -> List[str]:
        """Ids from the type index, or every id when no type is given.

        Ids no longer present in the primary map are dropped.
        """
        with self._lock:
            if pattern_type is None:
                return list(self._patterns.keys())
            type_value = getattr(pattern_type, "value", pattern_type)
            ids = self._fresh_index().lookup("type", type_value)
            return [pid for pid in ids if pid in self._patterns]

    # =========================================================================
    # CRUD
    # =========================================================================

    def store(self, pattern: Union[Pattern, dict]) -> str:
        """Validate and insert a new pattern.

        Args:
            pattern: Pattern or dict; id is generated when absent

        Returns:
            The stored pattern id

        Raises:
            ValidationError: malformed pattern
            DuplicateError: id already stored
        """
        record = coerce_pattern(pattern)
        if not record.id:
            record.id = generate_pattern_id()
        record.validate()

        with self._lock:
            if record.id in self._patterns:
                raise DuplicateError(record.id)
            self._patterns[record.id] = record
            self._index_changed(pattern=record)
            self.operations["stores"] += 1
            self._persist()

        logger.debug(f"Stored pattern {record.id} ({record.type.value})")
        return record.id

    def get(self, pattern_id: str) -> Optional[Pattern]:
        with self._lock:
            pattern = self._patterns.get(pattern_id)
            return pattern.copy() if pattern else None

    def require(self, pattern_id: str) -> Pattern:
        pattern = self.get(pattern_id)
        if pattern is None:
            raise NotFoundError(pattern_id)
        return pattern

    def update(self, pattern_id: str, data: Union[Pattern, dict]) -> Pattern:
        """Merge data into an existing pattern.

        id and created_at are preserved; success_rate follows successes/usage_count.

        Raises:
            NotFoundError: unknown id
            ValidationError: merged record is invalid
        """
        with self._lock:
            existing = self._patterns.get(pattern_id)
            if existing is None:
                raise NotFoundError(pattern_id)

            if isinstance(data, Pattern):
                merged = data.to_dict()
            elif isinstance(data, dict):
                merged = existing.to_dict()
                merged.update(data)
            else:
                raise ValidationError("Update data must be a Pattern or an object")
            merged.pop("success_rate", None)
            merged.pop("successRate", None)
            merged["id"] = pattern_id
            merged["created_at"] = existing.created_at
            merged.pop("createdAt", None)
            merged["updated_at"] = now_iso()
            merged.pop("updatedAt", None)

            updated = Pattern.from_dict(merged)
            updated.validate()
            if updated.usage_count < existing.usage_count:
                raise ValidationError(
                    f"usage_count cannot decrease ({existing.usage_count} -> {updated.usage_count})"
                )

            self._patterns[pattern_id] = updated
            self._index_changed(pattern=updated, removed_id=pattern_id)
            self.operations["updates"] += 1
            self._persist()
            return updated.copy()

    def delete(self, pattern_id: str) -> None:
        with self._lock:
            if pattern_id not in self._patterns:
                raise NotFoundError(pattern_id)
            self._delete_locked(pattern_id)
            self._persist()
        logger.debug(f"Deleted pattern {pattern_id}")

    def _delete_locked(self, pattern_id: str) -> None:
        del self._patterns[pattern_id]
        self._index_changed(removed_id=pattern_id)
        self.operations["deletes"] += 1

    def all_patterns(self) -> List[Pattern]:
        with self._lock:
            return [p.copy() for p in self._patterns.values()]

    def patterns_by_type(self, pattern_type) -> List[Pattern]:
        if isinstance(pattern_type, str):
            try:
                pattern_type = PatternType(pattern_type)
            except ValueError:
                raise ValidationError(f"Unknown pattern type {pattern_type!r}")
        with self._lock:
            return [self._patterns[pid].copy() for pid in self.candidate_ids(pattern_type)]

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern_id) -> bool:
        return pattern_id in self._patterns

    # =========================================================================
    # QUERIES
    # =========================================================================

    def search(self, criteria: Optional[dict] = None) -> List[Pattern]:
        self.operations["searches"] += 1
        return self.search_strategy.search(criteria or {}, self)

    def find_similar_patterns(self, target: Union[Pattern, dict], context: Optional[dict] = None) -> list:
        self.operations["similarity_searches"] += 1
        return self.search_strategy.find_similar_patterns(target, context or {}, self)

    def filter_patterns(self, ids: List[str], criteria: dict) -> List[Pattern]:
        with self._lock:
            now = datetime.now()
            return [
                self._patterns[pid].copy() for pid in ids
                if pid in self._patterns and matches_criteria(self._patterns[pid], criteria, now)
            ]

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def cleanup(self, max_age_days: float = 30, min_effectiveness: float = 0.3,
                max_patterns: int = 1000, keep_minimum: int = 10) -> dict:
        """Remove stale low performers, then evict down to max_patterns.

        Phase 1 deletes patterns older than max_age_days AND below
        min_effectiveness. Phase 2 evicts lowest effectiveness first while the
        store is over max_patterns. Neither phase goes below keep_minimum.

        Returns:
            {"deleted": n, "remaining": n, "removed": [ids], "errors": [...]}
        """
        removed = []
        errors = []
        cutoff = datetime.now() - timedelta(days=max_age_days)

        with self._lock:
            def stamp(p):
                return parse_timestamp(p.last_used) or parse_timestamp(p.created_at) or datetime.min

            stale = [
                p for p in self._patterns.values()
                if (parse_timestamp(p.created_at) or datetime.min) < cutoff
                and p.effectiveness < min_effectiveness
            ]
            stale.sort(key=lambda p: (p.effectiveness, stamp(p)))
            for pattern in stale:
                if len(self._patterns) <= keep_minimum:
                    break
                self._try_delete(pattern.id, removed, errors)

            if len(self._patterns) > max_patterns:
                ranked = sorted(self._patterns.values(), key=lambda p: (p.effectiveness, stamp(p)))
                for pattern in ranked:
                    if len(self._patterns) <= max(max_patterns, keep_minimum):
                        break
                    self._try_delete(pattern.id, removed, errors)

            if removed:
                self._persist()
            remaining = len(self._patterns)

        logger.info(f"Cleanup removed {len(removed)} patterns, {remaining} remaining")
        return {"deleted": len(removed), "remaining": remaining, "removed": removed, "errors": errors}

    def _try_delete(self, pattern_id: str, removed: list, errors: list) -> None:
        try:
            self._delete_locked(pattern_id)
            removed.append(pattern_id)
        except (PatternLearningError, KeyError) as e:
            errors.append({"id": pattern_id, "error": str(e)})

    # =========================================================================
    # EXPORT / IMPORT / BACKUP
    # =========================================================================

    def export_patterns(self, filters: Optional[dict] = None, format: str = "full",
                        file_path=None) -> dict:
        """Export patterns matching filters, optionally writing them to file_path."""
        if format not in EXPORT_FORMATS:
            raise ValidationError(f"format must be one of {EXPORT_FORMATS}")

        patterns = self.search(filters) if filters else self.all_patterns()
        if format == "full":
            items = [p.to_dict() for p in patterns]
        else:
            items = [{k: p.to_dict()[k] for k in MINIMAL_FIELDS} for p in patterns]

        export = {
            "metadata": {
                "exported_at": now_iso(),
                "total_patterns": len(items),
                "version": SNAPSHOT_VERSION,
                "format": format,
            },
            "patterns": items,
        }
        if file_path is not None:
            try:
                atomic_write(Path(file_path), export)
            except OSError as e:
                raise PersistenceError(f"Failed to export patterns to {file_path}: {e}")
            logger.info(f"Exported {len(items)} patterns to {file_path}")
        return export

    def import_patterns(self, source, overwrite: bool = False) -> dict:
        """Import patterns from a list, an export dict, or a JSON file path.

        Each item is validated on its own; failures are collected, not raised.
        Indexes are rebuilt and the snapshot written once for the whole batch.

        Returns:
            {"imported": n, "updated": n, "skipped": n, "errors": [...]}
        """
        if isinstance(source, (str, Path)):
            source = _read_snapshot_file(Path(source))
        if isinstance(source, dict):
            source = source.get("patterns")
        if not isinstance(source, list):
            raise ValidationError("Import expects a list of patterns or an object with a 'patterns' list")

        summary = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}
        with self._lock:
            for position, item in enumerate(source):
                try:
                    pattern = Pattern.from_dict(item)
                    pattern.validate()
                except (ValueError, TypeError) as e:
                    summary["errors"].append({
                        "index": position,
                        "id": item.get("id") if isinstance(item, dict) else None,
                        "error": str(e),
                    })
                    continue

                if pattern.id in self._patterns:
                    if not overwrite:
                        summary["skipped"] += 1
                        continue
                    pattern.created_at = self._patterns[pattern.id].created_at
                    summary["updated"] += 1
                else:
                    summary["imported"] += 1
                self._patterns[pattern.id] = pattern

            self._rebuild_locked()
            self.operations["imports"] += 1
            self._persist()

        logger.info(
            f"Imported {summary['imported']} patterns "
            f"({summary['updated']} updated, {summary['skipped']} skipped, {len(summary['errors'])} errors)"
        )
        return summary

    def create_backup(self, path) -> str:
        path = Path(path)
        try:
            atomic_write(path, self.snapshot())
        except OSError as e:
            raise PersistenceError(f"Failed to write backup {path}: {e}")
        logger.info(f"Backed up {len(self)} patterns to {path}")
        return str(path)

    def restore_from_backup(self, path) -> dict:
        """Replace the store contents with a backup snapshot.

        The store is left untouched unless the whole file parses.

        Raises:
            SnapshotParseError: file is not JSON
            ValidationError: file is JSON but not a snapshot
            PersistenceError: file cannot be read
        """
        snapshot = _read_snapshot_file(Path(path))
        patterns, skipped = self._parse_snapshot(snapshot)

        with self._lock:
            self._patterns = patterns
            self._created_at = (snapshot.get("metadata") or {}).get("created_at") or self._created_at
            self._rebuild_locked()
            self.operations["restores"] += 1
            self._persist()

        logger.info(f"Restored {len(patterns)} patterns from {path} ({skipped} skipped)")
        return {"restored": len(patterns), "skipped": skipped}

    # =========================================================================
    # STATS
    # =========================================================================

    def get_stats(self) -> dict:
        with self._lock:
            patterns = list(self._patterns.values())
            index_stats = self._fresh_index().get_stats()

        total = len(patterns)
        by_type = Counter(p.type.value for p in patterns)
        by_language = Counter(p.language or "unknown" for p in patterns)
        by_framework = Counter(p.framework or "unknown" for p in patterns)

        def created(p):
            return parse_timestamp(p.created_at) or datetime.min

        recent_cutoff = datetime.now() - timedelta(days=RECENT_USE_DAYS)
        recently_used = sum(
            1 for p in patterns
            if (parse_timestamp(p.last_used) or datetime.min) >= recent_cutoff
        )

        return {
            "total_patterns": total,
            "by_type": dict(by_type),
            "by_language": dict(by_language),
            "by_framework": dict(by_framework),
            "average_effectiveness": (sum(p.effectiveness for p in patterns) / total) if total else 0.0,
            "oldest_pattern": min(patterns, key=created).id if patterns else None,
            "newest_pattern": max(patterns, key=created).id if patterns else None,
            "total_usage": sum(p.usage_count for p in patterns),
            "most_used_pattern": max(patterns, key=lambda p: p.usage_count).id if patterns else None,
            "recently_used": recently_used,
            "operations": dict(self.operations),
            "indexes": index_stats,
            "index_consistency": self.config.index_consistency,
            "location": self.backend.location,
            "unsaved_changes": self._dirty,
        }


def _read_snapshot_file(path: Path) -> dict:
    try:
        return read_json(path)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SnapshotParseError(f"{path} is not valid UTF-8 JSON: {e}")
    except OSError as e:
        raise PersistenceError(f"Cannot read {path}: {e}")
