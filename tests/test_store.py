"""Tests for store/core.py - the pattern map, indexes and snapshot persistence.

Critical path: every learned pattern and every feedback mutation goes through
PatternStore, so validation, index consistency and crash-safe persistence are
tested against the real JSON backend where it matters.
"""

import json

import pytest


class FailingBackend:
    """Backend whose saves fail until fail is cleared."""

    def __init__(self):
        from pattern_learning.store import MemoryBackend
        self.inner = MemoryBackend()
        self.fail = True

    @property
    def location(self):
        return "failing"

    def load(self):
        return self.inner.load()

    def save(self, snapshot):
        if self.fail:
            raise OSError("disk full")
        self.inner.save(snapshot)


class TestStoreAndGet:
    """Tests for insertion, validation and lookup."""

    def test_store_assigns_id_and_defaults(self, memory_store, make_pattern):
        """Stored pattern gets a generated id and normalized defaults."""
        data = make_pattern()
        data.pop("category")
        pattern_id = memory_store.store(data)

        assert pattern_id.startswith("pattern_")
        pattern = memory_store.get(pattern_id)
        assert pattern.category == "general"
        assert pattern.usage_count == 0
        assert pattern.success_rate == 0.0
        assert pattern.created_at

    def test_generated_id_format(self):
        """Ids look like pattern_<epoch-ms>_<9 base36 chars>."""
        import re
        from pattern_learning.models import generate_pattern_id

        assert re.fullmatch(r"pattern_\d{13}_[a-z0-9]{9}", generate_pattern_id())

    def test_duplicate_id_rejected(self, memory_store, make_pattern):
        """Storing an existing id raises DuplicateError."""
        from pattern_learning.errors import DuplicateError

        memory_store.store(make_pattern(id="fixed-id"))
        with pytest.raises(DuplicateError):
            memory_store.store(make_pattern(id="fixed-id"))
        assert len(memory_store) == 1

    def test_rejects_unknown_type(self, memory_store, make_pattern):
        from pattern_learning.errors import ValidationError

        with pytest.raises(ValidationError):
            memory_store.store(make_pattern(type="magic"))

    def test_rejects_out_of_range_effectiveness(self, memory_store, make_pattern):
        from pattern_learning.errors import ValidationError

        with pytest.raises(ValidationError):
            memory_store.store(make_pattern(effectiveness=1.5))
        with pytest.raises(ValidationError):
            memory_store.store(make_pattern(effectiveness=-0.1))

    def test_rejects_placeholder_code(self, memory_store, make_pattern):
        """The placeholder code example is never stored."""
        from pattern_learning.errors import ValidationError
        from pattern_learning.models import PLACEHOLDER_CODE

        with pytest.raises(ValidationError):
            memory_store.store(make_pattern(code_example={"before": PLACEHOLDER_CODE, "after": "x = 1"}))
        with pytest.raises(ValidationError):
            memory_store.store({"type": "general"})
        assert len(memory_store) == 0

    def test_rejects_unserializable_context(self, file_store, config, make_pattern):
        """A value json cannot encode is refused up front and later writes still land."""
        from datetime import datetime
        from pattern_learning.errors import ValidationError

        with pytest.raises(ValidationError):
            file_store.store(make_pattern(context={"when": datetime.now()}))
        with pytest.raises(ValidationError):
            file_store.store(make_pattern(metadata={"ratio": float("nan")}))
        assert len(file_store) == 0

        pattern_id = file_store.store(make_pattern())

        assert not file_store.dirty
        data = json.loads(config.file_path.read_text())
        assert [p["id"] for p in data["patterns"]] == [pattern_id]

    def test_update_rejects_unserializable_metadata(self, memory_store, make_pattern):
        from pattern_learning.errors import ValidationError

        pattern_id = memory_store.store(make_pattern())
        with pytest.raises(ValidationError):
            memory_store.update(pattern_id, {"metadata": {"seen": {1, 2}}})
        assert memory_store.get(pattern_id).metadata == make_pattern()["metadata"]

    def test_accepts_camel_case_keys(self, memory_store):
        """Records written with camelCase keys are normalized."""
        pattern_id = memory_store.store({
            "type": "security",
            "codeExample": {"before": "eval(input)", "after": "JSON.parse(input)"},
            "usageCount": 4,
            "successRate": 0.5,
            "context": {"projectType": "web", "fileType": "js"},
        })

        pattern = memory_store.get(pattern_id)
        assert pattern.usage_count == 4
        assert pattern.successes == 2.0
        assert pattern.success_rate == 0.5
        assert pattern.context["project_type"] == "web"
        assert pattern.context["file_type"] == "js"

    def test_get_returns_copy(self, memory_store, make_pattern):
        """Mutating a returned pattern does not touch the store."""
        pattern_id = memory_store.store(make_pattern())
        pattern = memory_store.get(pattern_id)
        pattern.effectiveness = 0.99

        assert memory_store.get(pattern_id).effectiveness == 0.5

    def test_get_unknown_returns_none(self, memory_store):
        assert memory_store.get("nope") is None

    def test_require_unknown_raises(self, memory_store):
        from pattern_learning.errors import NotFoundError

        with pytest.raises(NotFoundError) as exc:
            memory_store.require("nope")
        assert str(exc.value) == "Pattern nope not found"
        assert isinstance(exc.value, KeyError)


class TestUpdateAndDelete:
    """Tests for merge semantics and removal."""

    def test_update_merges_and_preserves_identity(self, memory_store, make_pattern):
        pattern_id = memory_store.store(make_pattern())
        original = memory_store.get(pattern_id)

        updated = memory_store.update(pattern_id, {"title": "Renamed", "id": "hijack", "created_at": "1999-01-01"})

        assert updated.id == pattern_id
        assert updated.created_at == original.created_at
        assert updated.title == "Renamed"
        assert updated.code_example == original.code_example

    def test_update_recomputes_success_rate(self, memory_store, make_pattern):
        """success_rate always follows successes / usage_count."""
        pattern_id = memory_store.store(make_pattern())

        updated = memory_store.update(pattern_id, {"usage_count": 4, "successes": 3, "success_rate": 0.1})

        assert updated.success_rate == 0.75

    def test_update_rejects_decreasing_usage(self, memory_store, make_pattern):
        from pattern_learning.errors import ValidationError

        pattern_id = memory_store.store(make_pattern(usage_count=5))
        with pytest.raises(ValidationError):
            memory_store.update(pattern_id, {"usage_count": 2})

    def test_update_unknown_raises(self, memory_store):
        from pattern_learning.errors import NotFoundError

        with pytest.raises(NotFoundError):
            memory_store.update("missing", {"title": "x"})

    def test_update_revalidates(self, memory_store, make_pattern):
        from pattern_learning.errors import ValidationError

        pattern_id = memory_store.store(make_pattern())
        with pytest.raises(ValidationError):
            memory_store.update(pattern_id, {"effectiveness": 2.0})
        assert memory_store.get(pattern_id).effectiveness == 0.5

    def test_delete_then_update_fails(self, memory_store, make_pattern):
        """Deleted ids are never resurrected by update."""
        from pattern_learning.errors import NotFoundError

        pattern_id = memory_store.store(make_pattern())
        memory_store.delete(pattern_id)

        assert pattern_id not in memory_store
        with pytest.raises(NotFoundError):
            memory_store.update(pattern_id, {"title": "back"})
        with pytest.raises(NotFoundError):
            memory_store.delete(pattern_id)


class TestIndexes:
    """Tests for secondary index maintenance."""

    def test_effectiveness_bucket(self):
        from pattern_learning.store.index import effectiveness_bucket

        assert effectiveness_bucket(0.72) == "0.7"
        assert effectiveness_bucket(0.75) == "0.8"
        assert effectiveness_bucket(0.0) == "0.0"
        assert effectiveness_bucket(1.0) == "1.0"

    def test_indexes_follow_updates(self, memory_store, make_pattern):
        """Changing type or effectiveness moves the id between buckets."""
        pattern_id = memory_store.store(make_pattern(type="refactoring", effectiveness=0.5))

        memory_store.update(pattern_id, {"type": "security", "effectiveness": 0.9})

        assert pattern_id in memory_store.candidate_ids("security")
        assert pattern_id not in memory_store.candidate_ids("refactoring")
        stats = memory_store.get_stats()["indexes"]
        assert stats["effectiveness"] == {"0.9": 1}
        assert memory_store.verify_indexes()["consistent"]

    def test_language_falls_back_to_context(self, memory_store, make_pattern):
        memory_store.store(make_pattern(metadata={}, context={"language": "python"}))
        memory_store.store(make_pattern(metadata={}, context={}))

        languages = memory_store.get_stats()["indexes"]["language"]
        assert languages == {"python": 1, "unknown": 1}

    def test_delete_removes_from_all_indexes(self, memory_store, make_pattern):
        pattern_id = memory_store.store(make_pattern())
        memory_store.delete(pattern_id)

        report = memory_store.verify_indexes()
        assert report["consistent"]
        assert memory_store.get_stats()["indexes"]["type"] == {}

    def test_lazy_mode_defers_reindex(self, config, make_pattern):
        """In lazy mode new ids reach the type index only after a rebuild."""
        from pattern_learning.store import MemoryBackend, PatternStore

        store = PatternStore(MemoryBackend(), config.with_overrides(
            index_consistency="lazy", index_rebuild_interval=3600))
        pattern_id = store.store(make_pattern(type="security"))

        assert store.verify_indexes()["stale"]
        assert pattern_id not in store.candidate_ids("security")
        assert pattern_id in store.candidate_ids(None)

        store.rebuild_indexes()
        assert pattern_id in store.candidate_ids("security")
        assert store.verify_indexes()["consistent"]

    def test_lazy_mode_rebuilds_after_interval(self, config, make_pattern):
        from pattern_learning.store import MemoryBackend, PatternStore

        store = PatternStore(MemoryBackend(), config.with_overrides(
            index_consistency="lazy", index_rebuild_interval=0))
        pattern_id = store.store(make_pattern(type="security"))

        assert pattern_id in store.candidate_ids("security")

    def test_lazy_readers_drop_deleted_ids(self, config, make_pattern):
        from pattern_learning.store import MemoryBackend, PatternStore

        store = PatternStore(MemoryBackend(), config.with_overrides(
            index_consistency="lazy", index_rebuild_interval=3600))
        pattern_id = store.store(make_pattern(type="security"))
        store.rebuild_indexes()
        store.delete(pattern_id)

        assert store.candidate_ids("security") == []
        assert store.verify_indexes()["orphaned"] == [pattern_id]


class TestSearch:
    """Tests for criteria search and sorting."""

    def test_sort_by_usage_count_desc(self, memory_store, make_pattern):
        for usage in (3, 10, 0, 7):
            memory_store.store(make_pattern(usage_count=usage))

        results = memory_store.search({"sort": {"field": "usage_count", "direction": "desc"}})
        counts = [p.usage_count for p in results]

        assert counts == sorted(counts, reverse=True)
        assert counts[0] == 10

    def test_sort_accepts_camel_case_field(self, memory_store, make_pattern):
        for usage in (3, 1, 2):
            memory_store.store(make_pattern(usage_count=usage))

        results = memory_store.search({"sort": {"field": "usageCount", "direction": "asc"}})
        assert [p.usage_count for p in results] == [1, 2, 3]

    def test_default_sort_is_effectiveness_desc(self, memory_store, make_pattern):
        for eff in (0.2, 0.9, 0.5):
            memory_store.store(make_pattern(effectiveness=eff))

        assert [p.effectiveness for p in memory_store.search({})] == [0.9, 0.5, 0.2]

    def test_filters_combine(self, memory_store, make_pattern):
        memory_store.store(make_pattern(type="security", effectiveness=0.9, tags=["xss", "dom"]))
        memory_store.store(make_pattern(type="security", effectiveness=0.2, tags=["xss"]))
        memory_store.store(make_pattern(type="readability", effectiveness=0.9, tags=["xss", "dom"]))

        results = memory_store.search({"type": "security", "min_effectiveness": 0.5, "tags": ["xss", "dom"]})

        assert len(results) == 1
        assert results[0].effectiveness == 0.9

    def test_text_and_context_filters(self, memory_store, make_pattern):
        memory_store.store(make_pattern(
            title="Avoid innerHTML",
            context={"language": "javascript", "file_type": "js", "directory": "src/ui/widgets",
                     "dependencies": ["react", "lodash"]},
        ))
        memory_store.store(make_pattern(title="Other", context={"language": "python", "file_type": "py"}))

        assert len(memory_store.search({"search": "innerhtml"})) == 1
        assert len(memory_store.search({"file_type": "js"})) == 1
        assert len(memory_store.search({"directory": "src/ui"})) == 1
        assert len(memory_store.search({"dependencies": ["lodash", "vue"]})) == 1
        assert len(memory_store.search({"context": {"language": "python"}})) == 1
        assert len(memory_store.search({"language": "python"})) == 1

    def test_date_filters(self, memory_store, make_pattern, days_ago):
        memory_store.store(make_pattern(created_at=days_ago(40), last_used=days_ago(20)))
        memory_store.store(make_pattern(created_at=days_ago(2), last_used=days_ago(1)))

        assert len(memory_store.search({"max_age_days": 10})) == 1
        assert len(memory_store.search({"created_before": days_ago(30)})) == 1
        assert len(memory_store.search({"usedAfter": days_ago(5)})) == 1

    def test_limit(self, memory_store, make_pattern):
        for _ in range(5):
            memory_store.store(make_pattern())

        assert len(memory_store.search({"limit": 2})) == 2

    def test_bad_sort_field_rejected(self, memory_store):
        from pattern_learning.errors import ValidationError

        with pytest.raises(ValidationError):
            memory_store.search({"sort": {"field": "code_example"}})


class TestPersistence:
    """Tests for the JSON snapshot lifecycle."""

    def test_snapshot_round_trip(self, file_store, config, make_pattern):
        from pattern_learning.store import JsonFileBackend, PatternStore

        pattern_id = file_store.store(make_pattern(usage_count=4, successes=3))

        data = json.loads(config.file_path.read_text())
        assert data["metadata"]["total_patterns"] == 1
        assert data["metadata"]["version"]

        reloaded = PatternStore(JsonFileBackend(config.file_path), config)
        pattern = reloaded.get(pattern_id)
        assert pattern.success_rate == 0.75
        assert pattern_id in reloaded.candidate_ids("refactoring")

    def test_missing_file_starts_empty(self, file_store):
        assert len(file_store) == 0

    def test_unreadable_file_starts_empty(self, config):
        from pattern_learning.store import JsonFileBackend, PatternStore

        config.file_path.parent.mkdir(parents=True, exist_ok=True)
        config.file_path.write_text("{not json")

        store = PatternStore(JsonFileBackend(config.file_path), config)
        assert len(store) == 0

    def test_non_utf8_file_starts_empty(self, config, make_pattern):
        from pattern_learning.store import JsonFileBackend, PatternStore

        config.file_path.parent.mkdir(parents=True, exist_ok=True)
        config.file_path.write_bytes(b"\xff\xfe\x80\x81 binary")

        store = PatternStore(JsonFileBackend(config.file_path), config)
        assert len(store) == 0

        store.store(make_pattern())
        assert json.loads(config.file_path.read_text(encoding="utf-8"))["metadata"]["total_patterns"] == 1

    def test_success_rate_only_entries(self, config, make_pattern, monkeypatch):
        """Entries without successes get credit from success_rate in half steps; lossy ones are logged."""
        from pattern_learning import models
        from pattern_learning.store import JsonFileBackend, PatternStore

        warnings = []
        monkeypatch.setattr(models.logger, "warning", warnings.append)
        config.file_path.parent.mkdir(parents=True, exist_ok=True)
        config.file_path.write_text(json.dumps({
            "patterns": [
                dict(make_pattern(), id="exact", usage_count=4, success_rate=0.5),
                dict(make_pattern(), id="lossy", usage_count=3, success_rate=0.4),
            ],
            "metadata": {},
        }))

        store = PatternStore(JsonFileBackend(config.file_path), config)

        assert store.get("exact").successes == 2.0
        assert store.get("lossy").successes == 1.0
        assert len(warnings) == 1
        assert "lossy" in warnings[0]

    def test_invalid_entries_skipped_on_load(self, config, make_pattern):
        from pattern_learning.store import JsonFileBackend, PatternStore

        config.file_path.parent.mkdir(parents=True, exist_ok=True)
        config.file_path.write_text(json.dumps({
            "patterns": [dict(make_pattern(), id="good"), {"type": "unknown-type", "id": "bad"}],
            "metadata": {},
        }))

        store = PatternStore(JsonFileBackend(config.file_path), config)
        assert "good" in store
        assert "bad" not in store

    def test_failed_autosave_is_retried_by_flush(self, config, make_pattern):
        """Autosave errors are swallowed; flush() writes once the disk recovers."""
        from pattern_learning.errors import PersistenceError
        from pattern_learning.store import PatternStore

        backend = FailingBackend()
        store = PatternStore(backend, config)
        pattern_id = store.store(make_pattern())

        assert store.get(pattern_id) is not None
        assert store.dirty
        with pytest.raises(PersistenceError):
            store.flush()

        backend.fail = False
        assert store.flush() is True
        assert not store.dirty
        assert backend.inner.snapshot["metadata"]["total_patterns"] == 1

    def test_autosave_encoding_failure_is_retried_by_flush(self, config, make_pattern):
        """A snapshot the backend cannot encode leaves the store dirty instead of raising."""
        from pattern_learning.errors import PersistenceError
        from pattern_learning.store import MemoryBackend, PatternStore

        class EncodingFailureBackend(MemoryBackend):
            fail = True

            def save(self, snapshot):
                if self.fail:
                    raise TypeError("Object of type set is not JSON serializable")
                super().save(snapshot)

        backend = EncodingFailureBackend()
        store = PatternStore(backend, config)
        pattern_id = store.store(make_pattern())

        assert pattern_id in store
        assert store.dirty
        with pytest.raises(PersistenceError):
            store.flush()

        backend.fail = False
        store.store(make_pattern())
        assert not store.dirty
        assert backend.snapshot["metadata"]["total_patterns"] == 2

    def test_autosave_disabled_defers_writes(self, config, make_pattern):
        from pattern_learning.store import MemoryBackend, PatternStore

        backend = MemoryBackend()
        store = PatternStore(backend, config.with_overrides(autosave=False))
        store.store(make_pattern())

        assert backend.saves == 0
        store.flush()
        assert backend.saves == 1


class TestCleanup:
    """Tests for two-phase cleanup."""

    def test_keep_minimum_respected(self, memory_store, make_pattern, days_ago):
        for _ in range(15):
            memory_store.store(make_pattern(effectiveness=0.1, created_at=days_ago(60)))

        result = memory_store.cleanup(max_age_days=30, min_effectiveness=0.3, max_patterns=1000, keep_minimum=10)

        assert result["deleted"] == 5
        assert result["remaining"] == 10
        assert len(memory_store) == 10
        assert len(result["removed"]) == 5

    def test_phase_one_needs_old_and_weak(self, memory_store, make_pattern, days_ago):
        old_weak = memory_store.store(make_pattern(effectiveness=0.1, created_at=days_ago(60)))
        old_strong = memory_store.store(make_pattern(effectiveness=0.9, created_at=days_ago(60)))
        new_weak = memory_store.store(make_pattern(effectiveness=0.1))

        result = memory_store.cleanup(max_age_days=30, min_effectiveness=0.3, keep_minimum=0)

        assert result["removed"] == [old_weak]
        assert old_strong in memory_store
        assert new_weak in memory_store

    def test_phase_two_evicts_lowest_effectiveness(self, memory_store, make_pattern):
        ids = {eff: memory_store.store(make_pattern(effectiveness=eff)) for eff in (0.1, 0.2, 0.3, 0.4, 0.5)}

        result = memory_store.cleanup(max_patterns=3, keep_minimum=2)

        assert result["deleted"] == 2
        assert set(result["removed"]) == {ids[0.1], ids[0.2]}
        assert len(memory_store) == 3

    def test_phase_two_never_below_keep_minimum(self, memory_store, make_pattern):
        for eff in (0.1, 0.2, 0.3, 0.4):
            memory_store.store(make_pattern(effectiveness=eff))

        result = memory_store.cleanup(max_patterns=1, keep_minimum=3)

        assert result["remaining"] == 3


class TestExportImportBackup:
    """Tests for moving patterns between stores and files."""

    def test_export_full_and_minimal(self, memory_store, make_pattern):
        memory_store.store(make_pattern())

        full = memory_store.export_patterns()
        minimal = memory_store.export_patterns(format="minimal")

        assert full["metadata"]["total_patterns"] == 1
        assert full["metadata"]["format"] == "full"
        assert "code_example" in full["patterns"][0]
        assert "code_example" not in minimal["patterns"][0]
        assert set(minimal["patterns"][0]) == {
            "id", "type", "category", "title", "tags", "effectiveness", "usage_count", "success_rate"
        }

    def test_export_to_file_then_import(self, memory_store, make_pattern, tmp_path, config):
        from pattern_learning.store import MemoryBackend, PatternStore

        memory_store.store(make_pattern(type="security"))
        memory_store.store(make_pattern(type="readability"))
        out = tmp_path / "export.json"
        memory_store.export_patterns(filters={"type": "security"}, file_path=out)

        other = PatternStore(MemoryBackend(), config)
        result = other.import_patterns(out)

        assert result == {"imported": 1, "updated": 0, "skipped": 0, "errors": []}
        assert other.search({})[0].type.value == "security"
        assert other.verify_indexes()["consistent"]

    def test_import_collects_item_errors(self, memory_store, make_pattern):
        existing = memory_store.store(make_pattern())
        items = [
            dict(make_pattern(), id=existing, title="replacement"),
            make_pattern(),
            {"type": "nonsense"},
            "not a pattern",
        ]

        result = memory_store.import_patterns(items)

        assert result["imported"] == 1
        assert result["skipped"] == 1
        assert len(result["errors"]) == 2
        assert memory_store.get(existing).title != "replacement"

    @pytest.mark.parametrize("bad", [
        {"context": "js"},
        {"metadata": ["language", "python"]},
        {"tags": "a,b"},
        {"usage_count": "3", "success_rate": 0.5},
        {"usage_count": 2, "successes": "many"},
        {"usage_count": 2, "success_rate": "high"},
    ])
    def test_import_wrong_field_shape_is_item_error(self, memory_store, make_pattern, bad):
        """A malformed field fails its own item; the rest of the batch is imported."""
        items = [make_pattern(), dict(make_pattern(), id="malformed", **bad), make_pattern()]

        result = memory_store.import_patterns(items)

        assert result["imported"] == 2
        assert [(e["index"], e["id"]) for e in result["errors"]] == [(1, "malformed")]
        assert len(memory_store) == 2

    def test_import_overwrite(self, memory_store, make_pattern):
        existing = memory_store.store(make_pattern())

        result = memory_store.import_patterns([dict(make_pattern(), id=existing, title="replacement")],
                                              overwrite=True)

        assert result["updated"] == 1
        assert memory_store.get(existing).title == "replacement"

    def test_backup_and_restore(self, memory_store, make_pattern, tmp_path):
        kept = memory_store.store(make_pattern())
        backup = tmp_path / "backup.json"
        memory_store.create_backup(backup)
        memory_store.store(make_pattern())

        result = memory_store.restore_from_backup(backup)

        assert result == {"restored": 1, "skipped": 0}
        assert len(memory_store) == 1
        assert kept in memory_store

    def test_restore_non_json_leaves_store_unchanged(self, memory_store, make_pattern, tmp_path):
        from pattern_learning.errors import SnapshotParseError

        pattern_id = memory_store.store(make_pattern())
        bad = tmp_path / "bad.json"
        bad.write_text("this is not json")

        with pytest.raises(SnapshotParseError):
            memory_store.restore_from_backup(bad)

        assert len(memory_store) == 1
        assert pattern_id in memory_store

    def test_restore_non_utf8_leaves_store_unchanged(self, memory_store, make_pattern, tmp_path):
        from pattern_learning.errors import SnapshotParseError

        pattern_id = memory_store.store(make_pattern())
        binary = tmp_path / "binary.json"
        binary.write_bytes(b"\xff\xfe\x80\x81")

        with pytest.raises(SnapshotParseError):
            memory_store.restore_from_backup(binary)
        with pytest.raises(SnapshotParseError):
            memory_store.import_patterns(binary)

        assert len(memory_store) == 1
        assert pattern_id in memory_store

    def test_restore_wrong_shape_leaves_store_unchanged(self, memory_store, make_pattern, tmp_path):
        from pattern_learning.errors import ValidationError

        memory_store.store(make_pattern())
        bad = tmp_path / "list.json"
        bad.write_text(json.dumps([1, 2, 3]))

        with pytest.raises(ValidationError):
            memory_store.restore_from_backup(bad)
        assert len(memory_store) == 1


class TestStats:

    def test_stats_summary(self, memory_store, make_pattern, days_ago):
        first = memory_store.store(make_pattern(created_at=days_ago(10), usage_count=1))
        busiest = memory_store.store(make_pattern(type="security", usage_count=9, last_used=days_ago(1)))

        stats = memory_store.get_stats()

        assert stats["total_patterns"] == 2
        assert stats["by_type"] == {"refactoring": 1, "security": 1}
        assert stats["by_language"] == {"javascript": 2}
        assert stats["oldest_pattern"] == first
        assert stats["newest_pattern"] == busiest
        assert stats["most_used_pattern"] == busiest
        assert stats["total_usage"] == 10
        assert stats["recently_used"] == 1
        assert stats["operations"]["stores"] == 2
        assert stats["average_effectiveness"] == pytest.approx(0.5)
