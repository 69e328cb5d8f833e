"""Shared fixtures for the pattern learning test suite.

Design principles:
- Store isolation: fresh snapshot file or in-memory backend per test
- Offline embeddings: the sentence-transformers model is never loaded
- Sample data factories: reusable pattern dicts
- No mocking core logic: tests run the real store, indexes and scorers
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep default snapshots inside tmp_path and embeddings offline."""
    monkeypatch.setenv("PATTERN_LEARNING_DIR", str(tmp_path))
    monkeypatch.delenv("PATTERN_LEARNING_FILE", raising=False)

    from pattern_learning import embeddings
    embeddings.reset()
    monkeypatch.setattr(embeddings, "_available", False)


@pytest.fixture
def mock_embeddings(monkeypatch):
    """Deterministic embeddings for testing.

    Texts sharing a word set map to the same vector, so reworded issue
    messages with the same vocabulary count as duplicates.
    """
    import hashlib

    def deterministic_embed(text):
        if not text or not text.strip():
            return None
        vector = [0.0] * 64
        for word in set(text.lower().split()):
            h = hashlib.sha256(word.encode()).digest()
            vector[h[0] % 64] += 1.0
        return tuple(vector)

    from pattern_learning import embeddings
    monkeypatch.setattr(embeddings, "embed", deterministic_embed)
    return deterministic_embed


@pytest.fixture
def config(tmp_path):
    from pattern_learning.config import EngineConfig
    return EngineConfig(file_path=tmp_path / "patterns.json")


@pytest.fixture
def memory_store(config):
    """PatternStore over an in-memory backend."""
    from pattern_learning.store import MemoryBackend, PatternStore
    return PatternStore(MemoryBackend(), config)


@pytest.fixture
def file_store(config):
    """PatternStore persisting to a JSON file under tmp_path."""
    from pattern_learning.store import JsonFileBackend, PatternStore
    return PatternStore(JsonFileBackend(config.file_path), config)


@pytest.fixture
def engine(config):
    from pattern_learning.engine import PatternLearningEngine
    from pattern_learning.store import MemoryBackend
    eng = PatternLearningEngine(config, backend=MemoryBackend())
    yield eng
    eng.close()


@pytest.fixture
def make_pattern():
    """Factory for valid pattern dicts with overridable fields."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "type": "refactoring",
            "category": "function",
            "title": f"Sample pattern {counter['n']}",
            "tags": ["sample"],
            "context": {"language": "javascript", "framework": "react", "project_type": "web"},
            "code_example": {
                "before": f"var total{counter['n']} = items.length;",
                "after": f"const total{counter['n']} = items.length;",
            },
            "metadata": {"language": "javascript", "framework": "react"},
            "effectiveness": 0.5,
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def days_ago():
    def _days_ago(n: float) -> str:
        return (datetime.now() - timedelta(days=n)).isoformat()
    return _days_ago
