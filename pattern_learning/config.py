"""Engine configuration.

One dataclass carries every tunable. Defaults match the values the enhancement
pipeline has always used; PATTERN_LEARNING_* environment variables override
them through EngineConfig.from_env().
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, Optional

from .errors import ValidationError
from .paths import get_patterns_file

INDEX_MODES = ("eager", "lazy")

DEFAULT_SIMILARITY_WEIGHTS = {
    "code": 0.4,
    "context": 0.3,
    "metadata": 0.2,
    "structure": 0.1,
}


@dataclass
class EngineConfig:
    file_path: Optional[Path] = None
    autosave: bool = True

    # Capacity and cleanup
    max_patterns: int = 1000
    keep_minimum: int = 10
    pattern_lifetime_days: float = 30.0
    cleanup_min_effectiveness: float = 0.3

    # Learning and feedback
    learning_threshold: float = 0.8
    feedback_weight: float = 0.3
    modification_weight: float = 0.2
    feedback_history_size: int = 100

    # Search
    min_similarity: float = 0.3
    max_results: int = 10
    cache_size: int = 100
    similarity_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_SIMILARITY_WEIGHTS)
    )

    # Effectiveness tracking
    min_usage_for_reliability: int = 5
    history_size: int = 1000

    # Indexes
    index_consistency: str = "eager"
    index_rebuild_interval: float = 60.0

    # Loop controller
    duplicate_threshold: float = 0.85

    def __post_init__(self):
        if self.file_path is None:
            self.file_path = get_patterns_file()
        self.file_path = Path(self.file_path)
        self.validate()

    def validate(self) -> None:
        """Raise ValidationError on out-of-range settings."""
        if self.index_consistency not in INDEX_MODES:
            raise ValidationError(f"index_consistency must be one of {INDEX_MODES}")
        for name in ("learning_threshold", "feedback_weight", "min_similarity",
                     "cleanup_min_effectiveness", "duplicate_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be within [0, 1], got {value}")
        for name in ("max_patterns", "max_results", "cache_size",
                     "min_usage_for_reliability", "history_size", "feedback_history_size"):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be >= 1")
        if self.keep_minimum < 0:
            raise ValidationError("keep_minimum must be >= 0")
        missing = set(DEFAULT_SIMILARITY_WEIGHTS) - set(self.similarity_weights)
        if missing:
            raise ValidationError(f"similarity_weights missing {sorted(missing)}")
        if any(w < 0 for w in self.similarity_weights.values()):
            raise ValidationError("similarity_weights must be non-negative")

    def with_overrides(self, **overrides) -> "EngineConfig":
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        """Build a config from PATTERN_LEARNING_<FIELD> env vars plus overrides."""
        values = {}
        for f in fields(cls):
            if f.name in ("file_path", "similarity_weights"):
                continue
            raw = os.environ.get(f"PATTERN_LEARNING_{f.name.upper()}")
            if raw is None:
                continue
            values[f.name] = _coerce(f.name, raw, f.default)
        values.update(overrides)
        return cls(**values)


def _coerce(name: str, raw: str, default):
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError:
        raise ValidationError(f"PATTERN_LEARNING_{name.upper()}={raw!r} is not a number")
    return raw
