"""Pattern Learning - remembers code transformations and learns which ones work.

Core modules:
- models: Pattern records, pattern types, feedback actions
- store: Pattern map with secondary indexes and JSON snapshot persistence
- similarity: Weighted code/context/metadata/structure similarity
- search: Candidate selection, relevance ranking, result cache
- tracker: Per-pattern moving-average effectiveness and trends
- feedback: Accept/reject/modify/rate processing
- learner: Facade for learning, recall and feedback
- loop: Analysis results to issue-prevention patterns
- embeddings: Semantic text similarity with string-matching fallback
- engine: Composition root wiring one set of collaborators
- config, paths, logging_config, atomicfile, locks: ambient plumbing
"""

__version__ = "2.0.0"

from .config import EngineConfig
from .engine import PatternLearningEngine
from .errors import (
    DuplicateError,
    NotFoundError,
    PatternLearningError,
    PersistenceError,
    SnapshotParseError,
    ValidationError,
)
from .models import (
    Accepted,
    CodeExample,
    FeedbackRecord,
    Modified,
    Pattern,
    PatternType,
    Rated,
    Rejected,
    parse_feedback,
)

__all__ = [
    "EngineConfig",
    "PatternLearningEngine",
    "Pattern",
    "PatternType",
    "CodeExample",
    "Accepted",
    "Rejected",
    "Modified",
    "Rated",
    "FeedbackRecord",
    "parse_feedback",
    "PatternLearningError",
    "ValidationError",
    "NotFoundError",
    "DuplicateError",
    "PersistenceError",
    "SnapshotParseError",
]
