"""PatternLearningEngine: builds and owns one set of collaborators.

    with PatternLearningEngine(EngineConfig(file_path="patterns.json")) as engine:
        result = engine.learner.learn_from_success(before, after, {"improvement": 0.9}, ctx)
        engine.learner.process_feedback(result["pattern_id"], {"action": "accepted"})

close() flushes any snapshot write that failed during autosave.
"""

from typing import Optional

from . import embeddings
from .config import EngineConfig
from .feedback import FeedbackProcessor
from .learner import PatternLearner
from .locks import KeyedLock
from .logging_config import get_logger
from .loop import LearningLoopController
from .search import SearchStrategy
from .similarity import SimilarityEngine
from .store import JsonFileBackend, PatternStore
from .tracker import EffectivenessTracker

logger = get_logger("pattern_learning.engine")


class PatternLearningEngine:

    def __init__(self, config: Optional[EngineConfig] = None, backend=None):
        self.config = config or EngineConfig()
        self.backend = backend or JsonFileBackend(self.config.file_path)

        self.similarity = SimilarityEngine(self.config.similarity_weights)
        self.search = SearchStrategy(self.similarity, self.config)
        self.store = PatternStore(self.backend, self.config, search_strategy=self.search)
        self.tracker = EffectivenessTracker(self.config)
        self.locks = KeyedLock()
        self.feedback = FeedbackProcessor(self.store, self.tracker, self.config, self.locks)
        self.learner = PatternLearner(self.store, self.tracker, self.feedback, self.config)
        self.loop = LearningLoopController(self.store, self.learner, self.config)
        self._closed = False

        logger.debug(f"Engine ready with {len(self.store)} patterns from {self.backend.location}")

    def close(self) -> None:
        if self._closed:
            return
        self.store.flush()
        self._closed = True

    def __enter__(self) -> "PatternLearningEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_stats(self) -> dict:
        return {
            "store": self.store.get_stats(),
            "effectiveness": self.tracker.get_stats(),
            "feedback": self.feedback.get_feedback_stats(),
            "learning": dict(self.learner.learning_metrics),
            "search_cache": {
                "size": self.search.cache_size,
                "hits": self.search.cache_hits,
                "misses": self.search.cache_misses,
            },
            "embeddings_available": embeddings.is_available(),
        }
