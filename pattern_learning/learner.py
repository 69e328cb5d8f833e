"""PatternLearner: the facade callers use to learn, recall and give feedback.

API:
- learn_from_success(before_code, after_code, metrics, context) -> result
- get_similar_patterns(pattern_type, context, limit) -> suggestions
- get_pattern_suggestions(context, limit) -> suggestions
- process_feedback(pattern_id, feedback) -> result
- update_pattern_effectiveness(feedback) -> result (legacy payload shape)
- cleanup_patterns() -> cleanup summary
- get_effectiveness_stats() -> tracker + learning counters
"""

import math
from typing import List, Optional

from .config import EngineConfig
from .errors import ValidationError
from .extraction import extract_features
from .logging_config import get_logger
from .models import Accepted, Rated, Rejected, PatternType, clamp, now_iso

logger = get_logger("pattern_learning.learner")

POSITIVE_OUTCOMES = ("success", "accepted", "positive", "helped")
NEGATIVE_OUTCOMES = ("failure", "rejected", "negative", "failed")
QUERY_KEYS = ("project_type", "projectType", "framework", "language")


class PatternLearner:

    def __init__(self, store, tracker, feedback, config: Optional[EngineConfig] = None):
        self.store = store
        self.tracker = tracker
        self.feedback = feedback
        self.config = config or EngineConfig()
        self.learning_metrics = {
            "total_patterns": 0,
            "successful_patterns": 0,
            "feedback_events": 0,
            "last_learning": None,
        }

    def learn_from_success(self, before_code: str, after_code: str, metrics: dict,
                           context: Optional[dict] = None) -> dict:
        """Store a before/after pair as a new pattern.

        Every call stores a pattern; improvement only sets its initial
        effectiveness and success credit.

        Args:
            before_code: Original code
            after_code: Improved code
            metrics: Must hold a finite numeric "improvement" (clamped to [0, 1])
            context: language / framework / project_type / file_type / ...

        Returns:
            {"success": True, "pattern_id", "effectiveness", "extracted"}
        """
        if context is None:
            context = {}
        if not isinstance(context, dict):
            raise ValidationError("context must be an object")
        if not isinstance(metrics, dict):
            raise ValidationError("metrics must be an object with a numeric 'improvement'")
        improvement = metrics.get("improvement")
        if isinstance(improvement, bool) or not isinstance(improvement, (int, float)):
            raise ValidationError("metrics must contain a numeric 'improvement'")
        if not math.isfinite(improvement):
            raise ValidationError(f"improvement must be a finite number, got {improvement}")
        if not isinstance(before_code, str) or not isinstance(after_code, str):
            raise ValidationError("before_code and after_code must be strings")

        features = extract_features(before_code, after_code)
        effectiveness = clamp(float(improvement))
        above_threshold = improvement > self.config.learning_threshold

        pattern_id = self.store.store({
            "type": features["type"].value,
            "category": features["category"],
            "title": context.get("title") or "",
            "description": context.get("description") or "",
            "tags": list(context.get("tags") or []),
            "context": context,
            "code_example": {"before": before_code, "after": after_code},
            "metadata": {
                "language": context.get("language") or features["language"],
                "framework": context.get("framework") or features["framework"],
                "complexity": features["complexity"],
                "lines_changed": features["lines_changed"],
            },
            "effectiveness": effectiveness,
            "usage_count": 1,
            "successes": 1.0 if above_threshold else 0.5,
            "last_used": now_iso(),
        })
        self.tracker.update_pattern(self.store.require(pattern_id))

        self.learning_metrics["total_patterns"] += 1
        if above_threshold:
            self.learning_metrics["successful_patterns"] += 1
            logger.info(f"Learned pattern {pattern_id} ({features['type'].value})")
        else:
            logger.info(f"Stored pattern {pattern_id} below learning threshold ({improvement})")
        self.learning_metrics["last_learning"] = now_iso()

        extracted = dict(features, type=features["type"].value)
        return {
            "success": True,
            "pattern_id": pattern_id,
            "effectiveness": effectiveness,
            "extracted": [extracted],
        }

    # =========================================================================
    # RECALL
    # =========================================================================

    def get_similar_patterns(self, pattern_type, context: Optional[dict] = None, limit: int = 10) -> List[dict]:
        """Suggestions of the given type ranked against context.

        Returns:
            [{"pattern_id", "confidence", "similarity", "pattern"}], confidence = rank
        """
        context = context or {}
        try:
            pattern_type = PatternType(getattr(pattern_type, "value", pattern_type))
        except ValueError:
            raise ValidationError(f"Unknown pattern type {pattern_type!r}")

        target = {"type": pattern_type.value, "context": context}
        code = context.get("code")
        if isinstance(code, str) and code.strip():
            target["code_example"] = {"before": code, "after": code}

        options = {key: context[key] for key in QUERY_KEYS if context.get(key)}
        options["max_results"] = limit
        for key in ("min_similarity", "minSimilarity"):
            if key in context:
                options["min_similarity"] = context[key]

        matches = self.store.find_similar_patterns(target, options)
        return [
            {
                "pattern_id": m.pattern.id,
                "confidence": m.rank,
                "similarity": m.similarity,
                "pattern": m.pattern.to_dict(),
            }
            for m in matches
        ]

    def get_pattern_suggestions(self, context: Optional[dict] = None, limit: int = 10) -> List[dict]:
        context = context or {}
        return self.get_similar_patterns(context.get("type") or PatternType.GENERAL.value, context, limit)

    def get_learned_patterns(self, criteria: Optional[dict] = None) -> List[dict]:
        return [p.to_dict() for p in self.store.search(criteria or {})]

    # =========================================================================
    # FEEDBACK
    # =========================================================================

    def process_feedback(self, pattern_id: str, feedback) -> dict:
        result = self.feedback.process_feedback(pattern_id, feedback)
        self.learning_metrics["feedback_events"] += 1
        return result

    def update_pattern_effectiveness(self, feedback: dict) -> dict:
        """Translate a {pattern_id, success?, outcome?, user_rating?} payload into feedback.

        user_rating wins over success, which wins over outcome.
        """
        if not isinstance(feedback, dict) or not feedback.get("pattern_id"):
            raise ValidationError("feedback must be an object with a pattern_id")

        rating = feedback.get("user_rating")
        success = feedback.get("success")
        outcome = feedback.get("outcome")
        if rating is not None:
            action = Rated(value=rating)
        elif isinstance(success, bool):
            action = Accepted() if success else Rejected()
        elif isinstance(outcome, str) and outcome.lower() in POSITIVE_OUTCOMES:
            action = Accepted()
        elif isinstance(outcome, str) and outcome.lower() in NEGATIVE_OUTCOMES:
            action = Rejected()
        else:
            raise ValidationError("feedback needs user_rating, a boolean success, or a known outcome")

        return self.process_feedback(feedback["pattern_id"], action)

    # =========================================================================
    # MAINTENANCE AND STATS
    # =========================================================================

    def cleanup_patterns(self) -> dict:
        result = self.store.cleanup(
            max_age_days=self.config.pattern_lifetime_days,
            min_effectiveness=self.config.cleanup_min_effectiveness,
            max_patterns=self.config.max_patterns,
            keep_minimum=self.config.keep_minimum,
        )
        for pattern_id in result["removed"]:
            self.tracker.forget(pattern_id)
            self.feedback.forget(pattern_id)
        return result

    def get_effectiveness_stats(self) -> dict:
        stats = self.tracker.get_stats()
        stats["learning_metrics"] = dict(self.learning_metrics)
        stats["feedback"] = self.feedback.get_feedback_stats()
        stats["most_effective"] = self.tracker.get_most_effective_patterns(5)
        return stats

    def export_patterns(self, filters: Optional[dict] = None, format: str = "full", file_path=None) -> dict:
        return self.store.export_patterns(filters=filters, format=format, file_path=file_path)

    def import_patterns(self, source, overwrite: bool = False) -> dict:
        return self.store.import_patterns(source, overwrite=overwrite)
