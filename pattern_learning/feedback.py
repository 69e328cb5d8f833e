"""Feedback processing: the one path that mutates pattern trust.

Actions:
- accepted: effectiveness += feedback_weight * 0.1 (max 1), success credit 1
- rejected: effectiveness -= feedback_weight * 0.1 (min 0), success credit 0
- modified: effectiveness unchanged, success credit 0.5; a child pattern
  carrying the modified code is stored with parent_id, and the parent records
  it under metadata.superseded_by
- rated r: effectiveness = (1 - w) * old + w * (r - 1) / 4, credit 1 if r >= 3

Every action counts one use, so success_rate = successes / usage_count stays
exact. Each read-modify-write holds the per-pattern lock.
"""

import threading
from collections import Counter, deque
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from .config import EngineConfig
from .locks import KeyedLock
from .logging_config import get_logger
from .models import (
    Accepted,
    FeedbackAction,
    FeedbackRecord,
    Modified,
    Pattern,
    Rated,
    Rejected,
    clamp,
    now_iso,
    parse_feedback,
    parse_timestamp,
)

logger = get_logger("pattern_learning.feedback")

STEP_SCALE = 0.1
MODIFICATION_SCALE = 0.05
MODIFIED_CREDIT = 0.5
TREND_DAYS = 7
TREND_MIN_SAMPLES = 5
POSITIVE_RATIO = 0.6
NEGATIVE_RATIO = 0.4


class FeedbackProcessor:

    def __init__(self, store, tracker, config: Optional[EngineConfig] = None,
                 locks: Optional[KeyedLock] = None):
        self.store = store
        self.tracker = tracker
        self.config = config or EngineConfig()
        self.locks = locks or KeyedLock()
        self._log_lock = threading.Lock()
        self._history: Dict[str, deque] = {}

    def process_feedback(self, pattern_id: str, feedback: Union[FeedbackAction, dict]) -> dict:
        """Apply one feedback event to a stored pattern.

        Args:
            pattern_id: Target pattern
            feedback: FeedbackAction or dict like {"action": "rated", "rating": 4}

        Returns:
            {"success": True, "pattern_id", "action", "result"}

        Raises:
            ValidationError: malformed feedback
            NotFoundError: unknown pattern id
        """
        action = parse_feedback(feedback)

        with self.locks.hold(pattern_id):
            pattern = self.store.require(pattern_id)
            previous = pattern.effectiveness
            now = now_iso()
            changes = {
                "usage_count": pattern.usage_count + 1,
                "last_used": now,
            }
            result = {"previous_effectiveness": previous}
            weight = self.config.feedback_weight

            if isinstance(action, Accepted):
                changes["effectiveness"] = clamp(previous + weight * STEP_SCALE)
                changes["successes"] = pattern.successes + 1
            elif isinstance(action, Rejected):
                changes["effectiveness"] = clamp(previous - weight * STEP_SCALE)
                changes["successes"] = pattern.successes
            elif isinstance(action, Rated):
                target = (action.value - 1) / 4
                changes["effectiveness"] = clamp((1 - weight) * previous + weight * target)
                changes["successes"] = pattern.successes + (1 if action.value >= 3 else 0)
            else:
                child_id = self._spawn_modified(pattern, action, now)
                metadata = dict(pattern.metadata)
                metadata["superseded_by"] = list(metadata.get("superseded_by") or []) + [child_id]
                changes["metadata"] = metadata
                changes["successes"] = pattern.successes + MODIFIED_CREDIT
                result["new_pattern_id"] = child_id

            updated = self.store.update(pattern_id, changes)
            self.tracker.update_pattern(updated)

            result.update({
                "effectiveness": updated.effectiveness,
                "usage_count": updated.usage_count,
                "success_rate": updated.success_rate,
            })
            self._log(FeedbackRecord.from_action(pattern_id, action, result))

        logger.info(
            f"Feedback {action.action} on {pattern_id}: "
            f"effectiveness {previous:.3f} -> {updated.effectiveness:.3f}"
        )
        return {"success": True, "pattern_id": pattern_id, "action": action.action, "result": result}

    def _spawn_modified(self, parent: Pattern, action: Modified, now: str) -> str:
        metadata = {k: v for k, v in parent.metadata.items() if k not in ("superseded_by", "structure")}
        metadata["parent_id"] = parent.id
        metadata["modification_reason"] = action.reason
        child = {
            "type": parent.type.value,
            "category": parent.category,
            "title": parent.title,
            "description": parent.description,
            "tags": list(parent.tags),
            "context": dict(parent.context),
            "metadata": metadata,
            "code_example": {"before": parent.code_example.before, "after": action.result},
            "effectiveness": clamp(parent.effectiveness + self.config.modification_weight * MODIFICATION_SCALE),
            "usage_count": 1,
            "successes": 1.0,
            "last_used": now,
        }
        child_id = self.store.store(child)
        self.tracker.update_pattern(self.store.require(child_id))
        logger.debug(f"Pattern {child_id} derived from {parent.id}")
        return child_id

    # =========================================================================
    # FEEDBACK LOG
    # =========================================================================

    def _log(self, record: FeedbackRecord) -> None:
        with self._log_lock:
            log = self._history.get(record.pattern_id)
            if log is None:
                log = self._history[record.pattern_id] = deque(maxlen=self.config.feedback_history_size)
            log.append(record)

    def _records(self) -> List[FeedbackRecord]:
        with self._log_lock:
            return [r for log in self._history.values() for r in log]

    def get_feedback_history(self, pattern_id: str) -> List[dict]:
        with self._log_lock:
            return [r.to_dict() for r in self._history.get(pattern_id, ())]

    def analyze_feedback_trend(self, days: float = TREND_DAYS) -> str:
        """Classify recent feedback as positive, negative, stable or insufficient_data."""
        cutoff = datetime.now() - timedelta(days=days)
        recent = [r for r in self._records() if (parse_timestamp(r.timestamp) or datetime.min) >= cutoff]
        if len(recent) < TREND_MIN_SAMPLES:
            return "insufficient_data"

        positive = sum(1 for r in recent if r.is_positive)
        negative = sum(1 for r in recent if r.is_negative)
        if positive + negative == 0:
            return "stable"
        ratio = positive / (positive + negative)
        if ratio > POSITIVE_RATIO:
            return "positive"
        if ratio < NEGATIVE_RATIO:
            return "negative"
        return "stable"

    def get_feedback_stats(self) -> dict:
        records = self._records()
        ratings = [r.rating for r in records if r.action == "rated"]
        with self._log_lock:
            patterns_with_feedback = len(self._history)
        return {
            "total_feedback": len(records),
            "by_action": dict(Counter(r.action for r in records)),
            "average_rating": sum(ratings) / len(ratings) if ratings else None,
            "patterns_with_feedback": patterns_with_feedback,
            "trend": self.analyze_feedback_trend(),
        }

    def cleanup_old_feedback(self, max_age_days: float = 30) -> int:
        cutoff = datetime.now() - timedelta(days=max_age_days)
        removed = 0
        with self._log_lock:
            for pattern_id in list(self._history):
                log = self._history[pattern_id]
                kept = [r for r in log if (parse_timestamp(r.timestamp) or datetime.min) >= cutoff]
                removed += len(log) - len(kept)
                if kept:
                    self._history[pattern_id] = deque(kept, maxlen=self.config.feedback_history_size)
                else:
                    del self._history[pattern_id]
        return removed

    def forget(self, pattern_id: str) -> None:
        with self._log_lock:
            self._history.pop(pattern_id, None)
