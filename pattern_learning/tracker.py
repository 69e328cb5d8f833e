"""Per-pattern effectiveness metrics over time.

Each update_pattern() call is one usage sample:
    total_usage += 1
    successful_usage += 1 if effectiveness > 0.5
    average_effectiveness = EMA(alpha=0.1), seeded with the first sample
    reliability = min(1, total_usage / min_usage_for_reliability)

Trend compares the mean of the last 5 samples with the 5 before them.
"""

import threading
from collections import deque
from dataclasses import dataclass, asdict, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from .config import EngineConfig
from .errors import NotFoundError, ValidationError
from .logging_config import get_logger
from .models import Pattern, now_iso, parse_timestamp

logger = get_logger("pattern_learning.tracker")

EMA_ALPHA = 0.1
SUCCESS_THRESHOLD = 0.5
HIGH_EFFECTIVENESS = 0.8
HIGH_RELIABILITY = 0.8
TREND_WINDOW = 5
TREND_DELTA = 0.05
TRENDS = ("up", "down", "stable", "insufficient_data")
ACTIVITY_WINDOWS = {"last_24h": timedelta(hours=24), "last_7d": timedelta(days=7), "last_30d": timedelta(days=30)}


@dataclass
class PatternMetrics:
    total_usage: int = 0
    successful_usage: int = 0
    average_effectiveness: float = 0.0
    reliability: float = 0.0
    first_seen: str = field(default_factory=now_iso)
    last_updated: str = field(default_factory=now_iso)

    @property
    def success_rate(self) -> float:
        return self.successful_usage / self.total_usage if self.total_usage else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["success_rate"] = self.success_rate
        return data


class EffectivenessTracker:

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self._lock = threading.RLock()
        self._metrics: Dict[str, PatternMetrics] = {}
        self._usage_history: Dict[str, deque] = {}
        self._effectiveness_history: Dict[str, deque] = {}

    def _history(self, table: Dict[str, deque], pattern_id: str) -> deque:
        if pattern_id not in table:
            table[pattern_id] = deque(maxlen=self.config.history_size)
        return table[pattern_id]

    def update_pattern(self, pattern: Union[Pattern, dict]) -> dict:
        """Record one usage sample for pattern.

        Returns:
            The pattern's metrics after the update
        """
        if isinstance(pattern, Pattern):
            pattern_id, effectiveness = pattern.id, pattern.effectiveness
        elif isinstance(pattern, dict) and pattern.get("id"):
            pattern_id, effectiveness = pattern["id"], pattern.get("effectiveness", 0.0)
        else:
            raise ValidationError("update_pattern needs a pattern with an id")
        if isinstance(effectiveness, bool) or not isinstance(effectiveness, (int, float)):
            raise ValidationError("effectiveness must be a number")

        now = now_iso()
        with self._lock:
            metrics = self._metrics.get(pattern_id)
            if metrics is None:
                metrics = self._metrics[pattern_id] = PatternMetrics(
                    average_effectiveness=effectiveness, first_seen=now
                )
            else:
                metrics.average_effectiveness = (
                    EMA_ALPHA * effectiveness + (1 - EMA_ALPHA) * metrics.average_effectiveness
                )
            metrics.total_usage += 1
            success = effectiveness > SUCCESS_THRESHOLD
            if success:
                metrics.successful_usage += 1
            metrics.reliability = min(1.0, metrics.total_usage / self.config.min_usage_for_reliability)
            metrics.last_updated = now

            self._history(self._usage_history, pattern_id).append({"timestamp": now, "success": success})
            self._history(self._effectiveness_history, pattern_id).append(
                {"timestamp": now, "effectiveness": effectiveness}
            )
            return metrics.to_dict()

    def get_metrics(self, pattern_id: str) -> Optional[dict]:
        with self._lock:
            metrics = self._metrics.get(pattern_id)
            return metrics.to_dict() if metrics else None

    def analyze_trend(self, pattern_id: str) -> str:
        with self._lock:
            samples = [h["effectiveness"] for h in self._effectiveness_history.get(pattern_id, ())]
        if len(samples) < 2 * TREND_WINDOW:
            return "insufficient_data"
        recent = sum(samples[-TREND_WINDOW:]) / TREND_WINDOW
        previous = sum(samples[-2 * TREND_WINDOW:-TREND_WINDOW]) / TREND_WINDOW
        delta = recent - previous
        if delta > TREND_DELTA:
            return "up"
        if delta < -TREND_DELTA:
            return "down"
        return "stable"

    def get_stats(self) -> dict:
        with self._lock:
            items = list(self._metrics.items())

        total = len(items)
        trends = {name: 0 for name in TRENDS}
        for pattern_id, _ in items:
            trends[self.analyze_trend(pattern_id)] += 1

        now = datetime.now()
        activity = {}
        for name, window in ACTIVITY_WINDOWS.items():
            cutoff = now - window
            activity[name] = sum(
                1 for _, m in items if (parse_timestamp(m.last_updated) or datetime.min) >= cutoff
            )

        return {
            "total_patterns": total,
            "average_effectiveness": (
                sum(m.average_effectiveness for _, m in items) / total if total else 0.0
            ),
            "high_effectiveness_patterns": sum(1 for _, m in items if m.average_effectiveness > HIGH_EFFECTIVENESS),
            "reliable_patterns": sum(1 for _, m in items if m.reliability > HIGH_RELIABILITY),
            "trends": trends,
            "activity": activity,
        }

    def get_effectiveness_over_time(self, pattern_id: str, days: float = 30) -> List[dict]:
        cutoff = datetime.now() - timedelta(days=days)
        with self._lock:
            history = list(self._effectiveness_history.get(pattern_id, ()))
        return [h for h in history if (parse_timestamp(h["timestamp"]) or datetime.min) >= cutoff]

    def _ranked(self, limit: int, reverse: bool) -> List[dict]:
        with self._lock:
            items = [dict(pattern_id=pid, **m.to_dict()) for pid, m in self._metrics.items()]
        items.sort(key=lambda m: m["average_effectiveness"], reverse=reverse)
        return items[:limit]

    def get_most_effective_patterns(self, limit: int = 10) -> List[dict]:
        return self._ranked(limit, reverse=True)

    def get_least_effective_patterns(self, limit: int = 10) -> List[dict]:
        return self._ranked(limit, reverse=False)

    def get_usage_stats(self, pattern_id: str) -> dict:
        with self._lock:
            metrics = self._metrics.get(pattern_id)
            if metrics is None:
                raise NotFoundError(pattern_id)
            stats = metrics.to_dict()
            stats["history_length"] = len(self._effectiveness_history.get(pattern_id, ()))
        stats["trend"] = self.analyze_trend(pattern_id)
        return stats

    def cleanup_old_metrics(self, max_age_days: float = 30) -> int:
        """Drop metrics for patterns not updated within max_age_days."""
        cutoff = datetime.now() - timedelta(days=max_age_days)
        with self._lock:
            stale = [
                pid for pid, m in self._metrics.items()
                if (parse_timestamp(m.last_updated) or datetime.min) < cutoff
            ]
            for pid in stale:
                self.forget(pid)
        if stale:
            logger.info(f"Dropped metrics for {len(stale)} inactive patterns")
        return len(stale)

    def forget(self, pattern_id: str) -> bool:
        with self._lock:
            self._usage_history.pop(pattern_id, None)
            self._effectiveness_history.pop(pattern_id, None)
            return self._metrics.pop(pattern_id, None) is not None

    def __len__(self) -> int:
        return len(self._metrics)

    def __contains__(self, pattern_id) -> bool:
        return pattern_id in self._metrics
