"""Candidate selection, ranking and result caching for pattern queries.

Ranking:
    rank = 0.7 * similarity + 0.3 * relevance
    relevance = 0.2 * recency + 0.3 * effectiveness + 0.2 * usage + 0.3 * context_bonus
    recency = max(0, 1 - days_since_last_use / 30)
    usage = min(usage_count / 10, 1)
    context_bonus = share of the query's project_type / framework / language the candidate matches
"""

import hashlib
import json
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .config import EngineConfig
from .errors import ValidationError
from .logging_config import get_logger
from .models import Pattern, parse_timestamp
from .similarity import SimilarityEngine, PatternView
from .store.filters import apply_sorting, normalize_criteria

logger = get_logger("pattern_learning.search")

RANK_WEIGHTS = {"similarity": 0.7, "relevance": 0.3}
RELEVANCE_WEIGHTS = {
    "recency": 0.2,
    "effectiveness": 0.3,
    "usage": 0.2,
    "context": 0.3,
}
RECENCY_WINDOW_DAYS = 30
USAGE_SATURATION = 10
CONTEXT_BONUS_FIELDS = ("project_type", "framework", "language")


@dataclass
class SimilarityMatch:
    pattern: Pattern
    similarity: float
    relevance: float
    rank: float

    def to_dict(self) -> dict:
        return {
            "pattern": self.pattern.to_dict(),
            "similarity": self.similarity,
            "relevance": self.relevance,
            "rank": self.rank,
        }


def _context_option(context: dict, name: str, camel: str, default):
    value = context.get(name, context.get(camel))
    return default if value is None else value


class SearchStrategy:
    """Finds ranked similar patterns and runs criteria searches against a store."""

    def __init__(self, similarity: Optional[SimilarityEngine] = None, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.similarity = similarity or SimilarityEngine(self.config.similarity_weights)
        self._cache = OrderedDict()
        self._cache_lock = threading.Lock()
        self.cache_hits = 0
        self.cache_misses = 0

    # =========================================================================
    # CACHE
    # =========================================================================

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cache_key(self, target, context: dict) -> tuple:
        view = PatternView(target)
        identity = view.id or self._fingerprint(view)
        min_similarity = _context_option(context, "min_similarity", "minSimilarity", self.config.min_similarity)
        max_results = _context_option(context, "max_results", "maxResults", self.config.max_results)
        query_context = tuple(self._query_value(context, name) for name in CONTEXT_BONUS_FIELDS)
        return (view.type, identity, min_similarity, max_results, query_context)

    @staticmethod
    def _fingerprint(view: PatternView) -> str:
        payload = json.dumps({
            "before": view.before,
            "after": view.after,
            "category": view.category,
            "tags": sorted(view.tags),
            "context": view.context,
            "metadata": view.metadata,
        }, sort_keys=True, default=str)
        return "content:" + hashlib.sha256(payload.encode()).hexdigest()[:16]

    def _cache_get(self, key):
        with self._cache_lock:
            if key not in self._cache:
                return None
            self._cache.move_to_end(key)
            return self._cache[key]

    def _cache_put(self, key, results) -> None:
        with self._cache_lock:
            self._cache[key] = results
            self._cache.move_to_end(key)
            while len(self._cache) > self.config.cache_size:
                self._cache.popitem(last=False)

    # =========================================================================
    # SIMILARITY SEARCH
    # =========================================================================

    def find_similar_patterns(self, target, context: Optional[dict], store) -> List[SimilarityMatch]:
        """Rank stored patterns by similarity to target.

        Args:
            target: Pattern or pattern-shaped dict; its id is excluded from results
            context: {min_similarity, max_results, project_type, framework, language}
            store: PatternStore supplying candidates

        Returns:
            Matches with similarity >= min_similarity, best rank first
        """
        if target is None:
            return []
        if not isinstance(target, (Pattern, dict)):
            raise ValidationError("target must be a Pattern or an object")
        context = context or {}
        min_similarity = _context_option(context, "min_similarity", "minSimilarity", self.config.min_similarity)
        max_results = _context_option(context, "max_results", "maxResults", self.config.max_results)

        key = self.cache_key(target, context)
        cached = self._cache_get(key)
        if cached is not None:
            self.cache_hits += 1
            return [m for m in cached if m.pattern.id in store]
        self.cache_misses += 1

        view = PatternView(target)
        now = datetime.now()
        matches = []
        for pattern_id in store.candidate_ids(view.type):
            if pattern_id == view.id:
                continue
            candidate = store.get(pattern_id)
            if candidate is None:
                continue
            score = self.similarity.calculate_similarity(target, candidate)
            if score < min_similarity:
                continue
            relevance = self.relevance(candidate, context, now)
            rank = RANK_WEIGHTS["similarity"] * score + RANK_WEIGHTS["relevance"] * relevance
            matches.append(SimilarityMatch(candidate, score, relevance, rank))

        matches.sort(key=lambda m: m.rank, reverse=True)
        matches = matches[:max_results]
        self._cache_put(key, matches)
        logger.debug(f"Similarity search for {view.id or 'new pattern'}: {len(matches)} matches")
        return list(matches)

    @staticmethod
    def _query_value(context: dict, name: str):
        camel = {"project_type": "projectType"}.get(name, name)
        return context.get(name, context.get(camel))

    def relevance(self, pattern: Pattern, context: dict, now: Optional[datetime] = None) -> float:
        now = now or datetime.now()
        last_used = parse_timestamp(pattern.last_used)
        if last_used is None:
            recency = 0.0
        else:
            days = (now - last_used).total_seconds() / 86400
            recency = max(0.0, 1.0 - days / RECENCY_WINDOW_DAYS)

        usage = min(pattern.usage_count / USAGE_SATURATION, 1.0)

        asked = [(name, self._query_value(context, name)) for name in CONTEXT_BONUS_FIELDS]
        asked = [(name, value) for name, value in asked if value]
        if asked:
            view = PatternView(pattern)
            bonus = sum(1 for name, value in asked if view.context_value(name) == value) / len(asked)
        else:
            bonus = 0.0

        score = (
            RELEVANCE_WEIGHTS["recency"] * recency
            + RELEVANCE_WEIGHTS["effectiveness"] * pattern.effectiveness
            + RELEVANCE_WEIGHTS["usage"] * usage
            + RELEVANCE_WEIGHTS["context"] * bonus
        )
        return min(score, 1.0)

    # =========================================================================
    # CRITERIA SEARCH
    # =========================================================================

    def search(self, criteria: dict, store) -> List[Pattern]:
        criteria = normalize_criteria(criteria)
        candidates = store.candidate_ids(criteria.get("type") or None)
        results = store.filter_patterns(candidates, criteria)
        results = apply_sorting(results, criteria.get("sort"))

        limit = criteria.get("limit")
        if limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
                raise ValidationError("limit must be a non-negative integer")
            if limit > 0:
                results = results[:limit]
        return results
