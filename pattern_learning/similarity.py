"""Weighted similarity between two patterns.

    similarity = sum(weight_k * score_k) / sum(weight_k)   over comparable k

Sub-scores (each in [0, 1], or None when the two sides have nothing to compare):
- code: 1 - levenshtein/max_len on normalized before and after, averaged
- context: file_type / language / project_type / framework equality,
  directory segment overlap, dependency Jaccard
- metadata: type and category equality, tag Jaccard
- structure: complexity delta and lines-of-code ratio

A None sub-score contributes neither score nor weight, so missing data never
counts as a mismatch.
"""

import re
from typing import Dict, Optional, Union

import numpy as np

from .config import DEFAULT_SIMILARITY_WEIGHTS
from .models import PLACEHOLDER_CODE, Pattern

BRANCH_KEYWORDS = re.compile(r"\b(if|else|for|while|switch|case|catch|except|elif|try)\b|&&|\|\||\?")
CONTEXT_EQUALITY_FIELDS = ("file_type", "language", "project_type", "framework")
COMPLEXITY_SCALE = 10.0


def normalize_code(code: str) -> str:
    """Lowercase, collapse whitespace, unify quote characters, trim."""
    code = code.lower()
    code = re.sub(r"\s+", " ", code)
    code = re.sub(r"['`]", '"', code)
    return code.strip()


def levenshtein(a: str, b: str) -> int:
    """Edit distance, one numpy row per character of the longer string."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    b_codes = np.array([ord(ch) for ch in b], dtype=np.int64)
    offsets = np.arange(len(b) + 1, dtype=np.int64)
    previous = offsets.copy()
    for i, ch in enumerate(a, start=1):
        current = np.empty_like(previous)
        current[0] = i
        # deletion vs substitution
        current[1:] = np.minimum(previous[1:] + 1, previous[:-1] + (b_codes != ord(ch)))
        # insertion: current[j] = min_k(current[k] + j - k)
        current = np.minimum.accumulate(current - offsets) + offsets
        previous = current
    return int(previous[-1])


def string_similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest


def jaccard(a, b) -> float:
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    return len(set_a & set_b) / len(union) if union else 1.0


def directory_similarity(dir_a: str, dir_b: str) -> float:
    if dir_a == dir_b:
        return 1.0
    parts_a = [p for p in dir_a.split("/") if p]
    parts_b = [p for p in dir_b.split("/") if p]
    longest = max(len(parts_a), len(parts_b))
    if longest == 0:
        return 0.0
    return sum(1 for part in parts_a if part in parts_b) / longest


def branch_complexity(code: str) -> int:
    return len(BRANCH_KEYWORDS.findall(code or ""))


def _mean(values) -> Optional[float]:
    values = [v for v in values if v is not None]
    return sum(values) / len(values) if values else None


class PatternView:
    """Uniform read access over Pattern objects and loose target dicts."""

    def __init__(self, obj: Union[Pattern, dict]):
        if isinstance(obj, Pattern):
            self.id = obj.id
            self.type = obj.type.value
            self.category = obj.category
            self.tags = obj.tags
            self.context = obj.context
            self.metadata = obj.metadata
            self.before = obj.code_example.before
            self.after = obj.code_example.after
            return

        self.id = obj.get("id")
        ptype = obj.get("type")
        self.type = getattr(ptype, "value", ptype)
        self.category = obj.get("category")
        self.tags = obj.get("tags") or []
        self.context = obj.get("context") or {}
        self.metadata = obj.get("metadata") or {}
        code = obj.get("code_example", obj.get("codeExample"))
        if isinstance(code, dict):
            self.before, self.after = code.get("before"), code.get("after")
        elif hasattr(code, "before"):
            self.before, self.after = code.before, code.after
        elif isinstance(code, str):
            self.before = self.after = code
        else:
            self.before = self.after = None

    def code(self, side: str) -> Optional[str]:
        value = getattr(self, side)
        if not isinstance(value, str) or not value.strip() or value == PLACEHOLDER_CODE:
            return None
        return value

    def context_value(self, name: str):
        value = self.context.get(name)
        if value is None and name in ("language", "framework"):
            value = self.metadata.get(name)
        return value

    def structure(self) -> dict:
        explicit = self.metadata.get("structure") or {}
        code = self.code("after") or self.code("before")
        complexity = explicit.get("complexity")
        if complexity is None and code is not None:
            complexity = branch_complexity(code)
        lines = explicit.get("lines_of_code", explicit.get("linesOfCode"))
        if not lines and code is not None:
            lines = len(code.strip().splitlines())
        return {"complexity": complexity, "lines_of_code": lines}


class SimilarityEngine:
    """Pure pairwise scorer; holds no state besides its weights."""

    def __init__(self, weights: Optional[Dict[str, float]] = None):
        self.weights = dict(weights or DEFAULT_SIMILARITY_WEIGHTS)

    def calculate_similarity(self, a, b, context: Optional[dict] = None) -> float:
        """Score two patterns in [0, 1].

        Args:
            a, b: Pattern objects or pattern-shaped dicts
            context: optional {"weights": {...}} overriding the engine weights

        Returns:
            1.0 for the same id, 0.0 when either side is missing
        """
        if a is None or b is None:
            return 0.0
        va, vb = PatternView(a), PatternView(b)
        if va.id and va.id == vb.id:
            return 1.0

        weights = dict(self.weights)
        if context and context.get("weights"):
            weights.update(context["weights"])

        scores = self.component_scores(va, vb)
        total = 0.0
        weight_sum = 0.0
        for name, score in scores.items():
            if score is None:
                continue
            weight = weights.get(name, 0.0)
            total += score * weight
            weight_sum += weight
        if weight_sum == 0:
            return 0.0
        return max(0.0, min(1.0, total / weight_sum))

    def component_scores(self, a, b) -> Dict[str, Optional[float]]:
        va = a if isinstance(a, PatternView) else PatternView(a)
        vb = b if isinstance(b, PatternView) else PatternView(b)
        return {
            "code": self.code_similarity(va, vb),
            "context": self.context_similarity(va, vb),
            "metadata": self.metadata_similarity(va, vb),
            "structure": self.structure_similarity(va, vb),
        }

    def code_similarity(self, a: PatternView, b: PatternView) -> Optional[float]:
        sides = []
        for side in ("before", "after"):
            code_a, code_b = a.code(side), b.code(side)
            if code_a is None or code_b is None:
                continue
            sides.append(string_similarity(normalize_code(code_a), normalize_code(code_b)))
        return _mean(sides)

    def context_similarity(self, a: PatternView, b: PatternView) -> Optional[float]:
        factors = []
        for name in CONTEXT_EQUALITY_FIELDS:
            value_a, value_b = a.context_value(name), b.context_value(name)
            if value_a and value_b:
                factors.append(1.0 if value_a == value_b else 0.0)

        dir_a, dir_b = a.context.get("directory"), b.context.get("directory")
        if dir_a and dir_b:
            factors.append(directory_similarity(dir_a, dir_b))

        deps_a, deps_b = a.context.get("dependencies"), b.context.get("dependencies")
        if deps_a and deps_b:
            factors.append(jaccard(deps_a, deps_b))

        return _mean(factors)

    def metadata_similarity(self, a: PatternView, b: PatternView) -> Optional[float]:
        factors = []
        if a.type and b.type:
            factors.append(1.0 if a.type == b.type else 0.0)
        if a.category and b.category:
            factors.append(1.0 if a.category == b.category else 0.0)
        if a.tags and b.tags:
            factors.append(jaccard(a.tags, b.tags))
        return _mean(factors)

    def structure_similarity(self, a: PatternView, b: PatternView) -> Optional[float]:
        sa, sb = a.structure(), b.structure()
        factors = []
        if sa["complexity"] is not None and sb["complexity"] is not None:
            delta = abs(sa["complexity"] - sb["complexity"])
            factors.append(max(0.0, 1.0 - delta / COMPLEXITY_SCALE))
        if sa["lines_of_code"] and sb["lines_of_code"]:
            low, high = sorted((sa["lines_of_code"], sb["lines_of_code"]))
            factors.append(low / high)
        return _mean(factors)
