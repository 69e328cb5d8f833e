"""Issue-message matching for folding repeated analysis findings together.

Messages are normalized (whitespace collapsed, length capped) before they are
compared. With sentence-transformers installed the score is the cosine of
sentence embeddings clipped to [0, 1]; without it, a case-insensitive
SequenceMatcher ratio. The model loads on first use. A missing package or an
unloadable model is remembered, so the fallback decision is made once per
process (reset() forgets it).
"""

import os
import re
from difflib import SequenceMatcher
from functools import lru_cache
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from .logging_config import get_logger

logger = get_logger("pattern_learning.embeddings")

MODEL_NAME = os.environ.get("PATTERN_LEARNING_EMBEDDING_MODEL", "all-MiniLM-L6-v2")
CACHE_SIZE = int(os.environ.get("PATTERN_LEARNING_EMBEDDING_CACHE_SIZE", "2000"))

# Roughly the model's 512-token window
MAX_TEXT_CHARS = 2000

_WHITESPACE = re.compile(r"\s+")

_model = None
_available = None


def normalize_text(text) -> str:
    if not isinstance(text, str):
        return ""
    return _WHITESPACE.sub(" ", text).strip()[:MAX_TEXT_CHARS]


def _load_model():
    global _model, _available
    if _available is not None:
        return _model
    try:
        from sentence_transformers import SentenceTransformer
    except ImportError:
        logger.debug("sentence-transformers not installed; matching issues by text ratio")
        _available = False
        return None
    try:
        _model = SentenceTransformer(MODEL_NAME)
        _available = True
    except OSError as e:
        logger.warning(f"Could not load embedding model {MODEL_NAME}: {e}; matching issues by text ratio")
        _model = None
        _available = False
    return _model


def is_available() -> bool:
    _load_model()
    return bool(_available)


def reset() -> None:
    """Forget the loaded model, the availability decision and cached vectors."""
    global _model, _available
    _model = None
    _available = None
    embed.cache_clear()


@lru_cache(maxsize=CACHE_SIZE)
def embed(text: str) -> Optional[Tuple[float, ...]]:
    """Embedding of a normalized message; None when blank or no model is loaded."""
    text = normalize_text(text)
    if not text:
        return None
    model = _load_model()
    if model is None:
        return None
    return tuple(model.encode(text).tolist())


def cosine(a, b) -> float:
    v1, v2 = np.asarray(a, dtype=float), np.asarray(b, dtype=float)
    norm_product = np.linalg.norm(v1) * np.linalg.norm(v2)
    if norm_product == 0:
        return 0.0
    return float(np.dot(v1, v2) / norm_product)


def text_ratio(text1: str, text2: str) -> float:
    return SequenceMatcher(None, normalize_text(text1).lower(), normalize_text(text2).lower()).ratio()


def similarity(text1: str, text2: str) -> float:
    """Score two issue messages in [0, 1]; 0.0 when either is blank."""
    if not normalize_text(text1) or not normalize_text(text2):
        return 0.0
    vec1, vec2 = embed(text1), embed(text2)
    if vec1 is not None and vec2 is not None:
        return max(0.0, cosine(vec1, vec2))
    return text_ratio(text1, text2)


def scores(text: str, candidates: Sequence[str]) -> np.ndarray:
    """Similarity of text to every candidate.

    When every message embeds, the candidates are scored as one matrix
    product; otherwise each pair goes through similarity().
    """
    if not candidates:
        return np.zeros(0)
    query = embed(text) if normalize_text(text) else None
    vectors = [embed(c) if normalize_text(c) else None for c in candidates]
    if query is None or any(v is None for v in vectors):
        return np.array([similarity(text, c) for c in candidates], dtype=float)

    matrix = np.asarray(vectors, dtype=float)
    q = np.asarray(query, dtype=float)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    with np.errstate(divide="ignore", invalid="ignore"):
        values = np.where(norms > 0, (matrix @ q) / norms, 0.0)
    return np.clip(values, 0.0, 1.0)


def closest(text: str, candidates: Sequence[str],
            score: Optional[Callable[[str, str], float]] = None) -> Tuple[Optional[int], float]:
    """Index and score of the candidate most like text.

    score replaces the built-in scoring when given. Ties go to the earliest
    candidate. Returns (None, 0.0) when nothing scores above zero.
    """
    if not candidates:
        return None, 0.0
    if score is None:
        values = scores(text, candidates)
    else:
        values = np.array([score(text, c) for c in candidates], dtype=float)
    index = int(np.argmax(values))
    if values[index] <= 0:
        return None, 0.0
    return index, float(values[index])
