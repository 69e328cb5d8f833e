"""Feature extraction from a before/after code pair.

Heuristic, substring-based classification. Type rules are checked in order
and the first match wins:
    refactoring -> optimization -> security -> performance -> readability -> general
"""

import re
from typing import Callable, List, Tuple

from .models import PatternType


def _introduces(before: str, after: str, old: str, new: str) -> bool:
    return old in before and new in after


def _removes(before: str, after: str, token: str) -> bool:
    return token in before and token not in after


def is_refactoring(before: str, after: str) -> bool:
    return (
        _introduces(before, after, "function", "const")
        or _introduces(before, after, "var", "const")
        or _introduces(before, after, "class", "function")
    )


def is_optimization(before: str, after: str) -> bool:
    return (
        _introduces(before, after, "for (", ".map(")
        or _introduces(before, after, "if (", "?.")
        or _introduces(before, after, "&&", "?.")
    )


def is_security(before: str, after: str) -> bool:
    return (
        _removes(before, after, "eval(")
        or _introduces(before, after, "innerHTML", "textContent")
        or _removes(before, after, "document.write")
        or _removes(before, after, "shell=True")
    )


def is_performance(before: str, after: str) -> bool:
    return (
        _introduces(before, after, "setTimeout", "requestAnimationFrame")
        or _introduces(before, after, "addEventListener", "useCallback")
        or _introduces(before, after, "import *", "import {")
    )


def is_readability(before: str, after: str) -> bool:
    return (
        len(after) < len(before) * 0.8
        or _removes(before, after, "// TODO")
        or _removes(before, after, "console.log")
        or _removes(before, after, "print(")
    )


TYPE_RULES: List[Tuple[PatternType, Callable[[str, str], bool]]] = [
    (PatternType.REFACTORING, is_refactoring),
    (PatternType.OPTIMIZATION, is_optimization),
    (PatternType.SECURITY, is_security),
    (PatternType.PERFORMANCE, is_performance),
    (PatternType.READABILITY, is_readability),
]

CATEGORY_TOKENS = (
    ("function", "function"),
    ("class", "class"),
    ("import", "import"),
    ("export", "export"),
)

FRAMEWORK_MARKERS = (
    ("react", ("React", "useState", "useEffect")),
    ("vue", ("Vue", "vue")),
    ("angular", ("Angular", "angular")),
    ("express", ("Express", "express")),
    ("django", ("django",)),
    ("flask", ("flask", "Flask")),
)

_PYTHON_DEF = re.compile(r"^\s*(def|class)\s+\w+.*:\s*$", re.MULTILINE)


def classify_type(before: str, after: str) -> PatternType:
    for pattern_type, rule in TYPE_RULES:
        if rule(before, after):
            return pattern_type
    return PatternType.GENERAL


def categorize(before: str, after: str) -> str:
    for token, category in CATEGORY_TOKENS:
        if token in before and token in after:
            return category
    return "code-block"


def detect_language(code: str) -> str:
    if _PYTHON_DEF.search(code):
        return "python"
    if "import" in code and "from" in code:
        return "javascript"
    if "interface" in code or "type " in code:
        return "typescript"
    if "React.FC" in code or "tsx" in code:
        return "tsx"
    if "jsx" in code or "React" in code:
        return "jsx"
    return "javascript"


def detect_framework(code: str) -> str:
    for framework, markers in FRAMEWORK_MARKERS:
        if any(marker in code for marker in markers):
            return framework
    return "vanilla"


def complexity_change(before: str, after: str) -> str:
    """simplified / similar / expanded by line count, with a 20% band."""
    before_lines = len(before.split("\n"))
    after_lines = len(after.split("\n"))
    if after_lines < before_lines * 0.8:
        return "simplified"
    if after_lines > before_lines * 1.2:
        return "expanded"
    return "similar"


def lines_changed(before: str, after: str) -> int:
    """Count positions whose line differs between before and after."""
    before_lines = before.split("\n")
    after_lines = after.split("\n")
    changes = 0
    for i in range(max(len(before_lines), len(after_lines))):
        old = before_lines[i] if i < len(before_lines) else None
        new = after_lines[i] if i < len(after_lines) else None
        if old != new:
            changes += 1
    return changes


def extract_features(before: str, after: str) -> dict:
    return {
        "type": classify_type(before, after),
        "category": categorize(before, after),
        "language": detect_language(before),
        "framework": detect_framework(before),
        "complexity": complexity_change(before, after),
        "lines_changed": lines_changed(before, after),
    }
