"""Canonical path resolution for the pattern snapshot directory."""
import os
from pathlib import Path

PATTERNS_DIRNAME = ".patterns"
PATTERNS_FILENAME = "patterns.json"


def get_patterns_dir() -> Path:
    """Get .patterns directory: PATTERN_LEARNING_DIR env -> ancestor search -> cwd."""
    project_dir = os.environ.get("PATTERN_LEARNING_DIR")
    if project_dir:
        return Path(project_dir) / PATTERNS_DIRNAME

    cwd = Path.cwd()
    for parent in [cwd] + list(cwd.parents):
        patterns_dir = parent / PATTERNS_DIRNAME
        if patterns_dir.exists() and patterns_dir.is_dir():
            return patterns_dir

    return cwd / PATTERNS_DIRNAME


def get_patterns_file() -> Path:
    """Resolve the snapshot file, honouring PATTERN_LEARNING_FILE."""
    env_path = os.environ.get("PATTERN_LEARNING_FILE")
    if env_path:
        return Path(env_path).resolve()
    return get_patterns_dir() / PATTERNS_FILENAME
