"""Typed failures raised by the pattern learning engine.

Validation and lookup failures surface to the caller. Snapshot write failures
during autosave are logged and swallowed by the store; PersistenceError is only
raised from explicit export/backup paths.
"""


class PatternLearningError(Exception):
    """Base class for all engine errors."""


class ValidationError(PatternLearningError, ValueError):
    """Malformed pattern, feedback, criteria or configuration."""


class NotFoundError(PatternLearningError, KeyError):
    """Unknown pattern id."""

    def __init__(self, pattern_id: str):
        self.pattern_id = pattern_id
        super().__init__(f"Pattern {pattern_id} not found")

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.args[0]


class DuplicateError(PatternLearningError):
    """store() called with an id that already exists."""

    def __init__(self, pattern_id: str):
        self.pattern_id = pattern_id
        super().__init__(f"Pattern with ID {pattern_id} already exists")


class PersistenceError(PatternLearningError):
    """Snapshot could not be written or read from disk."""


class SnapshotParseError(ValidationError):
    """Snapshot or backup file is not valid JSON."""
