"""Pattern records and feedback actions.

A Pattern is a stored before/after code example with effectiveness and usage
metadata. success_rate is never stored independently: it is derived from the
persisted success credit (successes) and usage_count so the two cannot drift.
"""

import json
import math
import random
import string
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import ValidationError
from .logging_config import get_logger

logger = get_logger("pattern_learning.models")

PLACEHOLDER_CODE = "// No code example provided"


class PatternType(str, Enum):
    REFACTORING = "refactoring"
    OPTIMIZATION = "optimization"
    SECURITY = "security"
    PERFORMANCE = "performance"
    READABILITY = "readability"
    GENERAL = "general"
    ISSUE_PREVENTION = "issue-prevention"
    IMPROVEMENT = "improvement"


VALID_TYPES = tuple(t.value for t in PatternType)
VALID_COMPLEXITY = ("simplified", "similar", "expanded")

# camelCase keys written by the original producers
_KEY_ALIASES = {
    "codeExample": "code_example",
    "usageCount": "usage_count",
    "successRate": "success_rate",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "lastUsed": "last_used",
    "lastModified": "updated_at",
}
_CONTEXT_ALIASES = {
    "projectType": "project_type",
    "fileType": "file_type",
}
_METADATA_ALIASES = {
    "linesChanged": "lines_changed",
    "parentId": "parent_id",
    "modificationReason": "modification_reason",
    "linesOfCode": "lines_of_code",
}


def now_iso() -> str:
    return datetime.now().isoformat()


def generate_pattern_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"pattern_{int(time.time() * 1000)}_{suffix}"


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp (or datetime); None when absent or unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.astimezone().replace(tzinfo=None) if value.tzinfo else value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    # Naive local time throughout
    return parsed.astimezone().replace(tzinfo=None) if parsed.tzinfo else parsed


def _rename(data: dict, aliases: dict) -> dict:
    out = {}
    for key, value in data.items():
        out[aliases.get(key, key)] = value
    return out


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass
class CodeExample:
    before: str
    after: str

    def is_valid(self) -> bool:
        return (
            isinstance(self.before, str) and isinstance(self.after, str)
            and bool(self.before.strip()) and bool(self.after.strip())
            and self.before != PLACEHOLDER_CODE and self.after != PLACEHOLDER_CODE
        )

    @classmethod
    def coerce(cls, value) -> "CodeExample":
        if isinstance(value, CodeExample):
            return value
        if isinstance(value, dict):
            return cls(before=value.get("before") or "", after=value.get("after") or "")
        if isinstance(value, str) and value:
            # Single snippet: the same code before and after
            return cls(before=value, after=value)
        return cls(before=PLACEHOLDER_CODE, after=PLACEHOLDER_CODE)


@dataclass
class Pattern:
    """A learned code-transformation pattern."""
    id: str
    type: PatternType
    code_example: CodeExample
    category: str = "general"
    title: str = ""
    description: str = ""
    tags: List[str] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    effectiveness: float = 0.5
    usage_count: int = 0
    successes: float = 0.0
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    last_used: Optional[str] = None

    @property
    def success_rate(self) -> float:
        return self.successes / self.usage_count if self.usage_count > 0 else 0.0

    @property
    def language(self) -> Optional[str]:
        return self.metadata.get("language") or self.context.get("language")

    @property
    def framework(self) -> Optional[str]:
        return self.metadata.get("framework") or self.context.get("framework")

    def validate(self) -> None:
        """Raise ValidationError unless the record is storable."""
        if not self.id or not isinstance(self.id, str):
            raise ValidationError("Pattern must have a string id")
        if not isinstance(self.type, PatternType):
            raise ValidationError(f"Pattern type must be one of {VALID_TYPES}")
        if isinstance(self.effectiveness, bool) or not isinstance(self.effectiveness, (int, float)):
            raise ValidationError("effectiveness must be a number")
        if not 0.0 <= self.effectiveness <= 1.0:
            raise ValidationError(f"effectiveness must be within [0, 1], got {self.effectiveness}")
        if not isinstance(self.usage_count, int) or self.usage_count < 0:
            raise ValidationError("usage_count must be a non-negative integer")
        if isinstance(self.successes, bool) or not isinstance(self.successes, (int, float)):
            raise ValidationError("successes must be a number")
        if not math.isfinite(self.successes) or not 0 <= self.successes <= self.usage_count:
            raise ValidationError("successes must be within [0, usage_count]")
        if not isinstance(self.code_example, CodeExample) or not self.code_example.is_valid():
            raise ValidationError("Pattern must have a non-empty code_example with before and after")
        if not isinstance(self.tags, list):
            raise ValidationError("tags must be a list")
        if not isinstance(self.context, dict) or not isinstance(self.metadata, dict):
            raise ValidationError("context and metadata must be objects")
        try:
            json.dumps({"tags": self.tags, "context": self.context, "metadata": self.metadata},
                       allow_nan=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"tags, context and metadata must be JSON-serializable: {e}")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        data["success_rate"] = self.success_rate
        return data

    def copy(self) -> "Pattern":
        return Pattern.from_dict(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Pattern":
        """Build a Pattern from a snapshot/import dict, normalizing defaults.

        Raises ValidationError when the type is missing or unknown or a field
        has the wrong shape; range checks happen in validate().
        """
        if not isinstance(data, dict):
            raise ValidationError("Pattern must be an object")
        data = _rename(data, _KEY_ALIASES)

        raw_type = data.get("type")
        if raw_type is None:
            raise ValidationError("Pattern must have a type")
        try:
            ptype = PatternType(raw_type)
        except (ValueError, TypeError):
            raise ValidationError(f"Unknown pattern type {raw_type!r}; expected one of {VALID_TYPES}")

        code_example = data.get("code_example")
        if code_example is None and data.get("code"):
            code_example = data["code"]

        effectiveness = data.get("effectiveness", 0.5)
        if effectiveness is None:
            effectiveness = 0.5

        usage_count = data.get("usage_count")
        usage_count = 0 if usage_count is None else usage_count
        if isinstance(usage_count, float) and usage_count.is_integer():
            usage_count = int(usage_count)
        if isinstance(usage_count, bool) or not isinstance(usage_count, int):
            raise ValidationError(f"usage_count must be an integer, got {usage_count!r}")

        successes = data.get("successes")
        if successes is None:
            rate = data.get("success_rate") or 0.0
            if not _is_number(rate):
                raise ValidationError(f"success_rate must be a finite number, got {rate!r}")
            successes = round(rate * usage_count * 2) / 2 if usage_count else 0.0
            if usage_count and abs(successes / usage_count - rate) > 1e-9:
                logger.warning(
                    f"Pattern {data.get('id')}: success_rate {rate} is not a multiple of "
                    f"0.5/{usage_count}; stored as {successes} successes "
                    f"(rate {successes / usage_count:.4f})"
                )
        elif not _is_number(successes):
            raise ValidationError(f"successes must be a finite number, got {successes!r}")

        for key in ("context", "metadata"):
            if data.get(key) is not None and not isinstance(data[key], dict):
                raise ValidationError(f"{key} must be an object")
        tags = data.get("tags")
        if tags is not None and not isinstance(tags, list):
            raise ValidationError("tags must be a list")

        now = now_iso()
        return cls(
            id=data.get("id") or generate_pattern_id(),
            type=ptype,
            code_example=CodeExample.coerce(code_example),
            category=data.get("category") or "general",
            title=data.get("title") or "",
            description=data.get("description") or "",
            tags=list(data.get("tags") or []),
            context=_rename(dict(data.get("context") or {}), _CONTEXT_ALIASES),
            metadata=_rename(dict(data.get("metadata") or {}), _METADATA_ALIASES),
            effectiveness=effectiveness,
            usage_count=usage_count,
            successes=float(successes),
            created_at=_iso(data.get("created_at")) or now,
            updated_at=_iso(data.get("updated_at")) or now,
            last_used=_iso(data.get("last_used")),
        )


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _iso(value) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value or None


def coerce_pattern(value: Union[Pattern, dict]) -> Pattern:
    if isinstance(value, Pattern):
        return value.copy()
    return Pattern.from_dict(value)


# =============================================================================
# FEEDBACK
# =============================================================================

FEEDBACK_ACTIONS = ("accepted", "rejected", "modified", "rated")


@dataclass(frozen=True)
class Accepted:
    action = "accepted"


@dataclass(frozen=True)
class Rejected:
    action = "rejected"


@dataclass(frozen=True)
class Modified:
    result: str
    reason: str = ""
    action = "modified"


@dataclass(frozen=True)
class Rated:
    value: float
    action = "rated"


FeedbackAction = Union[Accepted, Rejected, Modified, Rated]


def parse_feedback(feedback: Union[FeedbackAction, dict]) -> FeedbackAction:
    """Validate a feedback payload and return its tagged action.

    Accepts {"action": "accepted"|"rejected"}, {"action": "rated", "rating": 1-5}
    and {"action": "modified", "modification": {"result": ..., "reason": ...}}.
    """
    if isinstance(feedback, (Accepted, Rejected, Modified, Rated)):
        action = feedback
    elif isinstance(feedback, dict):
        name = feedback.get("action")
        if not isinstance(name, str) or name not in FEEDBACK_ACTIONS:
            raise ValidationError(f"Unknown feedback action {name!r}; expected one of {FEEDBACK_ACTIONS}")
        if name == "accepted":
            action = Accepted()
        elif name == "rejected":
            action = Rejected()
        elif name == "rated":
            action = Rated(value=feedback.get("rating"))
        else:
            modification = feedback.get("modification")
            if not isinstance(modification, dict):
                raise ValidationError("Modified feedback requires a modification object")
            action = Modified(result=modification.get("result"), reason=modification.get("reason") or "")
    else:
        raise ValidationError("Feedback must be an object")

    if isinstance(action, Rated):
        rating = action.value
        if isinstance(rating, bool) or not isinstance(rating, (int, float)) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be a number between 1 and 5")
    if isinstance(action, Modified):
        if not isinstance(action.result, str) or not action.result.strip():
            raise ValidationError("Modified feedback requires a non-empty modification result")
    return action


@dataclass
class FeedbackRecord:
    pattern_id: str
    action: str
    rating: Optional[float] = None
    modification: Optional[Dict[str, str]] = None
    result: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=now_iso)

    @property
    def is_positive(self) -> bool:
        return self.action == "accepted" or (self.action == "rated" and self.rating >= 3)

    @property
    def is_negative(self) -> bool:
        return self.action == "rejected" or (self.action == "rated" and self.rating < 3)

    @classmethod
    def from_action(cls, pattern_id: str, action: FeedbackAction, result: dict) -> "FeedbackRecord":
        record = cls(pattern_id=pattern_id, action=action.action, result=result)
        if isinstance(action, Rated):
            record.rating = action.value
        elif isinstance(action, Modified):
            record.modification = {"result": action.result, "reason": action.reason}
        return record

    def to_dict(self) -> dict:
        return asdict(self)
