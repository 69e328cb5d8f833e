"""Criteria predicates and sorting for pattern search.

Criteria (all optional, combined with AND):
    type, category, min_effectiveness, min_usage_count, language, framework,
    pattern, context ({"language", "pattern"}), tags (all required),
    search (substring of title/description/code/tags),
    created_after, created_before, used_after, used_before, max_age_days,
    project_type, file_type, directory, dependencies (any required)

camelCase spellings (minEffectiveness, createdAfter, ...) are accepted.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from ..errors import ValidationError
from ..models import VALID_TYPES, Pattern, parse_timestamp

CRITERIA_ALIASES = {
    "minEffectiveness": "min_effectiveness",
    "minUsageCount": "min_usage_count",
    "createdAfter": "created_after",
    "createdBefore": "created_before",
    "usedAfter": "used_after",
    "usedBefore": "used_before",
    "maxAgeInDays": "max_age_days",
    "projectType": "project_type",
    "fileType": "file_type",
}

SORT_FIELD_ALIASES = {
    "usageCount": "usage_count",
    "successRate": "success_rate",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "lastUsed": "last_used",
}
SORTABLE_FIELDS = ("effectiveness", "usage_count", "success_rate", "successes",
                   "created_at", "updated_at", "last_used", "title", "category", "type")
_DATE_FIELDS = ("created_at", "updated_at", "last_used")


def normalize_criteria(criteria: Optional[dict]) -> dict:
    if criteria is None:
        return {}
    if not isinstance(criteria, dict):
        raise ValidationError("Search criteria must be an object")
    normalized = {CRITERIA_ALIASES.get(k, k): v for k, v in criteria.items()}
    ptype = normalized.get("type")
    if ptype and _type_value(ptype) not in VALID_TYPES:
        raise ValidationError(f"Unknown pattern type {ptype!r}; expected one of {VALID_TYPES}")
    return normalized


def _type_value(value) -> str:
    return getattr(value, "value", value)


def _before(stamp, bound) -> bool:
    parsed = parse_timestamp(stamp)
    limit = parse_timestamp(bound)
    if limit is None:
        raise ValidationError(f"Invalid date bound {bound!r}")
    return parsed is not None and parsed < limit


def _after(stamp, bound) -> bool:
    parsed = parse_timestamp(stamp)
    limit = parse_timestamp(bound)
    if limit is None:
        raise ValidationError(f"Invalid date bound {bound!r}")
    return parsed is not None and parsed > limit


def matches_text(pattern: Pattern, text: str) -> bool:
    if not text:
        return True
    needle = text.lower()
    fields = [pattern.title, pattern.description,
              pattern.code_example.before, pattern.code_example.after, *pattern.tags]
    return any(needle in (f or "").lower() for f in fields)


def matches_criteria(pattern: Pattern, criteria: dict, now: Optional[datetime] = None) -> bool:
    """True when pattern satisfies every criterion present."""
    c = normalize_criteria(criteria)
    ctx = pattern.context

    if c.get("type") and pattern.type.value != _type_value(c["type"]):
        return False
    if c.get("category") and pattern.category != c["category"]:
        return False
    if c.get("min_effectiveness") is not None and pattern.effectiveness < c["min_effectiveness"]:
        return False
    if c.get("min_usage_count") is not None and pattern.usage_count < c["min_usage_count"]:
        return False
    if c.get("language") and c["language"] not in (pattern.metadata.get("language"), ctx.get("language")):
        return False
    if c.get("framework") and c["framework"] not in (pattern.metadata.get("framework"), ctx.get("framework")):
        return False
    if c.get("pattern") and ctx.get("pattern") != c["pattern"]:
        return False

    nested = c.get("context") or {}
    if nested.get("language") and ctx.get("language") != nested["language"]:
        return False
    if nested.get("pattern") and ctx.get("pattern") != nested["pattern"]:
        return False

    tags = c.get("tags")
    if tags and not all(tag in pattern.tags for tag in tags):
        return False
    if c.get("search") and not matches_text(pattern, c["search"]):
        return False

    if c.get("created_after") and not _after(pattern.created_at, c["created_after"]):
        return False
    if c.get("created_before") and not _before(pattern.created_at, c["created_before"]):
        return False
    if c.get("used_after") and not _after(pattern.last_used, c["used_after"]):
        return False
    if c.get("used_before") and not _before(pattern.last_used, c["used_before"]):
        return False
    if c.get("max_age_days") is not None:
        cutoff = (now or datetime.now()) - timedelta(days=c["max_age_days"])
        created = parse_timestamp(pattern.created_at)
        if created is None or created < cutoff:
            return False

    if c.get("project_type") and ctx.get("project_type") != c["project_type"]:
        return False
    if c.get("file_type") and ctx.get("file_type") != c["file_type"]:
        return False
    if c.get("directory") and c["directory"] not in (ctx.get("directory") or ""):
        return False
    deps = c.get("dependencies")
    if deps:
        have = ctx.get("dependencies") or []
        if not any(dep in have for dep in deps):
            return False

    return True


def _sort_value(pattern: Pattern, field: str):
    if field in _DATE_FIELDS:
        parsed = parse_timestamp(getattr(pattern, field))
        return parsed.timestamp() if parsed else 0.0
    if field == "type":
        return pattern.type.value
    value = getattr(pattern, field)
    return value if value is not None else 0


def apply_sorting(patterns: List[Pattern], sort: Optional[dict]) -> List[Pattern]:
    """Sort by {field, direction}; without a sort option, effectiveness descending.

    field defaults to last_used and direction to desc when a sort option is given.
    """
    if not sort:
        return sorted(patterns, key=lambda p: p.effectiveness, reverse=True)
    if not isinstance(sort, dict):
        raise ValidationError("sort must be an object with field and direction")

    field = sort.get("field") or "last_used"
    field = SORT_FIELD_ALIASES.get(field, field)
    if field not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by {field!r}; expected one of {SORTABLE_FIELDS}")
    direction = sort.get("direction") or "desc"
    if direction not in ("asc", "desc"):
        raise ValidationError("sort direction must be 'asc' or 'desc'")

    return sorted(patterns, key=lambda p: _sort_value(p, field), reverse=direction == "desc")
