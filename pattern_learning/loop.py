"""LearningLoopController: turns analysis results into prevention patterns.

Issues that carry both the offending code and its fix become
issue-prevention patterns; improvements with before/after code become
improvement patterns. An issue whose message reads like an existing
prevention pattern's description bumps that pattern's occurrence count
instead of storing a near-duplicate.

Prevention is advisory: apply_prevention_patterns() reports matches and the
recorded fix, it never rewrites code.
"""

from pathlib import PurePath
from typing import Callable, List, Optional

from . import embeddings
from .config import EngineConfig
from .errors import PatternLearningError, ValidationError
from .logging_config import get_logger
from .models import PatternType

logger = get_logger("pattern_learning.loop")

ISSUE_EFFECTIVENESS = 0.8
IMPROVEMENT_EFFECTIVENESS = 0.7
LOW_EFFECTIVENESS = 0.5


def file_type_of(file: Optional[str]) -> str:
    if not file:
        return "unknown"
    suffix = PurePath(file).suffix
    return suffix[1:] if suffix else "unknown"


def extract_issues(results: dict) -> List[dict]:
    """Flatten results["issues"] and results[<category>]["issues"] into one list."""
    issues = []
    for issue in results.get("issues") or []:
        if isinstance(issue, dict):
            issues.append(dict(issue, category=issue.get("category") or "general"))
    for category, section in results.items():
        if category in ("issues", "improvements") or not isinstance(section, dict):
            continue
        for issue in section.get("issues") or []:
            if isinstance(issue, dict):
                issues.append(dict(issue, category=issue.get("category") or category))
    return issues


def _has_code(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


class LearningLoopController:

    def __init__(self, store, learner, config: Optional[EngineConfig] = None,
                 similarity: Optional[Callable[[str, str], float]] = None):
        self.store = store
        self.learner = learner
        self.config = config or EngineConfig()
        self.similarity = similarity
        self.metrics = {
            "learning_cycles": 0,
            "issues_captured": 0,
            "patterns_generated": 0,
            "merged_duplicates": 0,
            "issues_prevented": 0,
        }

    # =========================================================================
    # CAPTURE
    # =========================================================================

    def process_analysis_results(self, results: dict) -> dict:
        """Capture issues and improvements from one analysis run.

        Returns:
            {"issues_captured", "patterns_generated", "merged", "skipped", "errors"}
        """
        if not isinstance(results, dict):
            raise ValidationError("analysis results must be an object")

        summary = {"issues_captured": 0, "patterns_generated": 0, "merged": 0, "skipped": 0, "errors": []}
        self.metrics["learning_cycles"] += 1

        for issue in extract_issues(results):
            summary["issues_captured"] += 1
            if not (_has_code(issue.get("code")) and _has_code(issue.get("fix"))):
                summary["skipped"] += 1
                continue
            try:
                if self._merge_duplicate(issue):
                    summary["merged"] += 1
                else:
                    self.store.store(self._issue_pattern(issue))
                    summary["patterns_generated"] += 1
            except PatternLearningError as e:
                summary["errors"].append({"item": issue.get("message"), "error": str(e)})

        for improvement in results.get("improvements") or []:
            if not isinstance(improvement, dict) or not (
                _has_code(improvement.get("before")) and _has_code(improvement.get("after"))
            ):
                summary["skipped"] += 1
                continue
            try:
                self.store.store(self._improvement_pattern(improvement))
                summary["patterns_generated"] += 1
            except PatternLearningError as e:
                summary["errors"].append({"item": improvement.get("description"), "error": str(e)})

        self.metrics["issues_captured"] += summary["issues_captured"]
        self.metrics["patterns_generated"] += summary["patterns_generated"]
        self.metrics["merged_duplicates"] += summary["merged"]
        logger.info(
            f"Analysis cycle {self.metrics['learning_cycles']}: {summary['issues_captured']} issues, "
            f"{summary['patterns_generated']} new patterns, {summary['merged']} merged"
        )
        return summary

    def _merge_duplicate(self, issue: dict) -> bool:
        message = issue.get("message") or issue.get("description")
        if not message:
            return False
        existing = [p for p in self.store.patterns_by_type(PatternType.ISSUE_PREVENTION) if p.description]
        index, best_score = embeddings.closest(message, [p.description for p in existing], self.similarity)
        if index is None or best_score < self.config.duplicate_threshold:
            return False
        best = existing[index]

        metadata = dict(best.metadata)
        metadata["occurrences"] = metadata.get("occurrences", 1) + 1
        self.store.update(best.id, {"metadata": metadata})
        logger.debug(f"Issue merged into {best.id} (similarity {best_score:.2f})")
        return True

    def _issue_pattern(self, issue: dict) -> dict:
        message = issue.get("message") or issue.get("description") or ""
        return {
            "type": PatternType.ISSUE_PREVENTION.value,
            "category": issue["category"],
            "title": message[:80],
            "description": message,
            "code_example": {"before": issue["code"], "after": issue["fix"]},
            "context": {
                "file": issue.get("file") or "project-wide",
                "line": issue.get("line"),
                "severity": issue.get("severity") or "medium",
                "file_type": file_type_of(issue.get("file")),
                "pattern": message,
            },
            "metadata": {"source": "analysis", "occurrences": 1},
            "effectiveness": ISSUE_EFFECTIVENESS,
        }

    def _improvement_pattern(self, improvement: dict) -> dict:
        impact = improvement.get("impact")
        if isinstance(impact, bool) or not isinstance(impact, (int, float)) or not 0 <= impact <= 1:
            impact = IMPROVEMENT_EFFECTIVENESS
        description = improvement.get("description") or ""
        return {
            "type": PatternType.IMPROVEMENT.value,
            "category": improvement.get("category") or "general",
            "title": description[:80],
            "description": description,
            "code_example": {"before": improvement["before"], "after": improvement["after"]},
            "context": {"priority": improvement.get("priority"), "impact": improvement.get("impact")},
            "metadata": {"source": "analysis"},
            "effectiveness": impact,
        }

    # =========================================================================
    # PREVENTION
    # =========================================================================

    def apply_prevention_patterns(self, code: str, file: Optional[str] = None) -> dict:
        """Report known issues whose offending snippet appears in code.

        Returns:
            {"potential_issues": [...], "recommendations": [...], "prevention_count": n}
        """
        if not isinstance(code, str):
            raise ValidationError("code must be a string")
        criteria = {"type": PatternType.ISSUE_PREVENTION.value}
        if file:
            criteria["file_type"] = file_type_of(file)

        potential = []
        for pattern in self.store.search(criteria):
            snippet = pattern.code_example.before.strip()
            if snippet and snippet in code:
                potential.append({
                    "pattern_id": pattern.id,
                    "message": pattern.description,
                    "severity": pattern.context.get("severity"),
                    "line": code[:code.index(snippet)].count("\n") + 1,
                    "suggested_fix": pattern.code_example.after,
                    "effectiveness": pattern.effectiveness,
                })

        self.metrics["issues_prevented"] += len(potential)
        recommendations = [
            {
                "pattern_id": p["pattern_id"],
                "message": f"Known issue: {p['message']}" if p["message"] else "Known issue pattern matched",
                "fix": p["suggested_fix"],
                "priority": p["severity"] or "medium",
            }
            for p in potential
        ]
        return {"potential_issues": potential, "recommendations": recommendations,
                "prevention_count": len(potential)}

    # =========================================================================
    # INSIGHTS
    # =========================================================================

    @property
    def effectiveness(self) -> float:
        captured = self.metrics["issues_captured"]
        return self.metrics["issues_prevented"] / captured if captured else 0.0

    def generate_recommendations(self) -> List[dict]:
        recommendations = []
        if self.metrics["issues_captured"] and self.effectiveness < LOW_EFFECTIVENESS:
            recommendations.append({
                "type": "learning",
                "message": "Few captured issues are being caught early. Review the prevention patterns.",
                "priority": "high",
            })
        if self.metrics["learning_cycles"] and not self.metrics["patterns_generated"]:
            recommendations.append({
                "type": "capture",
                "message": "No patterns generated yet. Include code and fix with reported issues.",
                "priority": "medium",
            })
        low = self.store.search({"type": PatternType.ISSUE_PREVENTION.value})
        low = [p for p in low if p.effectiveness < LOW_EFFECTIVENESS]
        if low:
            recommendations.append({
                "type": "maintenance",
                "message": f"{len(low)} prevention patterns have low effectiveness. Consider cleanup.",
                "priority": "low",
            })
        return recommendations

    def get_learning_insights(self) -> dict:
        top = self.store.search({"limit": 10})
        return {
            "metrics": dict(self.metrics, effectiveness=self.effectiveness),
            "top_patterns": [
                {"id": p.id, "type": p.type.value, "title": p.title, "effectiveness": p.effectiveness,
                 "usage_count": p.usage_count}
                for p in top
            ],
            "effectiveness": self.learner.get_effectiveness_stats(),
            "recommendations": self.generate_recommendations(),
        }
