"""
File-based feedback collection for the agent helper layer.

Feedback entries are stored as a JSON array in <data dir>/feedback/feedback.json.
Metrics and improvement suggestions are derived from that file on demand.
"""

import json
import logging
import secrets
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from notebypine.config import get_settings

logger = logging.getLogger(__name__)

FEEDBACK_VERSION = "1.0.0"

Source = Literal["cursor", "claude", "cli", "test"]
FeedbackCategory = Literal["performance", "usability", "bug", "feature", "documentation"]
FeedbackSeverity = Literal["low", "medium", "high", "critical"]
QuickType = Literal["slow", "confusing", "error", "missing-feature"]

QUICK_TYPES = ("slow", "confusing", "error", "missing-feature")

QUICK_TEMPLATES: Dict[str, Dict[str, str]] = {
    "slow": {
        "title": "Performance Issue - Slow Response",
        "category": "performance",
        "description": "The system is responding slowly. Details: {details}",
        "severity": "medium",
    },
    "confusing": {
        "title": "Usability Issue - Confusing Interface",
        "category": "usability",
        "description": "The interface/workflow is confusing. Details: {details}",
        "severity": "low",
    },
    "error": {
        "title": "Bug Report - Unexpected Error",
        "category": "bug",
        "description": "An unexpected error occurred. Details: {details}",
        "severity": "high",
    },
    "missing-feature": {
        "title": "Feature Request - Missing Functionality",
        "category": "feature",
        "description": "Missing functionality needed. Details: {details}",
        "severity": "low",
    },
}

# Unresolved entries score by severity; resolved entries score 5
_SATISFACTION = {"low": 4, "medium": 3, "high": 2, "critical": 1}
_PRIORITY_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}


class FeedbackEntry(BaseModel):
    id: str
    timestamp: str
    source: Source = "cli"
    category: FeedbackCategory
    severity: FeedbackSeverity
    title: str
    description: str
    context: Dict[str, Any] = Field(default_factory=dict)
    version: str = FEEDBACK_VERSION
    resolved: bool = False
    resolution_notes: Optional[str] = None
    resolved_at: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ImprovementSuggestion(BaseModel):
    category: str
    priority: Literal["low", "medium", "high", "critical"]
    description: str
    implementation_notes: str
    estimated_effort: Literal["small", "medium", "large"]
    related_feedback: List[str]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FeedbackSystem:
    """Append-only feedback log with derived metrics."""

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir) if output_dir else get_settings().data_path / "feedback"
        self.feedback_path = self.output_dir / "feedback.json"

    # ------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------
    def _load(self) -> List[FeedbackEntry]:
        if not self.feedback_path.exists():
            return []
        try:
            raw = json.loads(self.feedback_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load feedback from {self.feedback_path}: {e}")
            return []
        return [FeedbackEntry(**item) for item in raw]

    def _save(self, entries: List[FeedbackEntry]) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.feedback_path.write_text(
            json.dumps([e.model_dump() for e in entries], indent=2), encoding="utf-8"
        )

    @staticmethod
    def _generate_id() -> str:
        return f"fb_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    # ------------------------------------------------------------
    # Submission / resolution
    # ------------------------------------------------------------
    def submit(
        self,
        title: str,
        description: str,
        category: str,
        severity: str,
        source: str = "cli",
        context: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> str:
        """Store a feedback entry and return its id."""
        entry = FeedbackEntry(
            id=self._generate_id(),
            timestamp=_now(),
            source=source,
            category=category,
            severity=severity,
            title=title,
            description=description,
            context=context or {},
            tags=tags or [],
        )
        entries = self._load()
        entries.append(entry)
        self._save(entries)
        logger.info(f"Feedback submitted: {entry.id} - {title}")
        return entry.id

    def submit_quick(self, kind: str, details: str, source: str = "cli") -> str:
        """Submit one of the canned feedback templates (slow, confusing, error, missing-feature)."""
        template = QUICK_TEMPLATES.get(kind)
        if template is None:
            raise ValueError(f"Invalid type '{kind}'. Use: {', '.join(QUICK_TYPES)}")
        return self.submit(
            title=template["title"],
            description=template["description"].format(details=details),
            category=template["category"],
            severity=template["severity"],
            source=source,
            tags=[kind],
        )

    def resolve(self, feedback_id: str, notes: str) -> bool:
        entries = self._load()
        entry = next((e for e in entries if e.id == feedback_id), None)
        if entry is None:
            logger.error(f"Feedback entry not found: {feedback_id}")
            return False
        entry.resolved = True
        entry.resolution_notes = notes
        entry.resolved_at = _now()
        self._save(entries)
        logger.info(f"Feedback resolved: {feedback_id} - {entry.title}")
        return True

    def all(self) -> List[FeedbackEntry]:
        return self._load()

    def by_category(self, category: str) -> List[FeedbackEntry]:
        return [e for e in self._load() if e.category == category]

    def unresolved(self) -> List[FeedbackEntry]:
        return [e for e in self._load() if not e.resolved]

    # ------------------------------------------------------------
    # Metrics / suggestions / report
    # ------------------------------------------------------------
    def metrics(self) -> Dict[str, Any]:
        entries = self._load()
        resolution_days = []
        scores = []
        for e in entries:
            if e.resolved and e.resolved_at:
                delta = datetime.fromisoformat(e.resolved_at) - datetime.fromisoformat(e.timestamp)
                resolution_days.append(delta.total_seconds() / 86400)
            scores.append(5 if e.resolved else _SATISFACTION.get(e.severity, 3))

        return {
            "total_feedback": len(entries),
            "unresolved_issues": sum(1 for e in entries if not e.resolved),
            "category_breakdown": dict(Counter(e.category for e in entries)),
            "severity_breakdown": dict(Counter(e.severity for e in entries)),
            "source_breakdown": dict(Counter(e.source for e in entries)),
            "average_resolution_time": (
                sum(resolution_days) / len(resolution_days) if resolution_days else 0.0
            ),
            "satisfaction_score": sum(scores) / len(scores) if scores else 0.0,
        }

    def suggestions(self) -> List[ImprovementSuggestion]:
        """Turn clusters of unresolved feedback into improvement suggestions."""
        open_entries = self.unresolved()

        def ids(category: str, severity: Optional[str] = None) -> List[str]:
            return [
                e.id for e in open_entries
                if e.category == category and (severity is None or e.severity == severity)
            ]

        rules = [
            ("performance", None, 3, "high", "medium",
             "Multiple performance issues reported. Optimize wrapper execution and reduce latency.",
             "Review call_mcp_tool execution paths, tune caching and chunk sizes."),
            ("usability", None, 2, "medium", "small",
             "Users report usability issues. Simplify workflows and improve error messages.",
             "Add more examples and clearer error messages in the helpers."),
            ("bug", "critical", 1, "critical", "large",
             "Critical bugs need immediate attention. Address stability issues.",
             "Prioritize fixes for critical bugs, add error handling around tool calls."),
            ("documentation", None, 2, "medium", "medium",
             "Documentation improvements needed. Update guides and add more examples.",
             "Expand README sections, add skill examples, improve tool reference docs."),
            ("feature", None, 5, "low", "large",
             "Multiple feature requests received. Plan next development cycle.",
             "Analyze feature patterns and prioritize by user impact."),
        ]
        names = {"bug": "stability", "feature": "features"}

        result = []
        for category, severity, threshold, priority, effort, description, notes in rules:
            related = ids(category, severity)
            if len(related) >= threshold:
                result.append(ImprovementSuggestion(
                    category=names.get(category, category),
                    priority=priority,
                    description=description,
                    implementation_notes=notes,
                    estimated_effort=effort,
                    related_feedback=related,
                ))
        result.sort(key=lambda s: _PRIORITY_ORDER[s.priority], reverse=True)
        return result

    def report(self) -> str:
        m = self.metrics()
        total = m["total_feedback"] or 1

        def breakdown(counts: Dict[str, int]) -> List[str]:
            return [f"{k}: {v} ({v / total * 100:.1f}%)" for k, v in counts.items()]

        lines = [
            "Code Mode Feedback Report",
            "=========================",
            "",
            "Overview",
            "--------",
            f"Total Feedback: {m['total_feedback']}",
            f"Unresolved Issues: {m['unresolved_issues']}",
            f"Satisfaction Score: {m['satisfaction_score']:.1f}/5.0",
            f"Average Resolution Time: {m['average_resolution_time']:.1f} days",
            "",
            "Category Breakdown",
            "------------------",
            *breakdown(m["category_breakdown"]),
            "",
            "Severity Breakdown",
            "------------------",
            *breakdown(m["severity_breakdown"]),
            "",
            "Source Breakdown",
            "----------------",
            *breakdown(m["source_breakdown"]),
            "",
            "Improvement Suggestions",
            "-----------------------",
        ]
        suggestions = self.suggestions()
        if not suggestions:
            lines.append("No suggestions at this time.")
        for n, s in enumerate(suggestions, 1):
            lines += [
                f"{n}. {s.category.upper()} ({s.priority} priority)",
                f"   Description: {s.description}",
                f"   Implementation: {s.implementation_notes}",
                f"   Estimated Effort: {s.estimated_effort}",
                f"   Related Feedback: {len(s.related_feedback)} items",
            ]

        lines += ["", "Unresolved Issues", "-----------------"]
        open_entries = self.unresolved()
        if not open_entries:
            lines.append("No unresolved issues!")
        for e in open_entries[:10]:
            description = e.description[:100] + ("..." if len(e.description) > 100 else "")
            lines += [f"- {e.title} ({e.severity}) - {e.category}", f"  {description}", f"  ID: {e.id}"]
        if len(open_entries) > 10:
            lines.append(f"... and {len(open_entries) - 10} more issues.")

        lines += ["", f"Generated: {_now()}"]
        return "\n".join(lines)
