"""Tests for the file-based feedback system."""

import json

import pytest

from notebypine.agent.feedback import FeedbackSystem


@pytest.fixture
def feedback(tmp_path):
    return FeedbackSystem(output_dir=tmp_path / "feedback")


class TestSubmission:

    def test_quick_templates(self, feedback):
        feedback_id = feedback.submit_quick("slow", "search takes 8s")
        assert feedback_id.startswith("fb_")
        entry = feedback.all()[0]
        assert entry.category == "performance"
        assert entry.severity == "medium"
        assert entry.tags == ["slow"]
        assert entry.description.endswith("Details: search takes 8s")

    def test_each_quick_type(self, feedback):
        for kind in ("slow", "confusing", "error", "missing-feature"):
            feedback.submit_quick(kind, "x")
        assert [(e.category, e.severity) for e in feedback.all()] == [
            ("performance", "medium"), ("usability", "low"), ("bug", "high"), ("feature", "low"),
        ]

    def test_invalid_quick_type(self, feedback):
        with pytest.raises(ValueError) as exc:
            feedback.submit_quick("boring", "x")
        assert str(exc.value) == "Invalid type 'boring'. Use: slow, confusing, error, missing-feature"
        assert feedback.all() == []

    def test_entries_persist_as_json_array(self, feedback):
        feedback.submit("Docs gap", "No export example", "documentation", "low", source="claude")
        stored = json.loads(feedback.feedback_path.read_text(encoding="utf-8"))
        assert stored[0]["title"] == "Docs gap"
        assert stored[0]["source"] == "claude"
        assert stored[0]["resolved"] is False

    def test_resolve(self, feedback):
        feedback_id = feedback.submit_quick("error", "crash on export")
        assert feedback.resolve(feedback_id, "fixed in router") is True
        entry = feedback.all()[0]
        assert entry.resolved is True
        assert entry.resolution_notes == "fixed in router"
        assert entry.resolved_at is not None
        assert feedback.unresolved() == []

    def test_resolve_unknown(self, feedback):
        assert feedback.resolve("fb_missing", "n/a") is False

    def test_by_category(self, feedback):
        feedback.submit_quick("slow", "a")
        feedback.submit_quick("confusing", "b")
        assert [e.category for e in feedback.by_category("usability")] == ["usability"]

    def test_corrupt_file_reads_as_empty(self, feedback):
        feedback.output_dir.mkdir(parents=True)
        feedback.feedback_path.write_text("not json", encoding="utf-8")
        assert feedback.all() == []


class TestMetrics:

    def test_empty(self, feedback):
        metrics = feedback.metrics()
        assert metrics["total_feedback"] == 0
        assert metrics["satisfaction_score"] == 0.0

    def test_satisfaction_and_breakdowns(self, feedback):
        feedback.submit_quick("slow", "a")
        resolved = feedback.submit_quick("error", "b")
        feedback.resolve(resolved, "done")
        metrics = feedback.metrics()
        assert metrics["total_feedback"] == 2
        assert metrics["unresolved_issues"] == 1
        assert metrics["category_breakdown"] == {"performance": 1, "bug": 1}
        assert metrics["source_breakdown"] == {"cli": 2}
        assert metrics["satisfaction_score"] == 4.0
        assert metrics["average_resolution_time"] >= 0


class TestSuggestions:

    def test_below_thresholds(self, feedback):
        feedback.submit_quick("slow", "a")
        feedback.submit_quick("confusing", "b")
        assert feedback.suggestions() == []

    def test_clusters_sorted_by_priority(self, feedback):
        for _ in range(3):
            feedback.submit_quick("slow", "latency")
        feedback.submit("Crash", "Segfault on export", "bug", "critical")
        suggestions = feedback.suggestions()
        assert [(s.category, s.priority) for s in suggestions] == [
            ("stability", "critical"), ("performance", "high"),
        ]
        assert len(suggestions[1].related_feedback) == 3

    def test_resolved_entries_do_not_count(self, feedback):
        ids = [feedback.submit_quick("confusing", "x") for _ in range(2)]
        feedback.resolve(ids[0], "clarified")
        assert feedback.suggestions() == []


class TestReport:

    def test_empty_report(self, feedback):
        report = feedback.report()
        assert report.startswith("Code Mode Feedback Report")
        assert "No suggestions at this time." in report
        assert "No unresolved issues!" in report

    def test_report_lists_open_issues(self, feedback):
        feedback_id = feedback.submit_quick("error", "stack trace on create")
        report = feedback.report()
        assert "Total Feedback: 1" in report
        assert "bug: 1 (100.0%)" in report
        assert "- Bug Report - Unexpected Error (high) - bug" in report
        assert f"  ID: {feedback_id}" in report
