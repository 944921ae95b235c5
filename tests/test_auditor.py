"""Tests for the Code Mode auditor."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from notebypine.agent.auditor import (
    SECURITY_DIRECTIVES, AuditFinding, CodeModeAuditor, build_audit_result,
    build_compliance_report, format_audit_summary, format_compliance_report,
)
from notebypine.config import PROJECT_ROOT


def _write(root, relative, content):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def auditor(tmp_path, project):
    return CodeModeAuditor(output_dir=tmp_path / "audits", project_root=project)


def _finding(severity):
    return AuditFinding(severity=severity, category="x", description="d",
                        fix_recommendation=f"fix {severity}")


class TestScoring:

    def test_clean_result_passes_and_waits_ninety_days(self):
        result = build_audit_result("redaction", 100, [], "ok")
        assert result.status == "pass"
        due = datetime.fromisoformat(result.next_audit_due)
        assert due - datetime.now(timezone.utc) > timedelta(days=89)

    def test_high_finding_is_a_warning(self):
        result = build_audit_result("logging", 90, [_finding("high")], "x")
        assert result.status == "warning"
        assert result.recommendations == ["fix high"]

    def test_critical_finding_fails(self):
        result = build_audit_result("security", 95, [_finding("critical")], "x")
        assert result.status == "fail"
        due = datetime.fromisoformat(result.next_audit_due)
        assert due - datetime.now(timezone.utc) < timedelta(days=8)

    def test_score_is_clamped(self):
        assert build_audit_result("compliance", -20, [], "x").score == 0

    def test_compliance_report_risk(self):
        good = build_audit_result("redaction", 100, [], "x")
        poor = build_audit_result("logging", 50, [_finding("medium")], "x")
        assert build_compliance_report([good]).risk_level == "low"
        report = build_compliance_report([good, poor])
        assert report.overall_score == 75
        assert report.risk_level == "medium"
        critical = build_audit_result("security", 60, [_finding("critical")], "x")
        assert build_compliance_report([good, critical]).risk_level == "critical"


class TestAudits:

    def test_redaction_patterns_are_effective(self, auditor):
        result = auditor.audit_redaction_coverage()
        assert result.score == 100
        assert result.status == "pass"

    def test_redaction_not_wired_into_tool_calls(self, auditor, project):
        _write(project, "notebypine/agent/call_tool.py", "import logging\n")
        result = auditor.audit_redaction_coverage()
        assert [f.category for f in result.findings] == ["unused-redaction"]
        assert result.score == 80

    def test_logging_hygiene_findings(self, auditor, project):
        _write(project, "notebypine/agent/call_tool.py", "def run(args):\n    print(args)\n")
        result = auditor.audit_logging_hygiene()
        categories = {f.category for f in result.findings}
        assert categories == {"no-logging", "raw-data-logging", "inconsistent-logging"}
        assert result.score == 55
        assert result.status == "fail"

    def test_missing_agents_guide(self, auditor):
        result = auditor.audit_security_practices()
        assert result.findings[0].category == "missing-security-guidance"
        assert result.score == 60

    def test_missing_directive_and_hardcoded_secret(self, auditor, project):
        _write(project, "AGENTS.md", "\n".join(SECURITY_DIRECTIVES[:2]))
        _write(project, "notebypine/agent/client.py",
               'API_KEY = "sk_abcdefghijklmnopqrstuvwx"\n')
        result = auditor.audit_security_practices()
        categories = [f.category for f in result.findings]
        assert categories == ["missing-security-directive", "hardcoded-secrets"]
        assert result.findings[1].location == "notebypine/agent/client.py"
        assert result.status == "fail"

    def test_example_values_are_not_secrets(self, auditor, project):
        _write(project, "AGENTS.md", "\n".join(SECURITY_DIRECTIVES))
        _write(project, "notebypine/agent/client.py",
               'api_key = "sk_example_key_for_docs_only"\n')
        assert auditor.audit_security_practices().findings == []

    def test_performance_without_chunking(self, auditor, project):
        _write(project, "notebypine/agent/call_tool.py", "import logging\n")
        result = auditor.audit_performance_optimization()
        assert {f.category for f in result.findings} == {"no-chunking", "no-sampling"}
        assert result.score == 65

    def test_compliance_on_empty_project(self, auditor):
        result = auditor.audit_compliance()
        assert result.score == 15
        assert sum(1 for f in result.findings if f.category == "missing-documentation") == 4

    def test_low_test_ratio(self, auditor, project):
        for name in ("README.md", "AGENTS.md", "mcp.routing.json"):
            _write(project, name, "x")
        (project / "docs/specs/tools").mkdir(parents=True)
        for n in range(3):
            _write(project, f"notebypine/agent/mod{n}.py", "")
        _write(project, "tests/test_one.py", "")
        result = auditor.audit_compliance()
        assert [f.category for f in result.findings] == ["low-test-coverage"]
        assert result.findings[0].description == "Low test coverage: 33%"


class TestRunAndPersistence:

    def test_full_audit_against_repository(self, tmp_path):
        auditor = CodeModeAuditor(output_dir=tmp_path / "audits", project_root=PROJECT_ROOT)
        results = auditor.run_full_audit()
        assert [r.audit_type for r in results] == [
            "redaction", "logging", "security", "performance", "compliance",
        ]
        assert len(auditor.load_audit_log()) == 5
        report = auditor.get_compliance_report()
        assert len(report.audit_results) == 5

        auditor.run_full_audit()
        assert len(auditor.load_audit_log()) == 10

    def test_no_report_before_first_run(self, auditor):
        assert auditor.get_compliance_report() is None
        assert format_compliance_report(None) == "No compliance report available. Run audit first."

    def test_corrupt_audit_log(self, auditor):
        auditor.output_dir.mkdir(parents=True)
        auditor.audit_log_path.write_text("[{", encoding="utf-8")
        assert auditor.load_audit_log() == []

    def test_schedule(self, auditor):
        assert auditor.is_audit_due() is True
        schedule = auditor.schedule_audit(7)
        assert schedule["frequency_days"] == 7
        assert auditor.is_audit_due() is False
        stored = json.loads(auditor.schedule_path.read_text(encoding="utf-8"))
        assert stored["next_audit"] == schedule["next_audit"]

    def test_overdue_schedule(self, auditor):
        auditor.schedule_audit(-1)
        assert auditor.is_audit_due() is True

    def test_formatting(self):
        results = [
            build_audit_result("redaction", 100, [], "x"),
            build_audit_result("security", 60, [_finding("critical")], "x"),
        ]
        summary = format_audit_summary(results)
        assert summary.splitlines() == [
            "Audit Summary:",
            "redaction: PASS (100/100)",
            "security: FAIL (60/100)",
            "  Findings: 1",
        ]
        text = format_compliance_report(build_compliance_report(results))
        assert "Overall Score: 80.0/100" in text
        assert "Risk Level: CRITICAL" in text
        assert "1. fix critical" in text
