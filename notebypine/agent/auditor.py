"""
Automated audits of redaction coverage, logging hygiene, security practices,
performance safeguards and documentation compliance for the agent layer.

Each audit produces a scored AuditResult (0-100). A full run appends the
results to <data dir>/audits/audit-log.json and rewrites
compliance-report.json.
"""

import json
import logging
import re
import secrets
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from notebypine.agent.redact import REDACTION_PATTERNS, contains_sensitive_data, redact_string
from notebypine.config import PROJECT_ROOT, get_settings

logger = logging.getLogger(__name__)

AuditType = Literal["redaction", "logging", "security", "performance", "compliance"]
AuditStatus = Literal["pass", "warning", "fail"]
FindingSeverity = Literal["low", "medium", "high", "critical"]
RiskLevel = Literal["low", "medium", "high", "critical"]

ESSENTIAL_PATTERNS = ("email", "phone", "api_key", "password", "credit_card", "jwt_token")

# (probe text, raw value that must not survive redaction)
REDACTION_PROBES = [
    ("User email: user@example.com", "user@example.com"),
    ("Phone: 555-123-4567", "555-123-4567"),
    ("API key: sk_test_4242424242424242", "sk_test_4242424242424242"),
    ('{"password": "MySecretPassword123"}', "MySecretPassword123"),
    ("Card: 4242-4242-4242-4242", "4242-4242-4242-4242"),
]

SECURITY_DIRECTIVES = (
    "Direct MCP tool invocation",
    "Logging raw request/response",
    "Bypassing the redaction layer",
)

REQUIRED_DOCS = ("README.md", "docs/specs/tools", "AGENTS.md", "mcp.routing.json")

SECRET_PATTERNS = [
    re.compile(r"sk_[a-zA-Z0-9]{20,}"),
    re.compile(r"[a-zA-Z0-9]{32,}"),
    re.compile(r"password\s*=\s*['\"][^'\"]{8,}['\"]", re.IGNORECASE),
    re.compile(r"api[_-]?key\s*=\s*['\"][^'\"]{16,}['\"]", re.IGNORECASE),
]
_FALSE_POSITIVE_MARKERS = ("example", "test", "mock", "sample")

_RAW_LOGGING = re.compile(r"(print|logger\.\w+)\((args|result)\)")


class AuditFinding(BaseModel):
    severity: FindingSeverity
    category: str
    description: str
    location: Optional[str] = None
    evidence: Optional[str] = None
    fix_recommendation: str


class AuditResult(BaseModel):
    id: str
    timestamp: str
    audit_type: AuditType
    status: AuditStatus
    score: int
    findings: List[AuditFinding] = Field(default_factory=list)
    summary: str
    recommendations: List[str] = Field(default_factory=list)
    next_audit_due: str


class ComplianceReport(BaseModel):
    overall_score: float
    audit_results: List[AuditResult]
    trends: Dict[str, List[str]] = Field(
        default_factory=lambda: {"improving": [], "declining": [], "stable": []}
    )
    risk_level: RiskLevel
    action_items: List[str] = Field(default_factory=list)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def build_audit_result(audit_type: str, score: int, findings: List[AuditFinding],
                       summary: str) -> AuditResult:
    """Derive status, recommendations and the next due date from findings."""
    severities = {f.severity for f in findings}
    if score < 70 or "critical" in severities:
        status = "fail"
    elif score < 85 or "high" in severities:
        status = "warning"
    else:
        status = "pass"

    recommendations = [
        f.fix_recommendation for f in findings if f.severity in ("critical", "high")
    ][:5]

    if "critical" in severities:
        days = 7
    elif "high" in severities:
        days = 14
    elif "medium" in severities:
        days = 30
    else:
        days = 90

    return AuditResult(
        id=f"audit_{int(time.time() * 1000)}_{secrets.token_hex(4)}",
        timestamp=_now().isoformat(),
        audit_type=audit_type,
        status=status,
        score=max(0, min(100, score)),
        findings=findings,
        summary=summary,
        recommendations=recommendations,
        next_audit_due=(_now() + timedelta(days=days)).isoformat(),
    )


def build_compliance_report(results: List[AuditResult]) -> ComplianceReport:
    overall = sum(r.score for r in results) / len(results) if results else 0.0
    critical = [f for r in results for f in r.findings if f.severity == "critical"]
    if critical:
        risk = "critical"
    elif overall < 70:
        risk = "high"
    elif overall < 85:
        risk = "medium"
    else:
        risk = "low"

    action_items = list(dict.fromkeys(item for r in results for item in r.recommendations))[:10]
    return ComplianceReport(
        overall_score=overall,
        audit_results=results,
        risk_level=risk,
        action_items=action_items,
    )


class CodeModeAuditor:
    """Runs the audits against a project tree and keeps their history on disk."""

    def __init__(self, output_dir: Optional[Path] = None, project_root: Optional[Path] = None):
        self.output_dir = Path(output_dir) if output_dir else get_settings().data_path / "audits"
        self.project_root = Path(project_root) if project_root else PROJECT_ROOT
        self.audit_log_path = self.output_dir / "audit-log.json"
        self.report_path = self.output_dir / "compliance-report.json"
        self.schedule_path = self.output_dir / "audit-schedule.json"

    # ------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------
    def _read(self, relative: str) -> Optional[str]:
        path = self.project_root / relative
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _source_files(self, relative_dir: str) -> List[Path]:
        base = self.project_root / relative_dir
        if not base.is_dir():
            return []
        return sorted(
            p for p in base.rglob("*.py")
            if not any(part.startswith(".") or part == "__pycache__" for part in p.parts)
        )

    # ------------------------------------------------------------
    # Audits
    # ------------------------------------------------------------
    def audit_redaction_coverage(self) -> AuditResult:
        findings: List[AuditFinding] = []
        score = 100

        names = {p.name for p in REDACTION_PATTERNS}
        for pattern in ESSENTIAL_PATTERNS:
            if pattern not in names:
                findings.append(AuditFinding(
                    severity="high",
                    category="incomplete-redaction",
                    description=f"Missing redaction pattern for {pattern}",
                    location="notebypine/agent/redact.py",
                    fix_recommendation=f"Add redaction pattern for {pattern}",
                ))
                score -= 10

        call_tool = self._read("notebypine/agent/call_tool.py")
        if call_tool is not None and "redact_args" not in call_tool and "redact_json" not in call_tool:
            findings.append(AuditFinding(
                severity="high",
                category="unused-redaction",
                description="Redaction not integrated in tool calls",
                location="notebypine/agent/call_tool.py",
                fix_recommendation="Integrate redaction in call_mcp_tool",
            ))
            score -= 20

        failures = sum(
            1 for text, raw in REDACTION_PROBES
            if not contains_sensitive_data(text) or raw in redact_string(text)
        )
        if failures:
            findings.append(AuditFinding(
                severity="medium",
                category="ineffective-redaction",
                description=f"{failures} test cases not properly redacted",
                fix_recommendation="Review and improve redaction patterns",
            ))
            score -= failures * 5

        return build_audit_result("redaction", score, findings, "Redaction coverage and effectiveness")

    def audit_logging_hygiene(self) -> AuditResult:
        findings: List[AuditFinding] = []
        score = 100

        for relative in ("notebypine/agent/call_tool.py", "notebypine/agent/router.py",
                         "notebypine/agent/feedback.py"):
            content = self._read(relative)
            if content is None:
                continue
            if "logger" not in content:
                findings.append(AuditFinding(
                    severity="medium",
                    category="no-logging",
                    description="No logging found in helper module",
                    location=relative,
                    fix_recommendation="Add a module logger for debugging and monitoring",
                ))
                score -= 15
            if _RAW_LOGGING.search(content):
                findings.append(AuditFinding(
                    severity="high",
                    category="raw-data-logging",
                    description="Raw data potentially being logged without redaction",
                    location=relative,
                    fix_recommendation="Log through redact_json or safe_log",
                ))
                score -= 20
            if "try:" in content and "logger.error" not in content and "logger.exception" not in content:
                findings.append(AuditFinding(
                    severity="low",
                    category="insufficient-error-logging",
                    description="Error handling without error logging",
                    location=relative,
                    fix_recommendation="Log failures inside except blocks",
                ))
                score -= 10

        inconsistent = []
        for relative in ("notebypine/agent/call_tool.py", "notebypine/agent/skills/triage.py",
                         "notebypine/agent/skills/export_publish.py"):
            content = self._read(relative)
            if content is not None and "logging.getLogger(__name__)" not in content:
                inconsistent.append(relative)
        if inconsistent:
            findings.append(AuditFinding(
                severity="low",
                category="inconsistent-logging",
                description="Inconsistent logging setup across modules",
                evidence=", ".join(inconsistent),
                fix_recommendation="Use logging.getLogger(__name__) in every module",
            ))
            score -= 10

        return build_audit_result("logging", score, findings, "Logging hygiene and best practices")

    def audit_security_practices(self) -> AuditResult:
        findings: List[AuditFinding] = []
        score = 100

        guidance = self._read("AGENTS.md")
        if guidance is None:
            findings.append(AuditFinding(
                severity="critical",
                category="missing-security-guidance",
                description="No AGENTS.md file found",
                fix_recommendation="Create AGENTS.md with security guidance for agents",
            ))
            score -= 40
        else:
            for directive in SECURITY_DIRECTIVES:
                if directive not in guidance:
                    findings.append(AuditFinding(
                        severity="high",
                        category="missing-security-directive",
                        description=f"Missing security directive: {directive}",
                        location="AGENTS.md",
                        fix_recommendation=f"Add prohibition for {directive}",
                    ))
                    score -= 15

        for path in self._source_files("notebypine/agent"):
            content = path.read_text(encoding="utf-8")
            suspicious = [
                match
                for pattern in SECRET_PATTERNS
                for match in pattern.findall(content)
                if not any(marker in match.lower() for marker in _FALSE_POSITIVE_MARKERS)
            ]
            if suspicious:
                findings.append(AuditFinding(
                    severity="critical",
                    category="hardcoded-secrets",
                    description="Potential hardcoded secrets detected",
                    location=str(path.relative_to(self.project_root)),
                    evidence=f"{len(suspicious)} suspicious patterns found",
                    fix_recommendation="Remove hardcoded secrets and use environment variables",
                ))
                score -= 25

        return build_audit_result("security", score, findings, "Security practices and compliance")

    def audit_performance_optimization(self) -> AuditResult:
        findings: List[AuditFinding] = []
        score = 100

        call_tool = self._read("notebypine/agent/call_tool.py")
        if call_tool is not None:
            if "chunk" not in call_tool:
                findings.append(AuditFinding(
                    severity="medium",
                    category="no-chunking",
                    description="No chunking implementation for large datasets",
                    location="notebypine/agent/call_tool.py",
                    fix_recommendation="Implement chunking for processing large datasets",
                ))
                score -= 20
            if "sample_size" not in call_tool and "limit" not in call_tool:
                findings.append(AuditFinding(
                    severity="low",
                    category="no-sampling",
                    description="No sampling for large result sets",
                    location="notebypine/agent/call_tool.py",
                    fix_recommendation="Sample large results to keep summaries short",
                ))
                score -= 15

        router = self._read("notebypine/agent/router.py")
        if router is not None and "cache" not in router.lower():
            findings.append(AuditFinding(
                severity="low",
                category="no-caching",
                description="No caching settings for routed calls",
                location="notebypine/agent/router.py",
                fix_recommendation="Add caching for frequently accessed data",
            ))
            score -= 10

        return build_audit_result("performance", score, findings, "Performance optimization and efficiency")

    def audit_compliance(self) -> AuditResult:
        findings: List[AuditFinding] = []
        score = 100

        for doc in REQUIRED_DOCS:
            if not (self.project_root / doc).exists():
                findings.append(AuditFinding(
                    severity="medium",
                    category="missing-documentation",
                    description=f"Required documentation missing: {doc}",
                    fix_recommendation=f"Create or update {doc}",
                ))
                score -= 15

        tests = self._source_files("tests")
        sources = self._source_files("notebypine/agent")
        if not tests:
            findings.append(AuditFinding(
                severity="medium",
                category="no-tests",
                description="No test files found",
                fix_recommendation="Add a test suite",
            ))
            score -= 25
        elif sources and len(tests) / len(sources) < 0.5:
            ratio = len(tests) / len(sources)
            findings.append(AuditFinding(
                severity="low",
                category="low-test-coverage",
                description=f"Low test coverage: {round(ratio * 100)}%",
                fix_recommendation="Increase test coverage to at least 50%",
            ))
            score -= 10

        return build_audit_result("compliance", score, findings, "Documentation and testing compliance")

    def run_full_audit(self) -> List[AuditResult]:
        logger.info("Starting full Code Mode audit")
        results = [
            self.audit_redaction_coverage(),
            self.audit_logging_hygiene(),
            self.audit_security_practices(),
            self.audit_performance_optimization(),
            self.audit_compliance(),
        ]
        for r in results:
            logger.info(f"Audit {r.audit_type}: {r.status} ({r.score}/100, {len(r.findings)} findings)")
        self._save_results(results)
        self._save_report(build_compliance_report(results))
        logger.info("Full audit completed")
        return results

    # ------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------
    def load_audit_log(self) -> List[AuditResult]:
        if not self.audit_log_path.exists():
            return []
        try:
            raw = json.loads(self.audit_log_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load audit log: {e}")
            return []
        return [AuditResult(**item) for item in raw]

    def _save_results(self, results: List[AuditResult]) -> None:
        history = self.load_audit_log() + results
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.audit_log_path.write_text(
            json.dumps([r.model_dump() for r in history], indent=2), encoding="utf-8"
        )

    def _save_report(self, report: ComplianceReport) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.report_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")

    def get_compliance_report(self) -> Optional[ComplianceReport]:
        if not self.report_path.exists():
            return None
        try:
            return ComplianceReport.model_validate_json(self.report_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load compliance report: {e}")
            return None

    # ------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------
    def schedule_audit(self, frequency_days: int = 30) -> Dict[str, Any]:
        now = _now()
        schedule = {
            "enabled": True,
            "frequency_days": frequency_days,
            "last_audit": now.isoformat(),
            "next_audit": (now + timedelta(days=frequency_days)).isoformat(),
        }
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.schedule_path.write_text(json.dumps(schedule, indent=2), encoding="utf-8")
        logger.info(f"Audit scheduled every {frequency_days} days")
        return schedule

    def is_audit_due(self) -> bool:
        if not self.schedule_path.exists():
            return True
        try:
            schedule = json.loads(self.schedule_path.read_text(encoding="utf-8"))
            return _now() >= datetime.fromisoformat(schedule["next_audit"])
        except (OSError, ValueError, KeyError):
            return True


def format_audit_summary(results: List[AuditResult]) -> str:
    lines = ["Audit Summary:"]
    for r in results:
        lines.append(f"{r.audit_type}: {r.status.upper()} ({r.score}/100)")
        if r.findings:
            lines.append(f"  Findings: {len(r.findings)}")
    return "\n".join(lines)


def format_compliance_report(report: Optional[ComplianceReport]) -> str:
    if report is None:
        return "No compliance report available. Run audit first."
    lines = [
        f"Overall Score: {report.overall_score:.1f}/100",
        f"Risk Level: {report.risk_level.upper()}",
        f"Action Items: {len(report.action_items)}",
    ]
    if report.action_items:
        lines += ["", "Top Action Items:"]
        lines += [f"{n}. {item}" for n, item in enumerate(report.action_items[:5], 1)]
    return "\n".join(lines)
