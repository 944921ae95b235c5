"""
Log-file triage: parse log lines, keep the high-priority ones, group
near-duplicates and open one incident per group.

Supported formats: text (several common timestamp/level layouts), json
(one object per line), apache (common log format) and nginx (combined log
format). HTTP status >= 500 maps to level "error", >= 400 to "warn".
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from notebypine.agent.call_tool import MCPToolOptions, call_mcp_tool
from notebypine.agent.redact import redact_string
from notebypine.agent.wrappers import ToolInvoker, local_invoker

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.7
CONTEXT_LINES = 5
MESSAGE_TITLE_LENGTH = 100

DEFAULT_SEVERITY_THRESHOLDS = {
    "error": "high",
    "critical": "critical",
    "warn": "medium",
    "warning": "medium",
    "info": "low",
    "debug": "low",
}

DEFAULT_CATEGORY_KEYWORDS = {
    "Backend": ["api", "server", "database", "backend", "service", "microservice"],
    "Frontend": ["ui", "frontend", "client", "browser", "javascript", "react", "vue"],
    "DevOps": ["deploy", "ci", "cd", "docker", "kubernetes", "infrastructure"],
    "Health": ["health", "monitoring", "metrics", "alert", "heartbeat"],
    "Finance": ["payment", "billing", "subscription", "transaction"],
    "Mobile": ["mobile", "ios", "android", "app", "phone"],
}

ATTENTION_SEVERITIES = ("high", "critical")


@dataclass
class LogEntry:
    timestamp: str
    level: str
    message: str
    source: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TriageConfig:
    severity_thresholds: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_SEVERITY_THRESHOLDS))
    category_keywords: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_KEYWORDS.items()})
    max_incidents_per_batch: int = 5
    visibility: str = "team"


@dataclass
class TriageResult:
    processed_log_count: int = 0
    attention_count: int = 0
    incidents_created: int = 0
    incidents_skipped: int = 0
    errors: List[str] = field(default_factory=list)
    created_incident_ids: List[str] = field(default_factory=list)
    summary: str = ""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# Parsers
# ============================================================
_TEXT_PATTERNS = [
    re.compile(r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}[.\d]*Z?)\s+(\w+)\s+(.+)$"),
    re.compile(r"^\[([^\]]+)\]\s+(\w+):\s+(.+)$"),
    re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})\s+\[(\w+)\]\s+(.+)$"),
]
_LEVEL_ONLY = re.compile(r"^(\w+):\s+(.+)$")

_APACHE = re.compile(r'^(\S+) \S+ \S+ \[([^\]]+)\] "(\S+) (\S+) (\S+)" (\d{3}) (\d+|-)')
_NGINX = re.compile(
    r'^(\S+) - \S+ \[([^\]]+)\] "(\S+) (\S+) (\S+)" (\d{3}) (\d+) "([^"]*)" "([^"]*)"'
)


def parse_text_line(line: str) -> LogEntry:
    for pattern in _TEXT_PATTERNS:
        m = pattern.match(line)
        if m:
            timestamp, level, message = m.groups()
            return LogEntry(timestamp, level.lower(), message, "unknown")
    m = _LEVEL_ONLY.match(line)
    if m:
        return LogEntry(_now_iso(), m.group(1).lower(), m.group(2), "unknown")
    return LogEntry(_now_iso(), "info", line, "unknown")


def parse_json_line(line: str) -> LogEntry:
    try:
        parsed = json.loads(line)
    except ValueError:
        return parse_text_line(line)
    if not isinstance(parsed, dict):
        return parse_text_line(line)
    return LogEntry(
        timestamp=str(parsed.get("timestamp") or parsed.get("time") or parsed.get("@timestamp") or _now_iso()),
        level=str(parsed.get("level") or parsed.get("severity") or "info").lower(),
        message=str(parsed.get("message") or parsed.get("msg") or line),
        source=parsed.get("source") or parsed.get("service"),
        metadata=parsed,
    )


def _http_level(status: int) -> str:
    if status >= 500:
        return "error"
    if status >= 400:
        return "warn"
    return "info"


def parse_apache_line(line: str) -> Optional[LogEntry]:
    m = _APACHE.match(line)
    if not m:
        return None
    ip, timestamp, method, path, protocol, status, size = m.groups()
    return LogEntry(
        timestamp=timestamp,
        level=_http_level(int(status)),
        message=f"{method} {path} {protocol} - {status}",
        source="apache",
        metadata={"ip": ip, "method": method, "path": path, "protocol": protocol,
                  "status": int(status), "size": size},
    )


def parse_nginx_line(line: str) -> Optional[LogEntry]:
    m = _NGINX.match(line)
    if not m:
        return None
    ip, timestamp, method, path, protocol, status, size, referer, user_agent = m.groups()
    return LogEntry(
        timestamp=timestamp,
        level=_http_level(int(status)),
        message=f"{method} {path} {protocol} - {status}",
        source="nginx",
        metadata={"ip": ip, "method": method, "path": path, "protocol": protocol,
                  "status": int(status), "size": size, "referer": referer,
                  "user_agent": user_agent},
    )


PARSERS: Dict[str, Callable[[str], Optional[LogEntry]]] = {
    "text": parse_text_line,
    "json": parse_json_line,
    "apache": parse_apache_line,
    "nginx": parse_nginx_line,
}


def parse_log_lines(content: str, log_format: str = "text") -> List[LogEntry]:
    """Parse non-blank lines; lines a format's parser rejects are dropped."""
    parser = PARSERS.get(log_format)
    if parser is None:
        raise ValueError(f"Unsupported log format '{log_format}'. Use: {', '.join(PARSERS)}")
    entries = []
    for line in content.splitlines():
        if not line.strip():
            continue
        entry = parser(line)
        if entry is not None:
            entries.append(entry)
    return entries


# ============================================================
# Classification and grouping
# ============================================================
def determine_category(entry: LogEntry, config: TriageConfig) -> str:
    message = entry.message.lower()
    source = (entry.source or "").lower()
    for category, keywords in config.category_keywords.items():
        for keyword in keywords:
            if keyword in message or keyword in source:
                return category
    return "Backend"


def message_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the lower-cased word sets."""
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    union = words_a | words_b
    if not union:
        return 1.0
    return len(words_a & words_b) / len(union)


def group_similar_entries(entries: List[LogEntry]) -> List[List[LogEntry]]:
    """Greedy grouping: same level, same source, similarity above 0.7."""
    groups = []
    taken = set()
    for i, first in enumerate(entries):
        if i in taken:
            continue
        group = [first]
        taken.add(i)
        for j in range(i + 1, len(entries)):
            if j in taken:
                continue
            other = entries[j]
            if (other.level == first.level and other.source == first.source
                    and message_similarity(first.message, other.message) > SIMILARITY_THRESHOLD):
                group.append(other)
                taken.add(j)
        groups.append(group)
    return groups


def extract_context(entries: List[LogEntry], index: int) -> str:
    """Up to five entries either side of index, one per line."""
    window = entries[max(0, index - CONTEXT_LINES):index + CONTEXT_LINES + 1]
    return "\n".join(f"[{e.timestamp}] {e.level.upper()}: {e.message}" for e in window)


def build_incident_args(entry: LogEntry, context: str, config: TriageConfig,
                        group_size: int = 1) -> Dict[str, Any]:
    message = entry.message
    title = message[:MESSAGE_TITLE_LENGTH] + ("..." if len(message) > MESSAGE_TITLE_LENGTH else "")
    source = entry.source or "unknown"
    return {
        "title": f"{entry.level.upper()}: {redact_string(title)}",
        "category": determine_category(entry, config),
        "description": f"Log entry detected at {entry.timestamp} from {source}",
        "symptoms": redact_string(message),
        "context": redact_string(context),
        "environment": source,
        "severity": config.severity_thresholds.get(entry.level, "low"),
        "visibility": config.visibility,
        "frequency": "recurring" if group_size > 1 else "one-time",
    }


# ============================================================
# Triage
# ============================================================
def format_triage_summary(result: TriageResult) -> str:
    return "\n".join([
        "Log Triage Summary:",
        f"- Log entries processed: {result.processed_log_count}",
        f"- High-priority entries found: {result.attention_count}",
        f"- Incidents created: {result.incidents_created}",
        f"- Incidents skipped: {result.incidents_skipped}",
        f"- Errors encountered: {len(result.errors)}",
        "",
        f"Created incident IDs: {', '.join(result.created_incident_ids) or 'None'}",
    ])


async def triage_from_logfile(
    content: str,
    config: Optional[TriageConfig] = None,
    log_format: str = "text",
    invoker: ToolInvoker = local_invoker,
) -> TriageResult:
    """Create incidents for the high-priority entries of a log.

    At most ``max_incidents_per_batch`` incidents are created; the remaining
    groups count as skipped, as do groups whose creation failed.
    """
    config = config or TriageConfig()
    result = TriageResult()

    entries = parse_log_lines(content, log_format)
    result.processed_log_count = len(entries)
    logger.info(f"Parsed {len(entries)} log entries")

    attention = [
        e for e in entries
        if config.severity_thresholds.get(e.level, "low") in ATTENTION_SEVERITIES
    ]
    result.attention_count = len(attention)
    logger.info(f"Found {len(attention)} entries requiring attention")
    if not attention:
        result.summary = "No incidents created: no high-priority log entries found"
        return result

    groups = group_similar_entries(attention)
    batch = groups[:config.max_incidents_per_batch]
    logger.info(f"Grouped into {len(groups)} unique incidents, processing {len(batch)}")

    for n, group in enumerate(batch, 1):
        representative = group[0]
        index = next(i for i, e in enumerate(entries) if e is representative)
        logger.info(f"Processing incident {n}/{len(batch)}: {redact_string(representative.message[:50])}")

        args = build_incident_args(representative, extract_context(entries, index), config, len(group))
        outcome = await call_mcp_tool("create_incident", args,
                                      MCPToolOptions(enable_chunking=False), invoker)
        incident_id = outcome.data.get("id") if outcome.success and isinstance(outcome.data, dict) else None
        if incident_id:
            result.incidents_created += 1
            result.created_incident_ids.append(incident_id)
            logger.info(f"Created incident: {incident_id}")
        else:
            error = outcome.error or "Failed to create incident"
            result.errors.append(f"Failed to create incident for log entry: {error}")
            result.incidents_skipped += 1
            logger.error(f"Incident creation failed: {error}")

    result.incidents_skipped += len(groups) - len(batch)
    result.summary = format_triage_summary(result)
    logger.info(result.summary)
    return result


def _parse_timestamp(value: str) -> Optional[datetime]:
    for candidate in (value.replace("Z", "+00:00"), value):
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    try:
        return datetime.strptime(value, "%d/%b/%Y:%H:%M:%S %z")
    except ValueError:
        return None


async def triage_recent_errors(
    content: str,
    minutes: int = 60,
    config: Optional[TriageConfig] = None,
    log_format: str = "text",
    invoker: ToolInvoker = local_invoker,
) -> TriageResult:
    """Triage only the entries logged within the last ``minutes``."""
    entries = parse_log_lines(content, log_format)
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    recent = []
    for e in entries:
        ts = _parse_timestamp(e.timestamp)
        if ts is not None and ts >= cutoff:
            recent.append(e)
    logger.info(f"Found {len(recent)} entries from the last {minutes} minutes")

    if not recent:
        return TriageResult(
            processed_log_count=len(entries),
            summary=f"No log entries found in the last {minutes} minutes",
        )
    lines = "\n".join(
        json.dumps({"timestamp": e.timestamp, "level": e.level, "message": e.message,
                    "source": e.source})
        for e in recent
    )
    return await triage_from_logfile(lines, config, "json", invoker)
