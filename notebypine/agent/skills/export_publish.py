"""
Export the knowledge base through the export_knowledge tool and save it
under the data directory, optionally alongside a flat CSV of the records.

Only local publishing is supported: files are written to
<data dir>/exports unless an explicit output path is given.
"""

import calendar
import csv
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from notebypine.agent.call_tool import MCPToolOptions, call_mcp_tool
from notebypine.agent.wrappers import ToolInvoker, local_invoker
from notebypine.config import get_settings
from notebypine.knowledge.export import FILE_EXTENSIONS

logger = logging.getLogger(__name__)

Frequency = Literal["daily", "weekly", "monthly"]

ARRAY_DELIMITER = ";"


@dataclass
class ExportPublishResult:
    success: bool = False
    format: str = "json"
    item_count: int = 0
    file_path: Optional[str] = None
    csv_path: Optional[str] = None
    size: str = "0.00 KB"
    next_run: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    summary: str = ""


@dataclass
class CSVExportResult:
    success: bool
    file_path: Optional[str] = None
    rows_exported: int = 0
    error: Optional[str] = None
    summary: str = ""


# ============================================================
# CSV sheets
# ============================================================
def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ARRAY_DELIMITER.join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def export_filename(data_name: str, extension: str, when: Optional[datetime] = None) -> str:
    when = when or datetime.now(timezone.utc)
    clean = re.sub(r"[^a-zA-Z0-9]", "_", data_name).lower()
    return f"{clean}_{when.strftime('%Y-%m-%d_%H-%M-%S')}.{extension}"


def save_rows_as_csv(rows: List[Dict[str, Any]], data_name: str,
                     output_path: Optional[Path] = None) -> CSVExportResult:
    """Write dict rows to a CSV file with a sorted union of their keys as header."""
    if not rows:
        return CSVExportResult(success=True, summary="No data to export")

    path = Path(output_path) if output_path else (
        get_settings().data_path / "exports" / export_filename(data_name, "csv")
    )
    columns = sorted({key for row in rows for key in row})
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
            writer.writerow(columns)
            for row in rows:
                writer.writerow([_cell(row.get(c)) for c in columns])
    except OSError as e:
        logger.error(f"CSV export failed: {e}")
        return CSVExportResult(success=False, error=str(e), summary=f"CSV Export Failed: {e}")

    size_kb = path.stat().st_size / 1024
    logger.info(f"Saved {len(rows)} rows to {path}")
    return CSVExportResult(
        success=True,
        file_path=str(path),
        rows_exported=len(rows),
        summary=f"CSV Export Successful: {path} ({len(rows)} rows, {size_kb:.2f} KB)",
    )


def knowledge_rows(records: List[Dict[str, Any]], mode: str = "full") -> List[Dict[str, Any]]:
    """Flatten exported incident records for a spreadsheet."""
    rows = []
    for r in records:
        solutions = r.get("solutions") or []
        lessons = r.get("lessons") or []
        if mode == "summary":
            rows.append({
                "id": r.get("id", ""),
                "title": r.get("title", ""),
                "category": r.get("category", ""),
                "severity": r.get("severity", ""),
                "status": r.get("status", ""),
                "solution_count": len(solutions),
                "has_lessons": "Yes" if lessons else "No",
                "created": r.get("created") or "",
            })
        else:
            rows.append({
                "incident_id": r.get("id", ""),
                "incident_title": r.get("title", ""),
                "category": r.get("category", ""),
                "severity": r.get("severity", ""),
                "status": r.get("status", ""),
                "description": r.get("description", ""),
                "symptoms": r.get("symptoms", ""),
                "context": r.get("context", ""),
                "environment": r.get("environment", ""),
                "root_cause": r.get("root_cause", ""),
                "created": r.get("created") or "",
                "updated": r.get("updated") or "",
                "solutions": [s.get("solution_title", "") for s in solutions],
                "lessons": [l.get("problem_summary") or l.get("lesson_text", "") for l in lessons],
            })
    return rows


# ============================================================
# Scheduling
# ============================================================
def calculate_next_run(frequency: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if frequency == "daily":
        next_run = now + timedelta(days=1)
    elif frequency == "weekly":
        next_run = now + timedelta(days=7)
    elif frequency == "monthly":
        year = now.year + (1 if now.month == 12 else 0)
        month = 1 if now.month == 12 else now.month + 1
        day = min(now.day, calendar.monthrange(year, month)[1])
        next_run = now.replace(year=year, month=month, day=day)
    else:
        raise ValueError(f"Unsupported frequency '{frequency}'. Use: daily, weekly, monthly")
    return next_run.isoformat()


# ============================================================
# Workflow
# ============================================================
async def export_and_publish(
    format: str = "json",
    filters: Optional[Dict[str, str]] = None,
    output_path: Optional[Path] = None,
    include_csv: bool = False,
    schedule: Optional[Frequency] = None,
    invoker: ToolInvoker = local_invoker,
) -> ExportPublishResult:
    """Export, save the rendered content, optionally save a CSV sheet.

    Failures are reported in ``errors``; nothing is raised.
    """
    result = ExportPublishResult(format=format)
    args: Dict[str, Any] = {"format": format}
    if filters:
        args["filter"] = filters

    logger.info(f"Exporting knowledge base in {format} format")
    outcome = await call_mcp_tool("export_knowledge", args,
                                  MCPToolOptions(enable_chunking=False), invoker)
    if not outcome.success:
        result.errors.append(f"Export failed: {outcome.error}")
        result.summary = f"Export and publish failed: {outcome.error}"
        logger.error(result.summary)
        return result

    data = outcome.data or {}
    records = data.get("records") or []
    result.item_count = data.get("count", len(records))

    extension = FILE_EXTENSIONS.get(format, format)
    path = Path(output_path) if output_path else (
        get_settings().data_path / "exports" / export_filename("knowledge_export", extension)
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data.get("content", ""), encoding="utf-8")
    except OSError as e:
        result.errors.append(f"Saving export failed: {e}")
        result.summary = f"Export and publish failed: {e}"
        logger.error(result.summary)
        return result

    result.file_path = str(path)
    result.size = f"{path.stat().st_size / 1024:.2f} KB"
    logger.info(f"Export saved to: {path} ({result.size})")

    if include_csv:
        sheet = save_rows_as_csv(knowledge_rows(records), "knowledge_base_full",
                                 path.with_name(f"{path.stem}_records.csv"))
        if sheet.success:
            result.csv_path = sheet.file_path
        else:
            result.errors.append(f"CSV sheet failed: {sheet.error}")

    if schedule:
        result.next_run = calculate_next_run(schedule)
        logger.info(f"Next run scheduled: {result.next_run}")

    result.success = not result.errors
    lines = [
        "Export and Publish Summary:",
        f"Exported {result.item_count} items in {format} format",
        f"File saved: {result.file_path} ({result.size})",
    ]
    if result.csv_path:
        lines.append(f"Records sheet: {result.csv_path}")
    lines.append(f"Next scheduled run: {result.next_run}" if result.next_run else "No recurring schedule set")
    lines.append(f"Errors: {', '.join(result.errors)}" if result.errors else "No errors")
    result.summary = "\n".join(lines)
    logger.info(result.summary)
    return result


async def quick_export(format: str = "json", filters: Optional[Dict[str, str]] = None,
                       invoker: ToolInvoker = local_invoker) -> ExportPublishResult:
    return await export_and_publish(format, filters, invoker=invoker)
