"""
Knowledge export.

Collects every incident matching the filter (all pages), joins each with its
solutions and lessons, and renders the result as JSON, CSV or Markdown.

CSV output follows RFC 4180: fields holding a comma, quote, CR or LF are
quoted, embedded quotes are doubled and records end with CRLF.
"""

import asyncio
import csv
import io
import json
import logging
from typing import Dict, List, Optional

from notebypine.config import get_settings
from notebypine.database import get_database
from notebypine.models.incident import Incident
from notebypine.models.knowledge import EXPORT_FORMATS, ExportFilter, ExportRecord
from notebypine.models.lesson import Lesson
from notebypine.models.solution import Solution, decode_steps
from notebypine.pocketbase import pb_and, pb_eq
from notebypine.queries import INCIDENTS, LESSONS, SOLUTIONS
from notebypine.utils.errors import ValidationError, pocketbase_errors

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "ID", "Title", "Category", "Status", "Severity",
    "Description", "Root Cause", "Solutions", "Lessons", "Created",
]

MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "markdown": "text/markdown",
}

FILE_EXTENSIONS = {"json": "json", "csv": "csv", "markdown": "md"}


def build_export_filter(filters: Optional[ExportFilter]) -> str:
    if filters is None:
        return ""
    return pb_and(*(
        pb_eq(field, value)
        for field, value in filters.model_dump(exclude_none=True).items()
    ))


async def collect_export_records(filters: Optional[ExportFilter] = None) -> List[ExportRecord]:
    """Load matching incidents with their solutions and lessons."""
    pb = get_database()
    page_size = get_settings().export_page_size

    with pocketbase_errors("Export"):
        incidents = await pb.list_all(
            INCIDENTS, filter=build_export_filter(filters) or None, page_size=page_size
        )

        async def related(incident: Dict) -> ExportRecord:
            by_incident = pb_eq("incident_id", incident["id"])
            solutions, lessons = await asyncio.gather(
                pb.list_all(SOLUTIONS, filter=by_incident, sort="created", page_size=page_size),
                pb.list_all(LESSONS, filter=by_incident, sort="created", page_size=page_size),
            )
            return ExportRecord(
                **Incident(**incident).model_dump(),
                solutions=[Solution(**s) for s in solutions],
                lessons=[Lesson(**l) for l in lessons],
            )

        records = await asyncio.gather(*(related(i) for i in incidents))

    logger.info(f"Collected {len(records)} incidents for export")
    return list(records)


# ============================================================
# Renderers
# ============================================================
def render_json(records: List[ExportRecord]) -> str:
    return json.dumps([r.model_dump() for r in records], indent=2, ensure_ascii=False)


def render_csv(records: List[ExportRecord]) -> str:
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(CSV_COLUMNS)
    for r in records:
        writer.writerow([
            r.id,
            r.title,
            r.category,
            r.status,
            r.severity,
            r.description,
            r.root_cause,
            "; ".join(s.solution_title for s in r.solutions),
            "; ".join(f"{l.lesson_type}: {l.prevention or l.lesson_text}" for l in r.lessons),
            r.created or "",
        ])
    return buffer.getvalue()


def render_markdown(records: List[ExportRecord]) -> str:
    sections = []
    for r in records:
        lines = [
            f"## {r.title}",
            "",
            f"**Category:** {r.category} | **Status:** {r.status} | **Severity:** {r.severity}",
            "",
            f"**Description:** {r.description}",
            "",
        ]
        if r.root_cause:
            lines += [f"**Root Cause:** {r.root_cause}", ""]
        if r.solutions:
            lines.append("### Solutions")
            for s in r.solutions:
                lines.append(f"- **{s.solution_title}**: {s.solution_description}")
                for n, step in enumerate(decode_steps(s.steps), 1):
                    lines.append(f"  {n}. {step}")
            lines.append("")
        if r.lessons:
            lines.append("### Lessons Learned")
            for l in r.lessons:
                lines.append(f"- *{l.lesson_type}*: {l.prevention or l.lesson_text}")
            lines.append("")
        lines += [f"**Created:** {r.created or 'unknown'}", "", "---", ""]
        sections.append("\n".join(lines))
    return "\n".join(sections)


RENDERERS = {
    "json": render_json,
    "csv": render_csv,
    "markdown": render_markdown,
}


def render_export(records: List[ExportRecord], format: str) -> str:
    if format not in RENDERERS:
        raise ValidationError(
            f"Format is required and must be one of: {', '.join(EXPORT_FORMATS)}"
        )
    return RENDERERS[format](records)


async def export_knowledge(format: str, filters: Optional[ExportFilter] = None) -> Dict:
    """Export the knowledge base.

    Returns:
        Dict with format, count, content and records.
    """
    if format not in RENDERERS:
        raise ValidationError(
            f"Format is required and must be one of: {', '.join(EXPORT_FORMATS)}"
        )
    records = await collect_export_records(filters)
    return {
        "format": format,
        "count": len(records),
        "content": render_export(records, format),
        "records": [r.model_dump() for r in records],
    }
