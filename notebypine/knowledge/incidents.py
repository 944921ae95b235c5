"""
Incident operations.

Shared by the MCP tools and the admin REST API. Every function talks to
PocketBase through get_database(), converts upstream failures into AppError
subclasses and drops the relevant query caches after writes.
"""

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from notebypine.database import get_database
from notebypine.models.incident import (
    CATEGORIES, SEVERITIES, STATUSES,
    Incident, IncidentCreate, IncidentPage, IncidentSearch, IncidentUpdate,
)
from notebypine.pocketbase import pb_and, pb_eq
from notebypine.queries import (
    INCIDENTS, KNOWLEDGE, LESSONS, SOLUTIONS,
    CacheManager, IncidentQueries,
)
from notebypine.utils.errors import ValidationError, pocketbase_errors

logger = logging.getLogger(__name__)

MAX_SIMILAR_TERMS = 5

_STOPWORDS = {
    "the", "and", "for", "with", "from", "that", "this", "when", "after",
    "before", "into", "over", "under", "while", "during", "have", "has",
    "were", "was", "are", "not", "failed", "failing", "error", "errors",
    "issue", "problem",
}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def significant_terms(text: str, limit: int = MAX_SIMILAR_TERMS) -> List[str]:
    """Pick the distinctive words of a title for similarity matching.

    Words longer than three characters that are not stopwords, in order of
    first appearance, de-duplicated.
    """
    terms: List[str] = []
    for word in re.findall(r"[A-Za-z0-9_]+", text.lower()):
        if len(word) <= 3 or word in _STOPWORDS or word in terms:
            continue
        terms.append(word)
        if len(terms) >= limit:
            break
    return terms


def _invalidate_incidents() -> None:
    CacheManager.invalidate_type("incidents")


# ============================================================
# Create / read
# ============================================================
async def create_incident(data: IncidentCreate) -> Incident:
    """Persist a new incident. New incidents always start as open."""
    pb = get_database()
    payload = data.model_dump()
    payload["status"] = "open"
    payload["root_cause"] = ""

    with pocketbase_errors("Incident"):
        record = await pb.create_record(INCIDENTS, payload)

    _invalidate_incidents()
    logger.info(f"Incident created: {record['id']} ({data.category}/{data.severity})")
    return Incident(**record)


async def get_incident(incident_id: str, use_cache: bool = True) -> Incident:
    """Fetch one incident.

    Raises:
        NotFoundError: If no incident has this id.
    """
    query = IncidentQueries.get_incident_by_id(incident_id)
    if not use_cache:
        query.no_cache()
    with pocketbase_errors("Incident"):
        record = await query.execute()
    return Incident(**record)


async def list_incidents(
    page: int = 1,
    per_page: int = 20,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    status: Optional[str] = None,
) -> IncidentPage:
    with pocketbase_errors("Incident"):
        data = await IncidentQueries.get_incidents_paginated(
            page, per_page, category=category, severity=severity, status=status
        ).execute()
    return IncidentPage(
        items=[Incident(**item) for item in data.get("items", [])],
        page=data.get("page", page),
        per_page=data.get("perPage", per_page),
        total=data.get("totalItems", 0),
    )


async def search_incidents(params: IncidentSearch) -> Tuple[List[Incident], int]:
    """Case-insensitive substring search over title and description.

    Returns:
        Tuple of (matching incidents newest first, total match count).
    """
    with pocketbase_errors("Incident"):
        data = await IncidentQueries.search_incidents(
            params.query,
            category=params.category,
            severity=params.severity,
            status=params.status,
            limit=params.limit,
        ).execute()
    items = [Incident(**item) for item in data.get("items", [])]
    return items, data.get("totalItems", len(items))


async def get_similar_incidents(
    incident_id: str, limit: int = 5
) -> Tuple[Incident, List[Incident], int]:
    """Find incidents in the same category sharing significant title terms.

    Returns:
        Tuple of (source incident, similar incidents, total matches).
    """
    if not 1 <= limit <= 20:
        raise ValidationError("limit must be between 1 and 20")

    source = await get_incident(incident_id)
    terms = significant_terms(source.title)
    if not terms:
        return source, [], 0

    with pocketbase_errors("Incident"):
        data = await IncidentQueries.get_similar_incidents(
            source.id, source.category, terms, limit
        ).execute()
    items = [Incident(**item) for item in data.get("items", [])]
    return source, items, data.get("totalItems", len(items))


# ============================================================
# Update / delete
# ============================================================
async def update_incident(incident_id: str, data: IncidentUpdate) -> Incident:
    """Partial update; only fields that were set are written."""
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    if changes.get("status") == "resolved":
        changes.setdefault("resolved_at", utc_now())

    pb = get_database()
    with pocketbase_errors("Incident"):
        record = await pb.update_record(INCIDENTS, incident_id, changes)

    _invalidate_incidents()
    logger.info(f"Incident updated: {incident_id} ({', '.join(changes)})")
    return Incident(**record)


async def update_incident_status(
    incident_id: str, status: str, notes: Optional[str] = None
) -> Incident:
    """Move an incident through its lifecycle.

    Any status may follow any other. Moving to resolved stamps resolved_at.
    """
    if status not in STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(STATUSES)}"
        )

    changes: Dict[str, Any] = {"status": status}
    if status == "resolved":
        changes["resolved_at"] = utc_now()

    pb = get_database()
    with pocketbase_errors("Incident"):
        record = await pb.update_record(INCIDENTS, incident_id, changes)

    _invalidate_incidents()
    if notes:
        logger.info(f"Incident {incident_id} -> {status}: {notes}")
    else:
        logger.info(f"Incident {incident_id} -> {status}")
    return Incident(**record)


async def delete_incident(incident_id: str) -> None:
    pb = get_database()
    with pocketbase_errors("Incident"):
        await pb.delete_record(INCIDENTS, incident_id)
    _invalidate_incidents()
    logger.info(f"Incident deleted: {incident_id}")


# ============================================================
# Stats
# ============================================================
async def incident_stats(days: int = 7) -> Dict[str, Any]:
    """Totals per collection, incident breakdowns and recent activity."""
    pb = get_database()
    since = (datetime.now(timezone.utc) - timedelta(days=days)).strftime("%Y-%m-%d %H:%M:%S")
    recent_filter = f'created >= "{since}"'

    async def breakdown(field: str, values) -> Dict[str, int]:
        counts = await asyncio.gather(*(pb.count(INCIDENTS, pb_eq(field, v)) for v in values))
        return dict(zip(values, counts))

    with pocketbase_errors("Stats"):
        totals = await asyncio.gather(
            pb.count(INCIDENTS), pb.count(SOLUTIONS), pb.count(LESSONS), pb.count(KNOWLEDGE),
        )
        by_status, by_category, by_severity = await asyncio.gather(
            breakdown("status", STATUSES),
            breakdown("category", CATEGORIES),
            breakdown("severity", SEVERITIES),
        )
        recent_incidents, recent_solutions = await asyncio.gather(
            pb.count(INCIDENTS, recent_filter),
            pb.count(SOLUTIONS, recent_filter),
        )
        open_critical = await pb.count(
            INCIDENTS, pb_and(pb_eq("severity", "critical"), pb_eq("status", "open"))
        )

    return {
        "totals": {
            "incidents": totals[0],
            "solutions": totals[1],
            "lessons": totals[2],
            "knowledge": totals[3],
        },
        "by_status": by_status,
        "by_category": by_category,
        "by_severity": by_severity,
        "open_critical": open_critical,
        "recent_activity": {
            "days": days,
            "incidents": recent_incidents,
            "solutions": recent_solutions,
        },
    }
