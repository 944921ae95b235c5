"""
Incidents router.
CRUD, lifecycle moves, statistics, similar incidents and the solutions and
lessons attached to an incident. Writes are broadcast to /ws clients.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from notebypine.events import broadcast
from notebypine.knowledge import incidents, lessons, solutions
from notebypine.models.incident import (
    Category, IncidentCreate, IncidentUpdate, Severity, Status, StatusUpdate,
)
from notebypine.models.lesson import LessonCreate, LessonType
from notebypine.routers.auth import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()


class LessonBody(BaseModel):
    """Lesson fields posted under /incidents/{id}/lessons."""
    problem_summary: str = Field(..., min_length=1)
    root_cause: str = Field(..., min_length=1)
    prevention: str = Field(..., min_length=1)
    lesson_type: LessonType = "general"


@router.get("")
async def list_incidents(
    current_user: dict = Depends(get_current_user),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[Category] = None,
    severity: Optional[Severity] = None,
    status: Optional[Status] = None,
) -> dict:
    """List incidents newest first, optionally filtered by enum fields."""
    result = await incidents.list_incidents(page, limit, category, severity, status)
    return {
        "success": True,
        "data": [i.model_dump() for i in result.items],
        "pagination": {
            "page": result.page,
            "limit": result.per_page,
            "total": result.total,
            "pages": (result.total + result.per_page - 1) // result.per_page if result.per_page else 0,
        },
    }


@router.get("/stats/summary")
async def stats_summary(
    current_user: dict = Depends(get_current_user),
    days: int = Query(7, ge=1, le=365),
) -> dict:
    return {"success": True, "data": await incidents.incident_stats(days)}


@router.get("/{incident_id}")
async def get_incident(incident_id: str, current_user: dict = Depends(get_current_user)) -> dict:
    incident = await incidents.get_incident(incident_id)
    return {"success": True, "data": incident.model_dump()}


@router.post("", status_code=201)
async def create_incident(data: IncidentCreate, current_user: dict = Depends(get_current_user)) -> dict:
    incident = await incidents.create_incident(data)
    payload = incident.model_dump()
    await broadcast("incident_created", payload)
    return {"success": True, "data": payload}


@router.put("/{incident_id}")
async def update_incident(
    incident_id: str,
    data: IncidentUpdate,
    current_user: dict = Depends(get_current_user),
) -> dict:
    """Partial update: only fields present in the body are written."""
    incident = await incidents.update_incident(incident_id, data)
    payload = incident.model_dump()
    await broadcast("incident_updated", payload)
    return {"success": True, "data": payload}


@router.patch("/{incident_id}/status")
async def update_status(
    incident_id: str,
    data: StatusUpdate,
    current_user: dict = Depends(get_current_user),
) -> dict:
    incident = await incidents.update_incident_status(incident_id, data.status, data.notes)
    payload = incident.model_dump()
    await broadcast("incident_updated", payload)
    return {"success": True, "data": payload, "notes": data.notes}


@router.delete("/{incident_id}")
async def delete_incident(incident_id: str, current_user: dict = Depends(get_current_user)) -> dict:
    await incidents.delete_incident(incident_id)
    await broadcast("incident_deleted", {"id": incident_id})
    return {"success": True, "message": "Incident deleted successfully"}


@router.get("/{incident_id}/similar")
async def similar_incidents(
    incident_id: str,
    current_user: dict = Depends(get_current_user),
    limit: int = Query(5, ge=1, le=20),
) -> dict:
    source, items, total = await incidents.get_similar_incidents(incident_id, limit)
    return {
        "success": True,
        "data": [i.model_dump() for i in items],
        "source": source.model_dump(),
        "total": total,
    }


@router.get("/{incident_id}/solutions")
async def incident_solutions(
    incident_id: str,
    current_user: dict = Depends(get_current_user),
    limit: int = Query(10, ge=1, le=100),
) -> dict:
    await incidents.get_incident(incident_id)
    items = await solutions.get_solutions_for_incident(incident_id, limit)
    return {"success": True, "data": [s.model_dump() for s in items]}


@router.post("/{incident_id}/lessons", status_code=201)
async def add_lesson(
    incident_id: str,
    data: LessonBody,
    current_user: dict = Depends(get_current_user),
) -> dict:
    lesson = await lessons.extract_lessons(LessonCreate(incident_id=incident_id, **data.model_dump()))
    payload = lesson.model_dump()
    await broadcast("lesson_created", payload)
    return {"success": True, "data": payload}


@router.get("/{incident_id}/lessons")
async def incident_lessons(
    incident_id: str,
    current_user: dict = Depends(get_current_user),
    limit: int = Query(5, ge=1, le=100),
) -> dict:
    await incidents.get_incident(incident_id)
    items = await lessons.get_lessons_for_incident(incident_id, limit)
    return {"success": True, "data": [l.model_dump() for l in items]}
