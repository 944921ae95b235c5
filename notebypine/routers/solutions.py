"""
Solutions router.
A solution always belongs to an existing incident; creating one for an
unknown incident_id answers 404.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from notebypine.events import broadcast
from notebypine.knowledge import solutions
from notebypine.models.solution import SolutionCreate, SolutionUpdate
from notebypine.routers.auth import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_solutions(
    current_user: dict = Depends(get_current_user),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    incident_id: Optional[str] = None,
) -> dict:
    items, total = await solutions.list_solutions(page, limit, incident_id)
    return {
        "success": True,
        "data": [s.model_dump() for s in items],
        "pagination": {"page": page, "limit": limit, "total": total},
    }


@router.get("/{solution_id}")
async def get_solution(solution_id: str, current_user: dict = Depends(get_current_user)) -> dict:
    solution = await solutions.get_solution(solution_id)
    return {"success": True, "data": solution.model_dump()}


@router.post("", status_code=201)
async def create_solution(data: SolutionCreate, current_user: dict = Depends(get_current_user)) -> dict:
    solution = await solutions.add_solution(data)
    payload = solution.model_dump()
    await broadcast("solution_created", payload)
    return {"success": True, "data": payload}


@router.put("/{solution_id}")
async def update_solution(
    solution_id: str,
    data: SolutionUpdate,
    current_user: dict = Depends(get_current_user),
) -> dict:
    solution = await solutions.update_solution(solution_id, data)
    payload = solution.model_dump()
    await broadcast("solution_updated", payload)
    return {"success": True, "data": payload}


@router.delete("/{solution_id}")
async def delete_solution(solution_id: str, current_user: dict = Depends(get_current_user)) -> dict:
    await solutions.delete_solution(solution_id)
    await broadcast("solution_deleted", {"id": solution_id})
    return {"success": True, "message": "Solution deleted successfully"}
