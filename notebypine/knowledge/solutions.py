"""
Solution operations.
Solutions always belong to an existing incident; the parent is checked
before anything is written.
"""

import logging
from typing import List, Optional, Tuple

from notebypine.database import get_database
from notebypine.knowledge.incidents import get_incident
from notebypine.models.solution import Solution, SolutionCreate, SolutionUpdate, encode_steps
from notebypine.pocketbase import pb_eq
from notebypine.queries import SOLUTIONS, CacheManager, SolutionQueries
from notebypine.utils.errors import ValidationError, pocketbase_errors

logger = logging.getLogger(__name__)


async def add_solution(data: SolutionCreate) -> Solution:
    """Attach a solution to an incident.

    Raises:
        NotFoundError: If the incident does not exist.
    """
    await get_incident(data.incident_id, use_cache=False)

    payload = data.model_dump()
    payload["steps"] = encode_steps(data.steps)

    pb = get_database()
    with pocketbase_errors("Solution"):
        record = await pb.create_record(SOLUTIONS, payload)

    CacheManager.invalidate_type("solutions")
    logger.info(f"Solution {record['id']} added to incident {data.incident_id}")
    return Solution(**record)


async def get_solution(solution_id: str) -> Solution:
    pb = get_database()
    with pocketbase_errors("Solution"):
        record = await pb.get_record(SOLUTIONS, solution_id)
    return Solution(**record)


async def list_solutions(
    page: int = 1, per_page: int = 20, incident_id: Optional[str] = None
) -> Tuple[List[Solution], int]:
    pb = get_database()
    with pocketbase_errors("Solution"):
        data = await pb.list_records(
            SOLUTIONS,
            filter=pb_eq("incident_id", incident_id) if incident_id else None,
            page=page,
            per_page=per_page,
        )
    items = [Solution(**item) for item in data.get("items", [])]
    return items, data.get("totalItems", len(items))


async def get_solutions_for_incident(incident_id: str, limit: int = 10) -> List[Solution]:
    with pocketbase_errors("Solution"):
        data = await SolutionQueries.get_solutions_by_incident(incident_id, limit).execute()
    return [Solution(**item) for item in data.get("items", [])]


async def search_solutions(query: str, limit: int = 20) -> Tuple[List[Solution], int]:
    with pocketbase_errors("Solution"):
        data = await SolutionQueries.search_solutions(query, limit).execute()
    items = [Solution(**item) for item in data.get("items", [])]
    return items, data.get("totalItems", len(items))


async def update_solution(solution_id: str, data: SolutionUpdate) -> Solution:
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    if changes.get("steps") is not None:
        changes["steps"] = encode_steps(changes["steps"])

    pb = get_database()
    with pocketbase_errors("Solution"):
        record = await pb.update_record(SOLUTIONS, solution_id, changes)

    CacheManager.invalidate_type("solutions")
    return Solution(**record)


async def delete_solution(solution_id: str) -> None:
    pb = get_database()
    with pocketbase_errors("Solution"):
        await pb.delete_record(SOLUTIONS, solution_id)
    CacheManager.invalidate_type("solutions")
    logger.info(f"Solution deleted: {solution_id}")
