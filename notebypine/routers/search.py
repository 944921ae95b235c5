"""
Search router.
Case-insensitive substring search across incidents, solutions and
knowledge articles. With type=all the three searches run concurrently.
"""

import asyncio
import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query

from notebypine.knowledge import articles, incidents, solutions
from notebypine.models.incident import IncidentSearch
from notebypine.routers.auth import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()

SearchType = Literal["all", "incidents", "solutions", "knowledge"]


async def _search_incidents(q: str, limit: int):
    items, total = await incidents.search_incidents(IncidentSearch(query=q, limit=limit))
    return [i.model_dump() for i in items], total


async def _search_solutions(q: str, limit: int):
    items, total = await solutions.search_solutions(q, limit)
    return [s.model_dump() for s in items], total


async def _search_knowledge(q: str, limit: int):
    items, total = await articles.list_items(1, limit, search=q)
    return [i.model_dump() for i in items], total


SEARCHERS = {
    "incidents": _search_incidents,
    "solutions": _search_solutions,
    "knowledge": _search_knowledge,
}


@router.get("")
async def search(
    current_user: dict = Depends(get_current_user),
    q: str = Query(..., min_length=1, max_length=500),
    type: SearchType = "all",
    limit: int = Query(20, ge=1, le=100),
) -> dict:
    """Search one content type, or all of them in parallel."""
    kinds = list(SEARCHERS) if type == "all" else [type]
    outcomes = await asyncio.gather(*(SEARCHERS[k](q, limit) for k in kinds))

    results = {}
    total = 0
    for kind, (items, count) in zip(kinds, outcomes):
        results[kind] = items
        total += count

    logger.info(f"Search '{q}' ({type}) matched {total} records")
    return {
        "success": True,
        "data": {"query": q, "type": type, "limit": limit, "results": results, "total": total},
    }
