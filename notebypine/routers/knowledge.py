"""
Knowledge base router.
CRUD for free-form knowledge articles; createdBy/updatedBy record the
admin who made the change.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from notebypine.events import broadcast
from notebypine.knowledge import articles
from notebypine.models.knowledge import KnowledgeItemCreate, KnowledgeItemUpdate
from notebypine.routers.auth import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_items(
    current_user: dict = Depends(get_current_user),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=500),
) -> dict:
    items, total = await articles.list_items(page, limit, search)
    return {
        "success": True,
        "data": [i.model_dump() for i in items],
        "pagination": {"page": page, "limit": limit, "total": total},
    }


@router.get("/{item_id}")
async def get_item(item_id: str, current_user: dict = Depends(get_current_user)) -> dict:
    item = await articles.get_item(item_id)
    return {"success": True, "data": item.model_dump()}


@router.post("", status_code=201)
async def create_item(data: KnowledgeItemCreate, current_user: dict = Depends(get_current_user)) -> dict:
    item = await articles.create_item(data, author=current_user["id"])
    payload = item.model_dump()
    await broadcast("knowledge_created", payload)
    return {"success": True, "data": payload}


@router.put("/{item_id}")
async def update_item(
    item_id: str,
    data: KnowledgeItemUpdate,
    current_user: dict = Depends(get_current_user),
) -> dict:
    item = await articles.update_item(item_id, data, author=current_user["id"])
    payload = item.model_dump()
    await broadcast("knowledge_updated", payload)
    return {"success": True, "data": payload}


@router.delete("/{item_id}")
async def delete_item(item_id: str, current_user: dict = Depends(get_current_user)) -> dict:
    await articles.delete_item(item_id)
    await broadcast("knowledge_deleted", {"id": item_id})
    return {"success": True, "message": "Knowledge item deleted successfully"}
