"""
Knowledge-base article operations (the knowledge_base collection).
"""

import logging
from typing import List, Optional, Tuple

from notebypine.database import get_database
from notebypine.models.knowledge import KnowledgeItem, KnowledgeItemCreate, KnowledgeItemUpdate
from notebypine.pocketbase import pb_like, pb_or
from notebypine.queries import KNOWLEDGE, CacheManager
from notebypine.utils.errors import ValidationError, pocketbase_errors

logger = logging.getLogger(__name__)


async def create_item(data: KnowledgeItemCreate, author: Optional[str] = None) -> KnowledgeItem:
    payload = data.model_dump()
    payload["createdBy"] = author
    payload["updatedBy"] = author

    pb = get_database()
    with pocketbase_errors("Knowledge item"):
        record = await pb.create_record(KNOWLEDGE, payload)

    CacheManager.invalidate_type("knowledge")
    logger.info(f"Knowledge item created: {record['id']}")
    return KnowledgeItem(**record)


async def get_item(item_id: str) -> KnowledgeItem:
    pb = get_database()
    with pocketbase_errors("Knowledge item"):
        record = await pb.get_record(KNOWLEDGE, item_id)
    return KnowledgeItem(**record)


async def list_items(
    page: int = 1, per_page: int = 20, search: Optional[str] = None
) -> Tuple[List[KnowledgeItem], int]:
    """List articles, optionally filtered by a title/content substring."""
    filter_expr = None
    if search:
        filter_expr = pb_or(pb_like("title", search), pb_like("content", search))

    pb = get_database()
    with pocketbase_errors("Knowledge item"):
        data = await pb.list_records(
            KNOWLEDGE, filter=filter_expr, page=page, per_page=per_page
        )
    items = [KnowledgeItem(**item) for item in data.get("items", [])]
    return items, data.get("totalItems", len(items))


async def update_item(
    item_id: str, data: KnowledgeItemUpdate, author: Optional[str] = None
) -> KnowledgeItem:
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    changes["updatedBy"] = author

    pb = get_database()
    with pocketbase_errors("Knowledge item"):
        record = await pb.update_record(KNOWLEDGE, item_id, changes)

    CacheManager.invalidate_type("knowledge")
    return KnowledgeItem(**record)


async def delete_item(item_id: str) -> None:
    pb = get_database()
    with pocketbase_errors("Knowledge item"):
        await pb.delete_record(KNOWLEDGE, item_id)
    CacheManager.invalidate_type("knowledge")
    logger.info(f"Knowledge item deleted: {item_id}")
