"""
Export router.
Returns the rendered knowledge export as a file download with the media
type of the requested format.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from notebypine.knowledge.export import FILE_EXTENSIONS, MEDIA_TYPES, export_knowledge
from notebypine.models.incident import Category, Severity, Status
from notebypine.models.knowledge import ExportFilter, ExportFormat
from notebypine.routers.auth import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def export(
    current_user: dict = Depends(get_current_user),
    format: ExportFormat = "json",
    category: Optional[Category] = None,
    status: Optional[Status] = None,
    severity: Optional[Severity] = None,
) -> Response:
    filters = ExportFilter(category=category, status=status, severity=severity)
    result = await export_knowledge(format, filters)

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    filename = f"knowledge_export_{stamp}.{FILE_EXTENSIONS[format]}"
    logger.info(f"Exported {result['count']} incidents as {format}")
    return Response(
        content=result["content"],
        media_type=MEDIA_TYPES[format],
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Export-Count": str(result["count"]),
        },
    )
