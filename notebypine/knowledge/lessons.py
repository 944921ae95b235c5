"""
Lessons-learned operations.
"""

import logging
from typing import List

from notebypine.database import get_database
from notebypine.knowledge.incidents import get_incident
from notebypine.models.lesson import Lesson, LessonCreate, compose_lesson_text
from notebypine.queries import INCIDENTS, LESSONS, CacheManager, LessonQueries
from notebypine.utils.errors import pocketbase_errors

logger = logging.getLogger(__name__)


async def extract_lessons(data: LessonCreate) -> Lesson:
    """Record a lesson for an incident and copy the root cause onto it.

    Raises:
        NotFoundError: If the incident does not exist.
    """
    await get_incident(data.incident_id, use_cache=False)

    pb = get_database()
    payload = {
        "incident_id": data.incident_id,
        "lesson_type": data.lesson_type,
        "lesson_text": compose_lesson_text(
            data.problem_summary, data.root_cause, data.prevention
        ),
    }
    with pocketbase_errors("Lesson"):
        record = await pb.create_record(LESSONS, payload)
    with pocketbase_errors("Incident"):
        await pb.update_record(INCIDENTS, data.incident_id, {"root_cause": data.root_cause})

    CacheManager.invalidate_type("lessons")
    CacheManager.invalidate_type("incidents")
    logger.info(f"Lesson {record['id']} ({data.lesson_type}) extracted for {data.incident_id}")
    return Lesson(**record)


async def get_lessons_for_incident(incident_id: str, limit: int = 5) -> List[Lesson]:
    with pocketbase_errors("Lesson"):
        data = await LessonQueries.get_lessons_by_incident(incident_id, limit).execute()
    return [Lesson(**item) for item in data.get("items", [])]


async def get_lessons_by_type(lesson_type: str, limit: int = 50) -> List[Lesson]:
    with pocketbase_errors("Lesson"):
        data = await LessonQueries.get_lessons_by_type(lesson_type, limit).execute()
    return [Lesson(**item) for item in data.get("items", [])]
