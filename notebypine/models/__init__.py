"""
Pydantic models package.
Each module contains models for a specific domain.
"""

from notebypine.models.incident import (
    Incident, IncidentCreate, IncidentUpdate, IncidentSearch, IncidentPage, StatusUpdate,
)
from notebypine.models.solution import Solution, SolutionCreate, SolutionUpdate
from notebypine.models.lesson import Lesson, LessonCreate
from notebypine.models.knowledge import (
    KnowledgeItem, KnowledgeItemCreate, KnowledgeItemUpdate, ExportFilter, ExportRecord,
)
from notebypine.models.user import UserLogin, UserResponse, TokenResponse

__all__ = [
    "Incident", "IncidentCreate", "IncidentUpdate", "IncidentSearch", "IncidentPage", "StatusUpdate",
    "Solution", "SolutionCreate", "SolutionUpdate",
    "Lesson", "LessonCreate",
    "KnowledgeItem", "KnowledgeItemCreate", "KnowledgeItemUpdate", "ExportFilter", "ExportRecord",
    "UserLogin", "UserResponse", "TokenResponse",
]
