"""
Knowledge-base item and export model definitions.

Knowledge items are free-form articles kept next to incidents. Export
records are never stored: they are an incident joined with its solutions
and lessons at export time.
"""

from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, Field

from notebypine.models.incident import Category, Incident, Severity, Status
from notebypine.models.lesson import Lesson
from notebypine.models.solution import Solution

ExportFormat = Literal["json", "csv", "markdown"]
EXPORT_FORMATS = get_args(ExportFormat)


class KnowledgeItemCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    content: str = Field(..., min_length=1)
    tags: List[str] = []


class KnowledgeItemUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    content: Optional[str] = None
    tags: Optional[List[str]] = None


class KnowledgeItem(BaseModel):
    id: str
    title: str
    content: str = ""
    tags: List[str] = []
    createdBy: Optional[str] = None
    updatedBy: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None


class ExportFilter(BaseModel):
    category: Optional[Category] = None
    status: Optional[Status] = None
    severity: Optional[Severity] = None


class ExportRecord(Incident):
    """Denormalized incident with its solutions and lessons."""
    solutions: List[Solution] = []
    lessons: List[Lesson] = []
