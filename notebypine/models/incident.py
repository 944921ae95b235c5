"""
Incident model definitions.

An incident is the central record of the knowledge base: what broke, how
badly, and where it is in its lifecycle (open → investigating → resolved →
archived). Transitions are unconstrained; only enum membership is checked.
"""

from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, Field

Category = Literal["Backend", "Frontend", "DevOps", "Health", "Finance", "Mobile"]
Severity = Literal["low", "medium", "high", "critical"]
Status = Literal["open", "investigating", "resolved", "archived"]
Visibility = Literal["private", "team", "public"]
Frequency = Literal["one-time", "occasional", "frequent", "recurring"]

CATEGORIES = get_args(Category)
SEVERITIES = get_args(Severity)
STATUSES = get_args(Status)
VISIBILITIES = get_args(Visibility)
FREQUENCIES = get_args(Frequency)

TITLE_MAX_LENGTH = 200


class IncidentCreate(BaseModel):
    """Schema for creating a new incident."""
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    category: Category
    description: str = Field(..., min_length=1)
    severity: Severity
    symptoms: str = ""
    context: str = ""
    environment: str = ""
    frequency: Frequency = "one-time"
    visibility: Visibility = "private"


class IncidentUpdate(BaseModel):
    """Schema for updating an incident. Only set fields are written."""
    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX_LENGTH)
    category: Optional[Category] = None
    description: Optional[str] = None
    severity: Optional[Severity] = None
    status: Optional[Status] = None
    symptoms: Optional[str] = None
    context: Optional[str] = None
    environment: Optional[str] = None
    frequency: Optional[Frequency] = None
    visibility: Optional[Visibility] = None
    root_cause: Optional[str] = None


class StatusUpdate(BaseModel):
    """Lifecycle move with optional notes."""
    status: Status
    notes: Optional[str] = None


class IncidentSearch(BaseModel):
    """Arguments of the search_incidents operation."""
    query: str = Field(..., min_length=1, max_length=500)
    category: Optional[Category] = None
    severity: Optional[Severity] = None
    status: Optional[Status] = None
    limit: int = Field(10, ge=1, le=100)


class Incident(BaseModel):
    """Incident as stored in PocketBase."""
    id: str
    title: str
    category: str
    description: str = ""
    severity: str
    status: str = "open"
    symptoms: str = ""
    context: str = ""
    environment: str = ""
    frequency: str = "one-time"
    visibility: str = "private"
    root_cause: str = ""
    resolved_at: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None


class IncidentPage(BaseModel):
    """Paginated incident listing."""
    items: List[Incident]
    page: int = 1
    per_page: int = 20
    total: int = 0
