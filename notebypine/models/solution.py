"""
Solution model definitions.
A solution is a remediation attached to exactly one incident.
"""

import json
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator


def encode_steps(steps: Union[str, List[str]]) -> str:
    """Steps are stored as text; lists are JSON-encoded."""
    if isinstance(steps, str):
        return steps
    return json.dumps(list(steps))


def decode_steps(steps: str) -> List[str]:
    """Best-effort inverse of encode_steps for display."""
    if not steps:
        return []
    try:
        parsed = json.loads(steps)
    except (TypeError, ValueError):
        return [line.strip() for line in steps.splitlines() if line.strip()]
    if isinstance(parsed, list):
        return [str(s) for s in parsed]
    return [str(parsed)]


class SolutionCreate(BaseModel):
    """Schema for attaching a solution to an incident."""
    incident_id: str = Field(..., min_length=1)
    solution_title: str = Field(..., min_length=1, max_length=200)
    solution_description: str = Field(..., min_length=1)
    steps: Union[str, List[str]]
    resources_needed: str = ""
    time_estimate: str = ""
    warnings: str = ""
    alternatives: str = ""

    @field_validator("steps")
    @classmethod
    def steps_not_empty(cls, v):
        if not v:
            raise ValueError("steps must not be empty")
        return v


class SolutionUpdate(BaseModel):
    solution_title: Optional[str] = Field(None, min_length=1, max_length=200)
    solution_description: Optional[str] = None
    steps: Optional[Union[str, List[str]]] = None
    resources_needed: Optional[str] = None
    time_estimate: Optional[str] = None
    warnings: Optional[str] = None
    alternatives: Optional[str] = None


class Solution(BaseModel):
    """Solution as stored in PocketBase."""
    id: str
    incident_id: str
    solution_title: str
    solution_description: str = ""
    steps: str = ""
    resources_needed: str = ""
    time_estimate: str = ""
    warnings: str = ""
    alternatives: str = ""
    created: Optional[str] = None
    updated: Optional[str] = None

    @field_validator("steps", mode="before")
    @classmethod
    def coerce_steps(cls, v):
        # PocketBase json fields come back decoded
        if v is None:
            return ""
        return encode_steps(v)
