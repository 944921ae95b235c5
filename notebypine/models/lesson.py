"""
Lessons-learned model definitions.

PocketBase stores a single lesson_text field; the three parts are composed
into labelled paragraphs on write and split back apart on read.
"""

import re
from typing import Dict, Literal, Optional, get_args

from pydantic import BaseModel, Field, model_validator

LessonType = Literal["prevention", "detection", "response", "recovery", "general"]
LESSON_TYPES = get_args(LessonType)

_SECTION_LABELS = (
    ("problem_summary", "Problem Summary"),
    ("root_cause", "Root Cause"),
    ("prevention", "Prevention"),
)


def compose_lesson_text(problem_summary: str, root_cause: str, prevention: str) -> str:
    return (
        f"Problem Summary: {problem_summary}\n\n"
        f"Root Cause: {root_cause}\n\n"
        f"Prevention: {prevention}"
    )


def parse_lesson_text(text: str) -> Dict[str, str]:
    """Split a composed lesson_text into its labelled sections."""
    parts = {key: "" for key, _ in _SECTION_LABELS}
    if not text:
        return parts
    labels = "|".join(re.escape(label) for _, label in _SECTION_LABELS)
    pattern = re.compile(rf"^({labels}):\s*", re.MULTILINE)
    matches = list(pattern.finditer(text))
    if not matches:
        parts["problem_summary"] = text.strip()
        return parts
    by_label = {label: key for key, label in _SECTION_LABELS}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        parts[by_label[match.group(1)]] = text[match.end():end].strip()
    return parts


class LessonCreate(BaseModel):
    """Arguments of the extract_lessons operation (incident_id comes from the path in REST)."""
    incident_id: str = Field(..., min_length=1)
    problem_summary: str = Field(..., min_length=1)
    root_cause: str = Field(..., min_length=1)
    prevention: str = Field(..., min_length=1)
    lesson_type: LessonType = "general"


class Lesson(BaseModel):
    """Lesson as stored in PocketBase, with parsed sections."""
    id: str
    incident_id: str
    lesson_type: str = "general"
    lesson_text: str = ""
    problem_summary: str = ""
    root_cause: str = ""
    prevention: str = ""
    created: Optional[str] = None
    updated: Optional[str] = None

    @model_validator(mode="after")
    def fill_sections(self):
        if self.lesson_text and not (self.problem_summary or self.root_cause or self.prevention):
            sections = parse_lesson_text(self.lesson_text)
            self.problem_summary = sections["problem_summary"]
            self.root_cause = sections["root_cause"]
            self.prevention = sections["prevention"]
        return self
