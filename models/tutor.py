"""Tutor API request / response models and generated content shapes."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from models.base import CamelModel


# ── Student context ──────────────────────────────────────────


class Branch(str, Enum):
    """Baccalauréat branches with dedicated quick-reply suggestions."""

    SCIENCES = "SCIENCES"
    LETTRES = "LETTRES"
    ECONOMIE = "ECONOMIE"


class StudentContext(CamelModel):
    """Profile slice used to build the tutor system prompt."""

    first_name: str = "élève"
    branch: str = Branch.SCIENCES.value
    school: str | None = None
    stress_level: int = Field(default=5, ge=0, le=10)


# ── Chat ──────────────────────────────────────────────────────


class SendMessageRequest(CamelModel):
    """POST /api/ai/chat — request body."""

    content: str = Field(min_length=1)
    conversation_id: str | None = None
    document_ids: list[str] = Field(default_factory=list)
    student: StudentContext = Field(default_factory=StudentContext)


class MessageOut(CamelModel):
    """A persisted chat message as returned to the client."""

    id: str
    role: str
    content: str
    created_at: float


class SendMessageResponse(CamelModel):
    """POST /api/ai/chat — response body."""

    conversation_id: str
    message: MessageOut
    suggestions: list[str] = Field(default_factory=list)


class ConversationOut(CamelModel):
    """A conversation; ``messages`` is left empty in listings."""

    id: str
    title: str
    messages: list[MessageOut] = Field(default_factory=list)
    created_at: float
    updated_at: float


# ── Content generation ───────────────────────────────────────


class Difficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class GenerateSummaryRequest(CamelModel):
    """POST /api/ai/generate/summary — request body."""

    content: str = Field(min_length=1)
    branch: str = Branch.SCIENCES.value


class GenerateExercisesRequest(CamelModel):
    """POST /api/ai/generate/exercises — request body."""

    topic: str = Field(min_length=1)
    difficulty: Difficulty = Difficulty.MEDIUM
    count: int = Field(default=3, ge=1, le=10)


class GenerateMindMapRequest(CamelModel):
    """POST /api/ai/generate/mindmap — request body."""

    topic: str = Field(min_length=1)


class CourseSupportRequest(CamelModel):
    """POST /api/ai/generate/course-support — request body."""

    subject_name: str = Field(min_length=1)
    chapter_title: str = Field(min_length=1)
    branch: str = Branch.SCIENCES.value


class Exercise(CamelModel):
    """One generated exercise.  Unknown keys from the model are ignored."""

    question: str
    type: str = "OPEN"
    options: list[str] | None = None
    answer: str = ""
    explanation: str = ""


class ExerciseSet(CamelModel):
    """Generated exercise list — an empty list is a valid outcome."""

    exercises: list[Exercise] = Field(default_factory=list)


class MindMapNode(CamelModel):
    """Recursive mind-map node."""

    id: str = ""
    label: str
    children: list[MindMapNode] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return "" if value is None else str(value)


class MindMapResponse(CamelModel):
    mind_map: MindMapNode | None = None


# ── Documents ────────────────────────────────────────────────


class DocumentOut(CamelModel):
    """Document metadata as returned to the client."""

    id: str
    name: str
    type: str
    size: int = 0
    summary: str | None = None
    key_points: list[str] = Field(default_factory=list)
    mind_map: MindMapNode | None = None
    created_at: float


class DocumentContentOut(CamelModel):
    name: str
    content: str
