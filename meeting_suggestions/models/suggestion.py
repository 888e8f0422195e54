from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator


class SuggestionStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class RawCandidate(BaseModel):
    """A freshly extracted task proposal, before dedup filtering and persistence."""

    original_text: str
    suggested_task: str
    suggested_description: Optional[str] = None
    confidence_score: float = Field(..., ge=0.0, le=1.0)


class Suggestion(BaseModel):
    id: int
    meeting_id: int
    original_text: str
    suggested_task: str
    suggested_description: Optional[str] = None
    confidence_score: float
    status: SuggestionStatus = SuggestionStatus.pending
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    task_id: Optional[int] = None
    created_at: Optional[str] = None


class TaskLabel(BaseModel):
    """Title plus optional purpose, used as dedup context for the extractor."""

    title: str
    description: Optional[str] = None


class ApproveSuggestionRequest(BaseModel):
    """Reviewer overrides applied when an approved suggestion becomes a Task."""

    project_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Literal["low", "medium", "high", "urgent"]] = None
    estimated_hours: Optional[float] = Field(None, gt=0)
    assigned_to: Optional[str] = None
    due_date: Optional[datetime] = None

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("title must not be blank")
        return v


class RejectSuggestionRequest(BaseModel):
    reason: Optional[str] = None


class Task(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    project_id: Optional[str] = None
    meeting_id: Optional[int] = None
    priority: str = "medium"
    estimated_hours: float = 1.0
    assigned_to: Optional[str] = None
    due_date: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
