from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field, field_validator


class MeetingCreate(BaseModel):
    title: str = Field(..., min_length=1)
    notes: str = Field(..., min_length=1)
    meeting_date: str = Field(..., description="ISO date or datetime of the meeting")
    project_id: Optional[str] = None
    created_by: Optional[str] = None

    @field_validator("title", "notes")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class Meeting(BaseModel):
    id: int
    project_id: Optional[str] = None
    title: str
    notes: str
    meeting_date: str
    created_by: Optional[str] = None
    created_at: Optional[str] = Field(None, description="ISO timestamp (UTC)")
