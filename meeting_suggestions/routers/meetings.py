from __future__ import annotations

from typing import Any, Dict, List
from fastapi import APIRouter, Depends, Query

from .. import db
from ..errors import NotFoundError
from ..models.meeting import Meeting, MeetingCreate
from ..models.suggestion import Suggestion
from ..state import State, get_state

router = APIRouter(tags=["meetings"])


@router.post("/meeting/new", response_model=Meeting)
def v1_meeting_new(payload: MeetingCreate) -> Meeting:
    mid = db.new_meeting(
        title=payload.title.strip(),
        notes=payload.notes,
        meeting_date=payload.meeting_date,
        project_id=payload.project_id,
        created_by=payload.created_by,
    )
    row = db.get_meeting(mid)
    if row is None:
        raise NotFoundError(f"Meeting {mid} not found")
    return Meeting(**row)


@router.get("/meetings")
def v1_list_meetings(limit: int = Query(200, ge=1, le=1000)) -> Dict[str, Any]:
    items = [Meeting(**r) for r in db.list_meetings(limit=limit)]
    return {"ok": True, "items": items}


@router.get("/meeting/{meeting_id}", response_model=Meeting)
def v1_get_meeting(meeting_id: int, state: State = Depends(get_state)) -> Meeting:
    return state.pipeline.load_meeting(meeting_id)


@router.post("/meeting/{meeting_id}/process", response_model=List[Suggestion])
def v1_process_meeting(meeting_id: int, state: State = Depends(get_state)) -> List[Suggestion]:
    return state.pipeline.process_meeting(meeting_id)


@router.post("/meeting/{meeting_id}/reprocess", response_model=List[Suggestion])
def v1_reprocess_meeting(meeting_id: int, state: State = Depends(get_state)) -> List[Suggestion]:
    return state.pipeline.reprocess_meeting(meeting_id)


@router.get("/meeting/{meeting_id}/suggestions", response_model=List[Suggestion])
def v1_meeting_suggestions(meeting_id: int, state: State = Depends(get_state)) -> List[Suggestion]:
    return state.suggestions.list_for_meeting(meeting_id)
