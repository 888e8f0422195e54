from __future__ import annotations

from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Body, Depends, Header

from ..models.suggestion import RejectSuggestionRequest, Suggestion, Task
from ..state import State, get_state

router = APIRouter(tags=["suggestions"])


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    return (x_user_id or "").strip() or "anonymous"


@router.get("/suggestions", response_model=List[Suggestion])
def v1_pending_suggestions(state: State = Depends(get_state)) -> List[Suggestion]:
    return state.suggestions.list_pending()


@router.get("/suggestions/{suggestion_id}", response_model=Suggestion)
def v1_get_suggestion(suggestion_id: int, state: State = Depends(get_state)) -> Suggestion:
    return state.suggestions.get(suggestion_id)


@router.post("/suggestions/{suggestion_id}/approve", response_model=Task)
def v1_approve_suggestion(
    suggestion_id: int,
    # Raw dict so malformed payloads surface as the service's ValidationError.
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: str = Depends(current_user),
    state: State = Depends(get_state),
) -> Task:
    return state.suggestions.approve(suggestion_id, payload, reviewed_by=user)


@router.post("/suggestions/{suggestion_id}/reject")
def v1_reject_suggestion(
    suggestion_id: int,
    payload: Optional[RejectSuggestionRequest] = Body(default=None),
    user: str = Depends(current_user),
    state: State = Depends(get_state),
) -> Dict[str, Any]:
    reason = payload.reason if payload is not None else None
    state.suggestions.reject(suggestion_id, reason, reviewed_by=user)
    return {"ok": True, "id": suggestion_id, "status": "rejected"}
