from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .. import db
from ..errors import ConflictError, NotFoundError, StorageError, ValidationError
from ..models.suggestion import (
    ApproveSuggestionRequest,
    RawCandidate,
    Suggestion,
    SuggestionStatus,
    Task,
)
from .notifications import Notifier
from .tasks import TaskStore

logger = logging.getLogger("app.suggestions")

Modifications = Union[ApproveSuggestionRequest, Dict[str, Any], None]


def _parse_modifications(modifications: Modifications) -> ApproveSuggestionRequest:
    if modifications is None:
        return ApproveSuggestionRequest()
    if isinstance(modifications, ApproveSuggestionRequest):
        return modifications
    if not isinstance(modifications, dict):
        raise ValidationError("modifications must be an object")
    try:
        return ApproveSuggestionRequest(**modifications)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"invalid modifications: {details}") from e


class SuggestionService:
    """Persistence and review lifecycle of suggestions.

    pending -> approved (materializes a Task) or pending -> rejected; both
    are terminal. The status change is a conditional update, so two
    reviewers racing on one suggestion get one success and one ConflictError.
    """

    def __init__(self, tasks: Optional[TaskStore] = None, notifier: Optional[Notifier] = None) -> None:
        self.tasks = tasks or TaskStore()
        self.notifier = notifier or Notifier()

    # ------------------------------------------------------------- reads
    def get(self, suggestion_id: int) -> Suggestion:
        row = db.get_suggestion(suggestion_id)
        if row is None:
            raise NotFoundError(f"Suggestion {suggestion_id} not found")
        return Suggestion(**row)

    def list_pending(self) -> List[Suggestion]:
        return [Suggestion(**r) for r in db.list_suggestions(status=SuggestionStatus.pending.value)]

    def list_for_meeting(self, meeting_id: int) -> List[Suggestion]:
        if db.get_meeting(meeting_id) is None:
            raise NotFoundError(f"Meeting {meeting_id} not found")
        return [Suggestion(**r) for r in db.list_suggestions(meeting_id=meeting_id)]

    def list_active_for_meeting(self, meeting_id: int) -> List[Suggestion]:
        """Pending and approved suggestions; rejected ones may be proposed again."""
        rows = db.list_suggestions(
            meeting_id=meeting_id,
            statuses=[SuggestionStatus.pending.value, SuggestionStatus.approved.value],
        )
        return [Suggestion(**r) for r in rows]

    # ------------------------------------------------------------ writes
    def create_pending(self, meeting_id: int, candidates: List[RawCandidate]) -> List[Suggestion]:
        """Persist candidates as pending suggestions, one insert each.

        A failing insert raises StorageError; rows already written stay.
        """
        created: List[Suggestion] = []
        for cand in candidates:
            sid = db.insert_suggestion(
                meeting_id=meeting_id,
                original_text=cand.original_text,
                suggested_task=cand.suggested_task,
                suggested_description=cand.suggested_description,
                confidence_score=cand.confidence_score,
            )
            created.append(self.get(sid))
        return created

    def _require_pending(self, suggestion_id: int) -> Suggestion:
        suggestion = self.get(suggestion_id)
        if suggestion.status != SuggestionStatus.pending:
            raise ConflictError(
                f"Suggestion {suggestion_id} has already been {suggestion.status.value}",
                current_status=suggestion.status.value,
            )
        return suggestion

    def _conflict_after_lost_race(self, suggestion_id: int) -> ConflictError:
        current = db.get_suggestion(suggestion_id)
        status = current["status"] if current else None
        return ConflictError(
            f"Suggestion {suggestion_id} was reviewed concurrently",
            current_status=status,
        )

    def approve(
        self,
        suggestion_id: int,
        modifications: Modifications = None,
        reviewed_by: Optional[str] = None,
    ) -> Task:
        mods = _parse_modifications(modifications)
        suggestion = self._require_pending(suggestion_id)
        meeting = db.get_meeting(suggestion.meeting_id) or {}
        reviewed_at = db.utc_now_iso()

        if not db.transition_suggestion(
            suggestion_id,
            expected_status=SuggestionStatus.pending.value,
            new_status=SuggestionStatus.approved.value,
            reviewed_by=reviewed_by,
            reviewed_at=reviewed_at,
        ):
            raise self._conflict_after_lost_race(suggestion_id)

        try:
            task = self.tasks.create_task(
                title=(mods.title or suggestion.suggested_task).strip(),
                description=mods.description or suggestion.suggested_description or suggestion.original_text,
                meeting_id=suggestion.meeting_id,
                project_id=mods.project_id or meeting.get("project_id"),
                priority=mods.priority,
                estimated_hours=mods.estimated_hours,
                assigned_to=mods.assigned_to or reviewed_by,
                due_date=mods.due_date,
                created_by=reviewed_by,
            )
        except Exception as e:
            db.revert_suggestion_approval(suggestion_id)
            logger.error(f"task creation failed; suggestion {suggestion_id} returned to pending")
            if isinstance(e, StorageError):
                raise
            raise StorageError(f"task creation failed: {e}") from e

        db.set_suggestion_task(suggestion_id, task.id)
        logger.info(f"suggestion {suggestion_id} approved by {reviewed_by}; task {task.id} created")
        approved = suggestion.model_copy(update={
            "status": SuggestionStatus.approved,
            "reviewed_by": reviewed_by,
            "reviewed_at": reviewed_at,
            "task_id": task.id,
        })
        self.notifier.safe_task_created(task, approved)
        return task

    def reject(self, suggestion_id: int, reason: Optional[str], reviewed_by: Optional[str] = None) -> None:
        if reason is None or not str(reason).strip():
            raise ValidationError("A rejection reason is required")
        self._require_pending(suggestion_id)
        if not db.transition_suggestion(
            suggestion_id,
            expected_status=SuggestionStatus.pending.value,
            new_status=SuggestionStatus.rejected.value,
            reviewed_by=reviewed_by,
            reviewed_at=db.utc_now_iso(),
            rejection_reason=str(reason).strip(),
        ):
            raise self._conflict_after_lost_race(suggestion_id)
        logger.info(f"suggestion {suggestion_id} rejected by {reviewed_by}")
