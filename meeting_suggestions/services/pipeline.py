from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from .. import db
from ..errors import NotFoundError
from ..models.meeting import Meeting
from ..models.suggestion import RawCandidate, Suggestion, TaskLabel
from .extractor import TextExtractor
from .matcher import filter_novel
from .suggestions import SuggestionService
from .tasks import TaskStore

logger = logging.getLogger("app.pipeline")

LabelInput = Union[TaskLabel, Dict[str, Any], str]


def _as_labels(items: Optional[Sequence[LabelInput]]) -> List[TaskLabel]:
    out: List[TaskLabel] = []
    for item in items or []:
        if isinstance(item, TaskLabel):
            out.append(item)
        elif isinstance(item, str):
            if item.strip():
                out.append(TaskLabel(title=item.strip()))
        elif isinstance(item, dict) and str(item.get("title") or "").strip():
            desc = item.get("description")
            desc = str(desc).strip() if desc is not None else None
            out.append(TaskLabel(title=str(item["title"]).strip(), description=desc or None))
    return out


class PipelineOrchestrator:
    """notes -> extractor -> matcher -> pending suggestions.

    Extraction problems never surface here (the extractor falls back
    locally). Storage problems propagate as StorageError; candidates not yet
    written when one occurs are lost and must be regenerated by a retry.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        suggestions: SuggestionService,
        tasks: Optional[TaskStore] = None,
    ) -> None:
        self.extractor = extractor
        self.suggestions = suggestions
        self.tasks = tasks or suggestions.tasks

    def load_meeting(self, meeting_id: int) -> Meeting:
        row = db.get_meeting(meeting_id)
        if row is None:
            raise NotFoundError(f"Meeting {meeting_id} not found")
        return Meeting(**row)

    def _filter_and_store(
        self,
        meeting: Meeting,
        candidates: List[RawCandidate],
        known: List[TaskLabel],
    ) -> List[Suggestion]:
        keep = filter_novel([c.suggested_task for c in candidates], [k.title for k in known])
        survivors = [candidates[i] for i in keep]
        dropped = len(candidates) - len(survivors)
        if dropped:
            logger.info(f"meeting {meeting.id}: dropped {dropped} duplicate candidate(s)")
        return self.suggestions.create_pending(meeting.id, survivors)

    def process_meeting(
        self,
        meeting: Union[Meeting, int],
        notes: Optional[str] = None,
        existing_task_labels: Optional[Sequence[LabelInput]] = None,
    ) -> List[Suggestion]:
        """First-time processing of a meeting's notes."""
        if not isinstance(meeting, Meeting):
            meeting = self.load_meeting(int(meeting))
        text = meeting.notes if notes is None else notes

        context = _as_labels(existing_task_labels)
        if meeting.project_id:
            context.extend(self.tasks.labels_for(project_id=meeting.project_id))

        candidates = self.extractor.extract(text, context)
        created = self._filter_and_store(meeting, candidates, context)
        logger.info(f"meeting {meeting.id}: processed, {len(created)} suggestion(s) created")
        return created

    def reprocess_meeting(self, meeting_id: int) -> List[Suggestion]:
        """Re-run extraction, keeping only candidates not already known.

        The known-label set is the meeting's pending and approved suggestions
        plus existing tasks; rejected suggestions are left out so a rejected
        idea can be proposed again. An empty result is a normal outcome.
        """
        meeting = self.load_meeting(meeting_id)
        active = self.suggestions.list_active_for_meeting(meeting.id)
        known = [TaskLabel(title=s.suggested_task, description=s.original_text) for s in active]
        known.extend(self.tasks.labels_for(project_id=meeting.project_id, meeting_id=meeting.id))

        candidates = self.extractor.extract(meeting.notes, known)
        created = self._filter_and_store(meeting, candidates, known)
        logger.info(
            f"meeting {meeting.id}: reprocessed against {len(known)} known label(s), "
            f"{len(created)} new suggestion(s)"
        )
        return created
