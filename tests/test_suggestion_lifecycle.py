import threading

import pytest

from meeting_suggestions import db
from meeting_suggestions.errors import ConflictError, NotFoundError, StorageError, ValidationError
from meeting_suggestions.models.suggestion import RawCandidate, SuggestionStatus
from meeting_suggestions.services.notifications import Notifier
from meeting_suggestions.services.suggestions import SuggestionService
from meeting_suggestions.services.tasks import TaskStore


def _candidate(title="Update API documentation", original="update docs", description="Refresh endpoint docs."):
    return RawCandidate(
        original_text=original,
        suggested_task=title,
        suggested_description=description,
        confidence_score=0.8,
    )


@pytest.fixture
def service():
    return SuggestionService()


@pytest.fixture
def pending(service, meeting_factory):
    mid = meeting_factory(project_id="proj-1")
    return service.create_pending(mid, [_candidate()])[0]


def test_created_suggestion_is_pending_with_distinct_fields(pending):
    assert pending.status == SuggestionStatus.pending
    assert pending.original_text == "update docs"
    assert pending.suggested_description == "Refresh endpoint docs."
    assert pending.original_text != pending.suggested_description
    assert pending.reviewed_by is None and pending.reviewed_at is None


def test_approve_creates_exactly_one_task(service, pending):
    task = service.approve(pending.id, reviewed_by="rev-1")

    assert task.title == "Update API documentation"
    assert task.description == "Refresh endpoint docs."
    assert task.meeting_id == pending.meeting_id
    assert task.project_id == "proj-1"
    assert task.priority == "medium"
    assert task.estimated_hours == 1.0
    assert task.assigned_to == "rev-1"
    assert task.due_date

    stored = service.get(pending.id)
    assert stored.status == SuggestionStatus.approved
    assert stored.reviewed_by == "rev-1"
    assert stored.reviewed_at is not None
    assert stored.task_id == task.id
    assert db.count_tasks() == 1


def test_second_approve_conflicts_and_creates_nothing(service, pending):
    service.approve(pending.id, reviewed_by="rev-1")
    with pytest.raises(ConflictError) as exc:
        service.approve(pending.id, reviewed_by="rev-2")
    assert exc.value.current_status == "approved"
    assert db.count_tasks() == 1


def test_approve_applies_modifications(service, pending):
    task = service.approve(
        pending.id,
        {"title": "Rewrite API docs", "priority": "high", "estimated_hours": 3, "assigned_to": "dev-9",
         "project_id": "proj-2", "due_date": "2026-11-01T09:00:00+00:00"},
        reviewed_by="rev-1",
    )
    assert task.title == "Rewrite API docs"
    assert task.description == "Refresh endpoint docs."
    assert task.priority == "high"
    assert task.estimated_hours == 3
    assert task.assigned_to == "dev-9"
    assert task.project_id == "proj-2"
    assert task.due_date.startswith("2026-11-01T09:00:00")


def test_description_falls_back_to_original_text(service, meeting_factory):
    mid = meeting_factory()
    s = service.create_pending(mid, [_candidate(description=None)])[0]
    task = service.approve(s.id, reviewed_by="rev-1")
    assert task.description == "update docs"


@pytest.mark.parametrize(
    "mods",
    [
        {"priority": "critical"},
        {"estimated_hours": -1},
        {"title": "   "},
        {"due_date": "next tuesday"},
        {"unknown": 1},
    ],
)
def test_malformed_modifications_rejected_and_state_kept(service, pending, mods):
    with pytest.raises(ValidationError):
        service.approve(pending.id, mods, reviewed_by="rev-1")
    assert service.get(pending.id).status == SuggestionStatus.pending
    assert db.count_tasks() == 0


def test_approve_missing_suggestion(service):
    with pytest.raises(NotFoundError):
        service.approve(999, reviewed_by="rev-1")


def test_reject_requires_reason(service, pending):
    for reason in (None, "", "   "):
        with pytest.raises(ValidationError):
            service.reject(pending.id, reason, reviewed_by="rev-1")
    assert service.get(pending.id).status == SuggestionStatus.pending


def test_reject_records_review(service, pending):
    service.reject(pending.id, "  Already covered elsewhere ", reviewed_by="rev-1")
    stored = service.get(pending.id)
    assert stored.status == SuggestionStatus.rejected
    assert stored.rejection_reason == "Already covered elsewhere"
    assert stored.reviewed_by == "rev-1"
    assert stored.reviewed_at is not None


def test_terminal_states_are_final(service, pending):
    service.reject(pending.id, "not needed", reviewed_by="rev-1")
    with pytest.raises(ConflictError) as exc:
        service.approve(pending.id, reviewed_by="rev-2")
    assert exc.value.current_status == "rejected"
    with pytest.raises(ConflictError):
        service.reject(pending.id, "again", reviewed_by="rev-2")
    assert db.count_tasks() == 0


def test_reject_missing_suggestion(service):
    with pytest.raises(NotFoundError):
        service.reject(12345, "reason", reviewed_by="rev-1")


def test_list_pending_newest_first(service, meeting_factory):
    mid = meeting_factory()
    created = service.create_pending(mid, [_candidate("First task"), _candidate("Second task"), _candidate("Third task")])
    service.reject(created[1].id, "dup", reviewed_by="rev-1")
    assert [s.suggested_task for s in service.list_pending()] == ["Third task", "First task"]


def test_list_for_meeting(service, meeting_factory):
    a, b = meeting_factory(), meeting_factory()
    service.create_pending(a, [_candidate("Task A")])
    service.create_pending(b, [_candidate("Task B")])
    assert [s.suggested_task for s in service.list_for_meeting(b)] == ["Task B"]
    with pytest.raises(NotFoundError):
        service.list_for_meeting(777)


def test_concurrent_approvals_yield_one_task(service, pending):
    barrier = threading.Barrier(2)
    results, errors = [], []

    def worker(user):
        barrier.wait()
        try:
            results.append(service.approve(pending.id, reviewed_by=user))
        except ConflictError as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(f"rev-{i}",)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1
    assert len(errors) == 1
    assert db.count_tasks() == 1


class _BrokenTasks(TaskStore):
    def create_task(self, *args, **kwargs):
        raise StorageError("tasks table unavailable")


def test_failed_task_creation_returns_suggestion_to_pending(meeting_factory):
    service = SuggestionService(tasks=_BrokenTasks())
    s = service.create_pending(meeting_factory(), [_candidate()])[0]
    with pytest.raises(StorageError):
        service.approve(s.id, reviewed_by="rev-1")
    stored = service.get(s.id)
    assert stored.status == SuggestionStatus.pending
    assert stored.reviewed_by is None


class _ExplodingNotifier(Notifier):
    def task_created(self, task, suggestion):
        raise RuntimeError("smtp down")


def test_notification_failure_keeps_approval(meeting_factory):
    service = SuggestionService(notifier=_ExplodingNotifier())
    s = service.create_pending(meeting_factory(), [_candidate()])[0]
    task = service.approve(s.id, reviewed_by="rev-1")
    assert service.get(s.id).status == SuggestionStatus.approved
    assert db.get_task(task.id) is not None


def test_notifier_is_told_about_created_task(meeting_factory):
    seen = []

    class Recording(Notifier):
        def task_created(self, task, suggestion):
            seen.append((task.id, suggestion.id, suggestion.status, suggestion.reviewed_at))

    service = SuggestionService(notifier=Recording())
    s = service.create_pending(meeting_factory(), [_candidate()])[0]
    task = service.approve(s.id, reviewed_by="rev-1")
    stored = service.get(s.id)
    assert stored.reviewed_at
    assert seen == [(task.id, s.id, SuggestionStatus.approved, stored.reviewed_at)]


def test_insert_for_missing_meeting_is_storage_error(service):
    with pytest.raises(StorageError):
        service.create_pending(4242, [_candidate()])
