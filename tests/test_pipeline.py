import pytest

from meeting_suggestions import db
from meeting_suggestions.config import ReasoningConfig
from meeting_suggestions.errors import NotFoundError, StorageError
from meeting_suggestions.models.suggestion import SuggestionStatus
from meeting_suggestions.services.extractor import TextExtractor, fallback_candidates
from meeting_suggestions.services.pipeline import PipelineOrchestrator
from meeting_suggestions.services.suggestions import SuggestionService

from conftest import CONFIGURED, FakeReasoningService

NOTES = "Follow up with client. Update docs. Ship release."


def _pipeline(http_post=None, configured=False):
    cfg = CONFIGURED if configured else ReasoningConfig.not_configured()
    service = SuggestionService()
    return PipelineOrchestrator(TextExtractor(cfg, http_post=http_post), service)


def test_process_meeting_fallback_scenario(meeting_factory):
    mid = meeting_factory(NOTES)
    created = _pipeline().process_meeting(mid)

    assert sorted(s.suggested_task for s in created) == ["Follow up with client", "Ship release", "Update docs"]
    assert all(s.status == SuggestionStatus.pending for s in created)
    assert all(s.meeting_id == mid for s in created)
    assert len({s.original_text for s in created}) == 3


def test_process_meeting_accepts_explicit_notes_and_labels(meeting_factory):
    mid = meeting_factory("ignored")
    pipeline = _pipeline()
    meeting = pipeline.load_meeting(mid)
    created = pipeline.process_meeting(meeting, notes=NOTES, existing_task_labels=["Update docs"])
    assert sorted(s.suggested_task for s in created) == ["Follow up with client", "Ship release"]


def test_process_meeting_coerces_label_descriptions(meeting_factory):
    mid = meeting_factory(NOTES)
    created = _pipeline().process_meeting(mid, existing_task_labels=[{"title": "Update docs", "description": 3}])
    assert sorted(s.suggested_task for s in created) == ["Follow up with client", "Ship release"]


def test_process_meeting_filters_against_project_tasks(meeting_factory):
    db.insert_task(title="Ship release", description=None, project_id="proj-1")
    mid = meeting_factory(NOTES, project_id="proj-1")
    created = _pipeline().process_meeting(mid)
    assert "Ship release" not in {s.suggested_task for s in created}


def test_process_meeting_passes_project_tasks_to_service(meeting_factory):
    db.insert_task(title="Write release notes", description="for 2.1", project_id="proj-1")
    fake = FakeReasoningService({"suggestions": [{"suggestedTask": "Schedule follow-up call with client"}]})
    mid = meeting_factory(NOTES, project_id="proj-1")
    _pipeline(fake, configured=True).process_meeting(mid)
    prompt = fake.calls[0]["data"]["messages"][1]["content"]
    assert '"Write release notes"' in prompt
    assert "Purpose: for 2.1" in prompt


def test_stored_original_text_matches_extracted(meeting_factory):
    response = {"suggestions": [
        {
            "originalText": "Update docs",
            "suggestedTask": "Update API documentation with new endpoint examples",
            "suggestedDescription": "Document the v2 endpoints with request and response samples.",
            "confidenceScore": 0.9,
        },
    ]}
    fake = FakeReasoningService(response)
    mid = meeting_factory(NOTES)
    created = _pipeline(fake, configured=True).process_meeting(mid)

    stored = SuggestionService().get(created[0].id)
    assert stored.original_text == "Update docs"
    assert stored.suggested_description == "Document the v2 endpoints with request and response samples."
    assert stored.original_text != stored.suggested_description


def test_reprocess_twice_second_call_is_empty(meeting_factory):
    mid = meeting_factory(NOTES)
    pipeline = _pipeline()
    first = pipeline.reprocess_meeting(mid)
    assert len(first) == 3
    assert pipeline.reprocess_meeting(mid) == []
    assert len(SuggestionService().list_for_meeting(mid)) == 3


def test_reprocess_after_process_adds_nothing_new(meeting_factory):
    mid = meeting_factory(NOTES)
    pipeline = _pipeline()
    pipeline.process_meeting(mid)
    assert pipeline.reprocess_meeting(mid) == []


def test_reprocess_keeps_approved_work_out(meeting_factory):
    mid = meeting_factory(NOTES)
    pipeline = _pipeline()
    created = pipeline.process_meeting(mid)
    service = pipeline.suggestions
    service.approve(created[0].id, reviewed_by="rev-1")
    assert pipeline.reprocess_meeting(mid) == []
    assert db.count_tasks(meeting_id=mid) == 1


def test_reprocess_allows_rejected_idea_to_return(meeting_factory):
    mid = meeting_factory(NOTES)
    pipeline = _pipeline()
    created = pipeline.process_meeting(mid)
    rejected = next(s for s in created if s.suggested_task == "Ship release")
    pipeline.suggestions.reject(rejected.id, "later", reviewed_by="rev-1")

    again = pipeline.reprocess_meeting(mid)
    assert [s.suggested_task for s in again] == ["Ship release"]
    assert again[0].id != rejected.id
    assert pipeline.suggestions.get(rejected.id).status == SuggestionStatus.rejected


def test_reprocess_sends_known_labels_and_filters_service_output(meeting_factory):
    mid = meeting_factory(NOTES)
    pipeline = _pipeline()
    pipeline.process_meeting(mid)

    # The service ignores the dedup instruction and repeats a paraphrase.
    fake = FakeReasoningService({"suggestions": [
        {"originalText": "Follow up with client", "suggestedTask": "follow up with the client"},
        {"originalText": "Ship release", "suggestedTask": "Announce release to customers via newsletter"},
    ]})
    pipeline.extractor = TextExtractor(CONFIGURED, http_post=fake)
    created = pipeline.reprocess_meeting(mid)

    assert [s.suggested_task for s in created] == ["Announce release to customers via newsletter"]
    data = fake.calls[0]["data"]
    assert "DUPLICATE DETECTION" in data["messages"][0]["content"]
    user = data["messages"][1]["content"]
    assert '"Update docs"' in user and "Purpose: Update docs" in user


def test_reprocess_with_service_down_matches_fallback(meeting_factory):
    mid = meeting_factory(NOTES)
    fake = FakeReasoningService(RuntimeError("HTTP 500: boom"))
    created = _pipeline(fake, configured=True).reprocess_meeting(mid)
    expected = fallback_candidates(NOTES)
    assert [s.original_text for s in created] == [c.original_text for c in expected]
    assert [s.confidence_score for s in created] == [c.confidence_score for c in expected]


def test_unknown_meeting_is_not_found():
    with pytest.raises(NotFoundError):
        _pipeline().reprocess_meeting(404)
    with pytest.raises(NotFoundError):
        _pipeline().process_meeting(404)


def test_storage_failure_propagates(meeting_factory, monkeypatch):
    mid = meeting_factory(NOTES)

    def broken(*args, **kwargs):
        raise StorageError("disk full")

    monkeypatch.setattr(db, "insert_suggestion", broken)
    with pytest.raises(StorageError):
        _pipeline().process_meeting(mid)
