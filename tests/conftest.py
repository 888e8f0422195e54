import json
import os
import tempfile
from typing import Any, Callable, Dict, List, Optional

import pytest

# Keep the import-time default app away from the package directory.
os.environ.setdefault("SUGGEST_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="suggest-"), "import.db"))
os.environ["SUGGEST_AI_API_KEY"] = ""

from fastapi.testclient import TestClient  # noqa: E402

from meeting_suggestions import db  # noqa: E402
from meeting_suggestions.app import create_app  # noqa: E402
from meeting_suggestions.config import ReasoningConfig, Settings  # noqa: E402


CONFIGURED = ReasoningConfig(
    api_url="https://reasoning.example.test/v1/chat/completions",
    api_key="sk-test",
    model="test-model",
    timeout_s=5,
)


class FakeReasoningService:
    """Stands in for the HTTP call; replays queued responses or raises."""

    def __init__(self, *responses: Any) -> None:
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url: str, headers: Dict[str, str], data: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        self.calls.append({"url": url, "headers": headers, "data": data, "timeout": timeout})
        if not self.responses:
            raise RuntimeError("no response queued")
        nxt = self.responses.pop(0)
        if isinstance(nxt, BaseException):
            raise nxt
        if isinstance(nxt, dict) and "choices" in nxt:
            return nxt
        content = nxt if isinstance(nxt, str) else json.dumps(nxt)
        return {"choices": [{"message": {"content": content}}]}


@pytest.fixture(autouse=True)
def fresh_db(tmp_path):
    db.configure_db_path(tmp_path / "suggestions.db")
    db.initialize_db()
    yield tmp_path / "suggestions.db"


@pytest.fixture
def meeting_factory() -> Callable[..., int]:
    def _make(notes: str = "Follow up with client. Update docs. Ship release.", project_id: Optional[str] = None) -> int:
        return db.new_meeting(
            title="Weekly sync",
            notes=notes,
            meeting_date="2026-10-01",
            project_id=project_id,
            created_by="u-1",
        )
    return _make


@pytest.fixture
def make_client(fresh_db):
    def _make(http_post=None, configured: bool = False) -> TestClient:
        settings = Settings(
            db_path=str(fresh_db),
            ai_api_key=CONFIGURED.api_key if configured else "",
            ai_api_url=CONFIGURED.api_url,
            ai_model=CONFIGURED.model,
        )
        return TestClient(create_app(settings, http_post=http_post))
    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
