import asyncio
import io
import json
import sys
from pathlib import Path
from urllib.error import HTTPError, URLError

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import exchange.clients.experience_api as experience_api
from exchange.clients.experience_api import HttpDraftStore
from exchange.engines.experience.errors import (
    InvalidTransition,
    NetworkError,
    SessionLocked,
    ValidationError,
)
from exchange.engines.experience.models import SubmissionStatus

SUBMISSION = {
    "id": "exp-1",
    "userId": "student-1",
    "formType": "experience",
    "title": "Delft",
    "status": "IN_PROGRESS",
    "sections": {"basicInfo": {"firstName": "Ana"}},
    "currentStep": 2,
    "completedSteps": [1],
    "revisionCount": 0,
}


class DummyResponse:
    def __init__(self, payload, status: int = 200):
        self.status = status
        self._body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class RecordingOpener:
    def __init__(self, outcome):
        self.outcome = outcome
        self.requests = []

    def __call__(self, request, timeout=None):
        self.requests.append(request)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _http_error(code: int, payload) -> HTTPError:
    body = io.BytesIO(json.dumps(payload).encode("utf-8"))
    return HTTPError("http://api.test/x", code, "error", {}, body)


def _store(monkeypatch, outcome) -> tuple[HttpDraftStore, RecordingOpener]:
    opener = RecordingOpener(outcome)
    monkeypatch.setattr(experience_api, "urlopen", opener)
    return HttpDraftStore(base_url="http://api.test/", user_id="student-1"), opener


def test_save_draft_sends_full_payload(monkeypatch):
    store, opener = _store(monkeypatch, DummyResponse(SUBMISSION))

    submission = asyncio.run(
        store.save_draft("experience", "Delft", SUBMISSION["sections"], {"currentStep": 2, "completedSteps": [1]})
    )

    request = opener.requests[0]
    assert request.get_method() == "PUT"
    assert request.full_url == "http://api.test/experiences/experience/draft"
    assert request.get_header("X-user-id") == "student-1"
    assert json.loads(request.data) == {
        "title": "Delft",
        "sections": SUBMISSION["sections"],
        "progress": {"currentStep": 2, "completedSteps": [1]},
    }
    assert submission.status is SubmissionStatus.IN_PROGRESS
    assert submission.completed_steps == {1}


def test_load_draft_returns_none_when_missing(monkeypatch):
    store, _ = _store(monkeypatch, _http_error(404, {"detail": "No draft found"}))
    assert asyncio.run(store.load_draft("experience", "s-1")) is None


def test_load_draft_parses_submission(monkeypatch):
    store, _ = _store(monkeypatch, DummyResponse({"sessionId": "exp-1", "submission": SUBMISSION}))
    submission = asyncio.run(store.load_draft("experience", "s-1"))
    assert submission.id == "exp-1"
    assert submission.sections == SUBMISSION["sections"]


@pytest.mark.parametrize(
    "outcome",
    [
        URLError("connection refused"),
        TimeoutError("timed out"),
    ],
)
def test_transport_failures_are_network_errors(monkeypatch, outcome):
    store, _ = _store(monkeypatch, outcome)
    with pytest.raises(NetworkError):
        asyncio.run(store.load_draft("experience", "s-1"))


def test_server_errors_are_network_errors(monkeypatch):
    store, _ = _store(monkeypatch, _http_error(503, {"detail": "unavailable"}))
    with pytest.raises(NetworkError):
        asyncio.run(store.save_draft("experience", "Delft", {}, {}))


def test_conflicts_map_to_lifecycle_errors(monkeypatch):
    detail = {"message": "locked", "current_status": "SUBMITTED", "event": "save"}
    store, _ = _store(monkeypatch, _http_error(409, {"detail": detail}))
    with pytest.raises(SessionLocked) as exc_info:
        asyncio.run(store.save_draft("experience", "Delft", {}, {}))
    assert exc_info.value.current_status == "SUBMITTED"

    detail = {"message": "already submitted", "current_status": "SUBMITTED", "event": "submit"}
    store, _ = _store(monkeypatch, _http_error(409, {"detail": detail}))
    with pytest.raises(InvalidTransition) as exc_info:
        asyncio.run(store.submit("experience", "s-1", {}))
    assert not isinstance(exc_info.value, SessionLocked)


def test_validation_errors_keep_field_messages(monkeypatch):
    detail = {
        "message": "All form sections must be completed before submission",
        "errors": [{"field": "basicInfo.email", "message": "invalid"}],
        "section": None,
    }
    store, _ = _store(monkeypatch, _http_error(422, {"detail": detail}))
    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(store.submit("experience", "s-1", {}))
    assert exc_info.value.errors == detail["errors"]
