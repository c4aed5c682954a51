"""HTTP client for the experience persistence API."""

import asyncio
import json
import logging
import socket
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from ..config import resolve_api_base_url
from ..engines.autosave.remote import RemoteDraftStore
from ..engines.experience.errors import (
    InvalidTransition,
    NetworkError,
    SessionLocked,
    SubmissionError,
    ValidationError,
)
from ..engines.experience.models import Submission

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


def _decode(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None


def _detail(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict):
        detail = payload.get("detail", payload)
        if isinstance(detail, dict):
            return detail
        if isinstance(detail, str):
            return {"message": detail}
    return {}


def _raise_for_status(status: int, payload: Any, method: str, path: str) -> None:
    detail = _detail(payload)
    message = str(detail.get("message") or f"{method} {path} failed with HTTP {status}")
    if status == 409:
        current = detail.get("current_status")
        event = detail.get("event") or method.lower()
        if event in {"save", "edit", "delete"}:
            raise SessionLocked(current, event, message)
        raise InvalidTransition(current, event, message)
    if status in (400, 422):
        errors = detail.get("errors") if isinstance(detail.get("errors"), list) else []
        raise ValidationError(message, errors, detail.get("section"))
    if status >= 500 or status in (408, 429):
        raise NetworkError(message)
    raise SubmissionError(message)


class HttpDraftStore(RemoteDraftStore):
    """Talks to ``/experiences/{form_type}/...`` on the API server."""

    def __init__(
        self,
        base_url: str | None = None,
        user_id: str = "local",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.base_url = (base_url or resolve_api_base_url()).rstrip("/")
        self.user_id = user_id
        self.timeout = timeout

    def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> tuple[int, Any]:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = Request(
            f"{self.base_url}{path}",
            data=data,
            method=method,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "X-User-Id": self.user_id,
            },
        )
        try:
            with urlopen(request, timeout=self.timeout) as response:  # noqa: S310
                return response.status, _decode(response.read())
        except HTTPError as err:
            return err.code, _decode(err.read())
        except (URLError, socket.timeout, ConnectionError) as err:
            raise NetworkError(f"{method} {path} failed: {err}") from err

    async def _call(self, method: str, path: str, body: dict[str, Any] | None = None) -> tuple[int, Any]:
        status, payload = await asyncio.to_thread(self._request, method, path, body)
        if status >= 400 and status != 404:
            logger.warning("%s %s returned HTTP %s", method, path, status)
            _raise_for_status(status, payload, method, path)
        return status, payload

    def _path(self, form_type: str, action: str) -> str:
        return f"/experiences/{quote(form_type, safe='')}/{action}"

    async def load_draft(self, form_type: str, session_id: str) -> Submission | None:
        status, payload = await self._call("GET", self._path(form_type, "draft"))
        if status == 404 or not isinstance(payload, dict):
            return None
        submission = payload.get("submission")
        if not isinstance(submission, dict):
            return None
        return Submission.from_dict(submission)

    async def save_draft(
        self,
        form_type: str,
        title: str,
        sections: dict[str, Any],
        progress: dict[str, Any],
    ) -> Submission:
        status, payload = await self._call(
            "PUT",
            self._path(form_type, "draft"),
            {"title": title, "sections": sections, "progress": progress},
        )
        if status == 404 or not isinstance(payload, dict):
            raise SubmissionError(f"Unexpected response while saving {form_type} draft")
        return Submission.from_dict(payload)

    async def submit(self, form_type: str, session_id: str, sections: dict[str, Any]) -> Submission:
        status, payload = await self._call("POST", self._path(form_type, "submit"), {"sections": sections})
        if status == 404 or not isinstance(payload, dict):
            raise SubmissionError(f"Unexpected response while submitting {form_type}")
        return Submission.from_dict(payload)
