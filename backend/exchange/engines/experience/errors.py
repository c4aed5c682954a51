"""Error taxonomy shared by the submission persistence and lifecycle engines."""

from __future__ import annotations

from typing import Any


class SubmissionError(Exception):
    """Base class for every error raised by the submission engines."""


class ValidationError(SubmissionError, ValueError):
    """A section payload (or a submit request) failed its schema."""

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None, section: str | None = None):
        super().__init__(message)
        self.errors = list(errors or [])
        self.section = section

    def to_dict(self) -> dict[str, Any]:
        return {"message": str(self), "section": self.section, "errors": self.errors}


class StepLocked(ValidationError):
    """Raised when navigation skips over a step that is not completed yet."""


class NetworkError(SubmissionError, RuntimeError):
    """Transient remote I/O failure. Retried, then persistence degrades."""


class PersistenceDegraded(SubmissionError, RuntimeError):
    """Remote tier unreachable while the local tier holds the latest snapshot.

    Reported as a condition on the autosave state rather than raised.
    """

    message = "Changes saved locally only"

    def __init__(self, reason: str | None = None):
        super().__init__(self.message if not reason else f"{self.message}: {reason}")
        self.reason = reason


class InvalidTransition(SubmissionError, ValueError):
    """A lifecycle event does not apply to the submission's current status."""

    def __init__(self, current_status: Any, event: Any, message: str | None = None):
        self.current_status = getattr(current_status, "value", current_status)
        self.event = getattr(event, "value", event)
        super().__init__(message or f"Cannot apply {self.event} to a submission in status {self.current_status}")

    def to_dict(self) -> dict[str, Any]:
        return {"message": str(self), "current_status": self.current_status, "event": self.event}


class SessionLocked(InvalidTransition):
    """The submitter tried to edit a session that is no longer editable."""


class ConflictOnLoad(SubmissionError):
    """Remote and local snapshots both exist and differ. The remote copy wins."""

    def __init__(self, form_type: str, session_id: str, remote_hash: str, local_hash: str):
        super().__init__(
            f"Local draft for {form_type}/{session_id} diverged from the remote copy; remote copy kept"
        )
        self.form_type = form_type
        self.session_id = session_id
        self.remote_hash = remote_hash
        self.local_hash = local_hash


class SubmissionNotFound(SubmissionError, LookupError):
    """No submission exists for the requested id or session."""
