"""Exchange experience form: sections, step workflow and error taxonomy."""

from .errors import (
    ConflictOnLoad,
    InvalidTransition,
    NetworkError,
    PersistenceDegraded,
    SessionLocked,
    StepLocked,
    SubmissionError,
    SubmissionNotFound,
    ValidationError,
)
from .models import FormSession, Submission, SubmissionStatus
from .workflow import StepWorkflowController

__all__ = [
    "FormSession",
    "Submission",
    "SubmissionStatus",
    "StepWorkflowController",
    "SubmissionError",
    "ValidationError",
    "StepLocked",
    "NetworkError",
    "PersistenceDegraded",
    "InvalidTransition",
    "SessionLocked",
    "ConflictOnLoad",
    "SubmissionNotFound",
]
