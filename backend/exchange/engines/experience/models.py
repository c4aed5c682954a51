from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import SessionLocked

DEFAULT_FORM_TYPE = "experience"
DEFAULT_TITLE = "Exchange experience"

SECTION_KEYS: tuple[str, ...] = (
    "basicInfo",
    "courses",
    "accommodation",
    "livingExpenses",
    "experience",
)
TOTAL_STEPS = len(SECTION_KEYS)
ALL_STEPS = frozenset(range(1, TOTAL_STEPS + 1))


class SubmissionStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    REVISION_NEEDED = "REVISION_NEEDED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"


EDITABLE_STATUSES = frozenset(
    {SubmissionStatus.DRAFT, SubmissionStatus.IN_PROGRESS, SubmissionStatus.REVISION_NEEDED}
)
TERMINAL_STATUSES = frozenset(
    {SubmissionStatus.APPROVED, SubmissionStatus.REJECTED, SubmissionStatus.ARCHIVED}
)


def section_for_step(step: int) -> str:
    if step < 1 or step > TOTAL_STEPS:
        raise ValueError(f"Step must be between 1 and {TOTAL_STEPS}, got {step}")
    return SECTION_KEYS[step - 1]


def step_for_section(section: str) -> int:
    try:
        return SECTION_KEYS.index(section) + 1
    except ValueError:
        raise ValueError(f"Unknown section: {section!r}") from None


def coerce_steps(raw: Any) -> set[int]:
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return set()
    steps: set[int] = set()
    for item in raw:
        try:
            value = int(item)
        except (TypeError, ValueError):
            continue
        if 1 <= value <= TOTAL_STEPS:
            steps.add(value)
    return steps


def clamp_step(raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return 1
    return max(1, min(TOTAL_STEPS, value))


@dataclass
class FormSession:
    """Working copy of one submitter's in-progress submission.

    Owned by the client until it is handed to the server at submit time.
    """

    session_id: str
    form_type: str = DEFAULT_FORM_TYPE
    sections: dict[str, Any] = field(default_factory=dict)
    current_step: int = 1
    completed_steps: set[int] = field(default_factory=set)
    revision_count: int = 0
    last_persisted_hash: str | None = None
    status: SubmissionStatus = SubmissionStatus.DRAFT
    title: str = DEFAULT_TITLE

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    def ensure_editable(self) -> None:
        if not self.is_editable:
            raise SessionLocked(self.status, "edit", f"Submission is {self.status.value} and cannot be edited")

    def update_section(self, key: str, payload: Any) -> None:
        if key not in SECTION_KEYS:
            raise ValueError(f"Unknown section: {key!r}")
        self.ensure_editable()
        self.sections[key] = copy.deepcopy(payload)

    def snapshot(self) -> dict[str, Any]:
        """Persistable view: sections and progress, no moderation fields."""
        return {
            "sessionId": self.session_id,
            "formType": self.form_type,
            "sections": copy.deepcopy(self.sections),
            "progress": {
                "currentStep": self.current_step,
                "completedSteps": sorted(self.completed_steps),
            },
        }

    @classmethod
    def from_snapshot(cls, payload: dict[str, Any], **overrides: Any) -> "FormSession":
        progress = payload.get("progress") if isinstance(payload.get("progress"), dict) else {}
        sections = payload.get("sections") if isinstance(payload.get("sections"), dict) else {}
        values: dict[str, Any] = {
            "session_id": str(payload.get("sessionId") or ""),
            "form_type": str(payload.get("formType") or DEFAULT_FORM_TYPE),
            "sections": {key: value for key, value in sections.items() if key in SECTION_KEYS},
            "current_step": clamp_step(progress.get("currentStep", 1)),
            "completed_steps": coerce_steps(progress.get("completedSteps")),
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class Submission:
    """Server-side record derived from a FormSession, plus moderation metadata."""

    id: str
    user_id: str
    form_type: str
    title: str
    status: SubmissionStatus
    sections: dict[str, Any] = field(default_factory=dict)
    current_step: int = 1
    completed_steps: set[int] = field(default_factory=set)
    revision_count: int = 0
    review_feedback: str | None = None
    reviewed_by: str | None = None
    reviewed_at: str | None = None
    submitted_at: str | None = None
    last_saved_at: str | None = None
    is_public: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_locked_for_submitter(self) -> bool:
        return self.status not in EDITABLE_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "formType": self.form_type,
            "title": self.title,
            "status": self.status.value,
            "sections": self.sections,
            "currentStep": self.current_step,
            "completedSteps": sorted(self.completed_steps),
            "revisionCount": self.revision_count,
            "reviewFeedback": self.review_feedback,
            "reviewedBy": self.reviewed_by,
            "reviewedAt": self.reviewed_at,
            "submittedAt": self.submitted_at,
            "lastSavedAt": self.last_saved_at,
            "isPublic": self.is_public,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Submission":
        return cls(
            id=str(payload.get("id") or ""),
            user_id=str(payload.get("userId") or ""),
            form_type=str(payload.get("formType") or DEFAULT_FORM_TYPE),
            title=str(payload.get("title") or ""),
            status=SubmissionStatus(str(payload.get("status") or SubmissionStatus.DRAFT.value)),
            sections=payload.get("sections") if isinstance(payload.get("sections"), dict) else {},
            current_step=clamp_step(payload.get("currentStep", 1)),
            completed_steps=coerce_steps(payload.get("completedSteps")),
            revision_count=int(payload.get("revisionCount") or 0),
            review_feedback=payload.get("reviewFeedback"),
            reviewed_by=payload.get("reviewedBy"),
            reviewed_at=payload.get("reviewedAt"),
            submitted_at=payload.get("submittedAt"),
            last_saved_at=payload.get("lastSavedAt"),
            is_public=bool(payload.get("isPublic", False)),
            created_at=payload.get("createdAt"),
            updated_at=payload.get("updatedAt"),
        )
