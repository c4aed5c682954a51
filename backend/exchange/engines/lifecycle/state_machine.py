"""Submission lifecycle: draft → submitted → under review → decision → archive.

Transitions are table driven. Anything not listed in ``TRANSITIONS`` raises
``InvalidTransition`` and leaves the record untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from ...config import DEFAULT_REVISION_CAP
from ..experience.errors import InvalidTransition, ValidationError
from ..experience.models import ALL_STEPS, Submission, SubmissionStatus


class SubmissionEvent(str, Enum):
    FIRST_SAVE = "first_save"
    STEP_COMPLETED = "step_completed"
    SUBMIT = "submit"
    OPEN_REVIEW = "open_review"
    REQUEST_REVISION = "request_revision"
    APPROVE = "approve"
    REJECT = "reject"
    ARCHIVE = "archive"


S = SubmissionStatus

# event -> {from_status: to_status}
TRANSITIONS: dict[SubmissionEvent, dict[SubmissionStatus, SubmissionStatus]] = {
    SubmissionEvent.STEP_COMPLETED: {
        S.DRAFT: S.IN_PROGRESS,
        S.IN_PROGRESS: S.IN_PROGRESS,
    },
    SubmissionEvent.SUBMIT: {
        S.DRAFT: S.SUBMITTED,
        S.IN_PROGRESS: S.SUBMITTED,
        S.REVISION_NEEDED: S.SUBMITTED,
    },
    SubmissionEvent.OPEN_REVIEW: {
        S.SUBMITTED: S.UNDER_REVIEW,
    },
    SubmissionEvent.REQUEST_REVISION: {
        S.UNDER_REVIEW: S.REVISION_NEEDED,
    },
    SubmissionEvent.APPROVE: {
        S.UNDER_REVIEW: S.APPROVED,
    },
    SubmissionEvent.REJECT: {
        S.UNDER_REVIEW: S.REJECTED,
    },
    SubmissionEvent.ARCHIVE: {
        S.APPROVED: S.ARCHIVED,
        S.REJECTED: S.ARCHIVED,
    },
}

REVIEWER_EVENTS = frozenset(
    {
        SubmissionEvent.OPEN_REVIEW,
        SubmissionEvent.REQUEST_REVISION,
        SubmissionEvent.APPROVE,
        SubmissionEvent.REJECT,
        SubmissionEvent.ARCHIVE,
    }
)
FEEDBACK_REQUIRED = frozenset({SubmissionEvent.REQUEST_REVISION, SubmissionEvent.REJECT})


@dataclass(frozen=True)
class TransitionResult:
    submission: Submission
    previous_status: SubmissionStatus
    event: SubmissionEvent
    forced: bool = False

    @property
    def status(self) -> SubmissionStatus:
        return self.submission.status


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def allowed_events(status: SubmissionStatus) -> list[SubmissionEvent]:
    return [event for event, table in TRANSITIONS.items() if status in table]


def can_apply(status: SubmissionStatus, event: SubmissionEvent) -> bool:
    return status in TRANSITIONS.get(event, {})


def initial_status() -> SubmissionStatus:
    """Status of the record created by the first save of a session."""
    return S.DRAFT


def apply_event(
    submission: Submission,
    event: SubmissionEvent,
    *,
    actor: str | None = None,
    feedback: str | None = None,
    revision_cap: int = DEFAULT_REVISION_CAP,
    now: str | None = None,
) -> TransitionResult:
    """Return the submission as it looks after ``event``.

    The input record is never mutated. Raises ``InvalidTransition`` when the
    event does not apply to the current status and ``ValidationError`` when
    the event's own preconditions (feedback, completed steps) are not met.
    """
    event = SubmissionEvent(event)
    if event is SubmissionEvent.FIRST_SAVE:
        raise InvalidTransition(submission.status, event, "Submission record already exists")

    table = TRANSITIONS.get(event, {})
    current = submission.status
    if current not in table:
        raise InvalidTransition(current, event)

    feedback_text = (feedback or "").strip() or None
    if event in FEEDBACK_REQUIRED and not feedback_text:
        raise ValidationError(
            "Feedback is required for this review action",
            [{"field": "feedback", "message": "feedback is required"}],
        )

    timestamp = now or _utc_now_iso()
    target = table[current]
    forced = False
    changes: dict = {"updated_at": timestamp}

    if event is SubmissionEvent.SUBMIT:
        missing = sorted(ALL_STEPS - set(submission.completed_steps))
        if missing:
            raise ValidationError(
                "Please complete all form steps before submitting",
                [{"field": f"step{step}", "message": "step not completed"} for step in missing],
            )
        changes["submitted_at"] = timestamp
        changes["review_feedback"] = None

    elif event is SubmissionEvent.REQUEST_REVISION:
        if submission.revision_count >= revision_cap:
            target = S.REJECTED
            forced = True
        else:
            changes["revision_count"] = submission.revision_count + 1
        changes["review_feedback"] = feedback_text

    elif event is SubmissionEvent.REJECT:
        changes["review_feedback"] = feedback_text

    elif event is SubmissionEvent.APPROVE:
        changes["is_public"] = True
        changes["review_feedback"] = None

    elif event is SubmissionEvent.ARCHIVE:
        changes["is_public"] = False

    if event in REVIEWER_EVENTS:
        changes["reviewed_by"] = actor
        changes["reviewed_at"] = timestamp

    updated = replace(submission, status=target, **changes)
    return TransitionResult(submission=updated, previous_status=current, event=event, forced=forced)
