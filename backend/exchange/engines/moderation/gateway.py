import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from ...config import resolve_revision_cap
from ..experience.errors import InvalidTransition, SubmissionNotFound, ValidationError
from ..experience.models import Submission, SubmissionStatus
from ..lifecycle import store
from ..lifecycle.state_machine import FEEDBACK_REQUIRED, SubmissionEvent

logger = logging.getLogger(__name__)

STATUS_TO_EVENT: dict[SubmissionStatus, SubmissionEvent] = {
    SubmissionStatus.UNDER_REVIEW: SubmissionEvent.OPEN_REVIEW,
    SubmissionStatus.REVISION_NEEDED: SubmissionEvent.REQUEST_REVISION,
    SubmissionStatus.APPROVED: SubmissionEvent.APPROVE,
    SubmissionStatus.REJECTED: SubmissionEvent.REJECT,
    SubmissionStatus.ARCHIVED: SubmissionEvent.ARCHIVE,
}
DECISION_EVENTS = {
    SubmissionEvent.REQUEST_REVISION,
    SubmissionEvent.APPROVE,
    SubmissionEvent.REJECT,
}
# Drafts stay out of the review queue unless a status filter asks for them.
REVIEW_QUEUE_STATUSES = [
    status
    for status in SubmissionStatus
    if status not in (SubmissionStatus.DRAFT, SubmissionStatus.IN_PROGRESS)
]
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class ModerationResult:
    submission: Submission
    previous_status: SubmissionStatus
    forced: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "submission": self.submission.to_dict(),
            "previousStatus": self.previous_status.value,
            "forced": self.forced,
        }


def parse_status(raw: Any) -> SubmissionStatus:
    value = str(getattr(raw, "value", raw) or "").strip().upper()
    if value == "PUBLISHED":
        return SubmissionStatus.APPROVED
    try:
        return SubmissionStatus(value)
    except ValueError:
        raise ValidationError(
            f"Unknown status: {raw!r}",
            [{"field": "status", "message": "not a known submission status"}],
        ) from None


class ModerationGateway:
    """The one place admin screens list submissions and change their status."""

    def __init__(
        self,
        db: sqlite3.Connection,
        *,
        revision_cap: int | None = None,
        auto_open_review: bool = True,
    ):
        self.db = db
        self._revision_cap = revision_cap
        self.auto_open_review = auto_open_review

    @property
    def revision_cap(self) -> int:
        if self._revision_cap is not None:
            return self._revision_cap
        return resolve_revision_cap(self.db)

    def list_submissions(
        self,
        status: Any = None,
        form_type: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        statuses = [parse_status(status)] if status else REVIEW_QUEUE_STATUSES
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))
        offset = max(0, int(offset))
        items, total = store.query_submissions(
            self.db,
            statuses=statuses,
            form_type=form_type or None,
            search=(search or "").strip() or None,
            limit=limit,
            offset=offset,
        )
        return {
            "submissions": [item.to_dict() for item in items],
            "stats": {
                "total": total,
                "byStatus": store.count_by_status(self.db, form_type or None),
            },
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": total > offset + limit,
            },
        }

    def get(self, submission_id: str) -> Submission:
        return store.get_submission(self.db, submission_id)

    def review_history(self, submission_id: str) -> list[dict[str, Any]]:
        store.get_submission(self.db, submission_id)
        return store.list_review_actions(self.db, submission_id)

    def patch_status(
        self,
        submission_id: str,
        status: Any,
        *,
        feedback: str | None = None,
        reviewer: str | None = None,
    ) -> ModerationResult:
        target = parse_status(status)
        event = STATUS_TO_EVENT.get(target)
        current = store.get_submission(self.db, submission_id)
        if event is None:
            logger.warning(
                "Moderation to %s on %s rejected; current status is %s",
                target.value,
                submission_id,
                current.status.value,
            )
            raise InvalidTransition(current.status, f"set_{target.value.lower()}")
        if event in FEEDBACK_REQUIRED and not (feedback or "").strip():
            raise ValidationError(
                "Feedback is required for this review action",
                [{"field": "feedback", "message": "feedback is required"}],
            )

        previous_status = current.status
        try:
            if (
                self.auto_open_review
                and event in DECISION_EVENTS
                and current.status is SubmissionStatus.SUBMITTED
            ):
                store.transition_submission(
                    self.db,
                    submission_id,
                    SubmissionEvent.OPEN_REVIEW,
                    actor=reviewer,
                    revision_cap=self.revision_cap,
                )
            result = store.transition_submission(
                self.db,
                submission_id,
                event,
                actor=reviewer,
                feedback=feedback,
                revision_cap=self.revision_cap,
            )
        except InvalidTransition as err:
            self._attach_current_status(err, submission_id)
            logger.warning(
                "Moderation %s on %s rejected; current status is %s",
                err.event,
                submission_id,
                err.current_status,
            )
            raise

        if result.forced:
            logger.info(
                "Revision cap (%s) reached for %s; review forced to %s",
                self.revision_cap,
                submission_id,
                result.status.value,
            )
        return ModerationResult(submission=result.submission, previous_status=previous_status, forced=result.forced)

    def _attach_current_status(self, err: InvalidTransition, submission_id: str) -> None:
        # Always report the stored status, never the one the caller assumed.
        try:
            err.current_status = store.get_submission(self.db, submission_id).status.value
        except SubmissionNotFound:
            err.current_status = None

    def open_review(self, submission_id: str, reviewer: str | None = None) -> ModerationResult:
        return self.patch_status(submission_id, SubmissionStatus.UNDER_REVIEW, reviewer=reviewer)

    def approve(self, submission_id: str, reviewer: str | None = None) -> ModerationResult:
        return self.patch_status(submission_id, SubmissionStatus.APPROVED, reviewer=reviewer)

    def reject(self, submission_id: str, feedback: str, reviewer: str | None = None) -> ModerationResult:
        return self.patch_status(submission_id, SubmissionStatus.REJECTED, feedback=feedback, reviewer=reviewer)

    def request_revision(self, submission_id: str, feedback: str, reviewer: str | None = None) -> ModerationResult:
        return self.patch_status(
            submission_id,
            SubmissionStatus.REVISION_NEEDED,
            feedback=feedback,
            reviewer=reviewer,
        )

    def archive(self, submission_id: str, reviewer: str | None = None) -> ModerationResult:
        return self.patch_status(submission_id, SubmissionStatus.ARCHIVED, reviewer=reviewer)
