from typing import Any

from ..experience.models import TOTAL_STEPS, Submission, SubmissionStatus

STATUS_LABELS: dict[SubmissionStatus, tuple[str, str]] = {
    SubmissionStatus.DRAFT: ("Draft", "Your submission has not been completed yet."),
    SubmissionStatus.IN_PROGRESS: ("In progress", "Keep going: finish the remaining steps and submit."),
    SubmissionStatus.SUBMITTED: ("Submitted", "Your submission is waiting in the review queue."),
    SubmissionStatus.UNDER_REVIEW: ("Under review", "A reviewer is looking at your submission."),
    SubmissionStatus.REVISION_NEEDED: ("Revision needed", "A reviewer asked for changes before publishing."),
    SubmissionStatus.APPROVED: ("Published", "Your experience is live for future students."),
    SubmissionStatus.REJECTED: ("Rejected", "Your submission was not accepted for publication."),
    SubmissionStatus.ARCHIVED: ("Archived", "This submission is no longer publicly listed."),
}

NEXT_ACTIONS: dict[SubmissionStatus, list[tuple[str, str, str]]] = {
    SubmissionStatus.DRAFT: [
        ("Complete Form", "Finish filling out all required fields", "high"),
        ("Review & Submit", "Review your information and submit for approval", "high"),
    ],
    SubmissionStatus.IN_PROGRESS: [
        ("Complete Form", "Finish the remaining steps", "high"),
        ("Review & Submit", "Review your information and submit for approval", "high"),
    ],
    SubmissionStatus.SUBMITTED: [
        ("Wait for Review", "Your submission is being reviewed by our team", "medium"),
        ("Check Status", "Check back later for updates", "low"),
    ],
    SubmissionStatus.UNDER_REVIEW: [
        ("Wait for Review", "A reviewer has picked up your submission", "medium"),
    ],
    SubmissionStatus.REVISION_NEEDED: [
        ("Review Feedback", "Read the reviewer's feedback carefully", "high"),
        ("Make Changes", "Update your submission based on feedback", "high"),
        ("Resubmit", "Submit your revised version for re-review", "high"),
    ],
    SubmissionStatus.APPROVED: [
        ("View Published", "See your submission live on the platform", "medium"),
        ("Share", "Share your experience with others", "low"),
    ],
    SubmissionStatus.REJECTED: [
        ("Read Feedback", "Understand why the submission was rejected", "high"),
    ],
    SubmissionStatus.ARCHIVED: [],
}

_ACTION_NOTES = {
    "submit": "Submitted for review",
    "open_review": "Review started",
    "approve": "Approved and published",
    "archive": "Archived",
}


def calculate_progress(submission: Submission) -> int:
    if submission.status in (SubmissionStatus.DRAFT, SubmissionStatus.IN_PROGRESS, SubmissionStatus.REVISION_NEEDED):
        done = len([step for step in submission.completed_steps if 1 <= step <= TOTAL_STEPS])
        # Filling in the form is the first 80%; review makes up the rest.
        return round(done / TOTAL_STEPS * 80)
    if submission.status in (SubmissionStatus.SUBMITTED, SubmissionStatus.UNDER_REVIEW):
        return 90
    return 100


def build_timeline(submission: Submission, actions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    timeline: list[dict[str, Any]] = [
        {
            "status": SubmissionStatus.DRAFT.value,
            "timestamp": submission.created_at,
            "actor": submission.user_id,
            "note": "Submission created",
        }
    ]
    for action in actions:
        feedback = action.get("feedback")
        note = feedback or _ACTION_NOTES.get(str(action.get("action")), f"Marked as {str(action.get('to_status')).lower()}")
        if action.get("forced"):
            note = f"{note} (revision limit reached)"
        timeline.append(
            {
                "status": action.get("to_status"),
                "timestamp": action.get("created_at"),
                "actor": action.get("reviewer_id"),
                "note": note,
            }
        )
    return timeline


def build_status_view(submission: Submission, actions: list[dict[str, Any]]) -> dict[str, Any]:
    """Read-only status summary shown to the submitter."""
    label, description = STATUS_LABELS[submission.status]
    review = None
    if submission.review_feedback:
        review = {
            "feedback": submission.review_feedback,
            "reviewedBy": submission.reviewed_by,
            "reviewedAt": submission.reviewed_at,
        }
    return {
        "submission": {
            "id": submission.id,
            "formType": submission.form_type,
            "title": submission.title,
            "status": submission.status.value,
            "revisionCount": submission.revision_count,
            "isPublic": submission.is_public,
            "submittedAt": submission.submitted_at,
            "reviewedAt": submission.reviewed_at,
            "lastSavedAt": submission.last_saved_at,
        },
        "statusInfo": {
            "current": submission.status.value,
            "label": label,
            "description": description,
            "progress": calculate_progress(submission),
            "editable": not submission.is_locked_for_submitter,
        },
        "timeline": build_timeline(submission, actions),
        "nextActions": [
            {"action": name, "description": text, "priority": priority}
            for name, text, priority in NEXT_ACTIONS.get(submission.status, [])
        ],
        "review": review,
    }
