"""sqlite-backed storage for submissions and their review audit trail."""

import json
import logging
import sqlite3
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from ...config import DEFAULT_REVISION_CAP
from ..experience.errors import InvalidTransition, SessionLocked, SubmissionNotFound, ValidationError
from ..experience.models import (
    DEFAULT_TITLE,
    SECTION_KEYS,
    Submission,
    SubmissionStatus,
    clamp_step,
    coerce_steps,
)
from ..experience.sections import validate_all_sections
from .state_machine import (
    REVIEWER_EVENTS,
    SubmissionEvent,
    TransitionResult,
    apply_event,
    can_apply,
    initial_status,
)

logger = logging.getLogger(__name__)

DELETABLE_STATUSES = {SubmissionStatus.DRAFT, SubmissionStatus.IN_PROGRESS}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_json_obj(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
            return parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            return {}
    return {}


def _parse_json_list(raw: Any) -> list[Any]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
            return parsed if isinstance(parsed, list) else []
        except json.JSONDecodeError:
            return []
    return []


def _clean_sections(sections: Any) -> dict[str, Any]:
    if not isinstance(sections, dict):
        return {}
    return {key: value for key, value in sections.items() if key in SECTION_KEYS}


def _row_to_submission(row: sqlite3.Row) -> Submission:
    item = dict(row)
    return Submission(
        id=item["id"],
        user_id=item["user_id"],
        form_type=item["form_type"],
        title=item["title"],
        status=SubmissionStatus(item["status"]),
        sections=_parse_json_obj(item.get("sections_json")),
        current_step=clamp_step(item.get("current_step")),
        completed_steps=coerce_steps(_parse_json_list(item.get("completed_steps_json"))),
        revision_count=int(item.get("revision_count") or 0),
        review_feedback=item.get("review_feedback"),
        reviewed_by=item.get("reviewed_by"),
        reviewed_at=item.get("reviewed_at"),
        submitted_at=item.get("submitted_at"),
        last_saved_at=item.get("last_saved_at"),
        is_public=bool(item.get("is_public")),
        created_at=item.get("created_at"),
        updated_at=item.get("updated_at"),
    )


def get_submission(db: sqlite3.Connection, submission_id: str) -> Submission:
    row = db.execute("SELECT * FROM experience_submissions WHERE id = ?", (submission_id,)).fetchone()
    if row is None:
        raise SubmissionNotFound(f"Submission {submission_id} not found")
    return _row_to_submission(row)


def find_session_submission(db: sqlite3.Connection, user_id: str, form_type: str) -> Submission | None:
    row = db.execute(
        "SELECT * FROM experience_submissions WHERE user_id = ? AND form_type = ?",
        (user_id, form_type),
    ).fetchone()
    return _row_to_submission(row) if row is not None else None


def _insert_submission(db: sqlite3.Connection, submission: Submission) -> None:
    db.execute(
        """
        INSERT INTO experience_submissions (
            id,
            user_id,
            form_type,
            title,
            status,
            sections_json,
            current_step,
            completed_steps_json,
            revision_count,
            last_saved_at,
            is_public,
            created_at,
            updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            submission.id,
            submission.user_id,
            submission.form_type,
            submission.title,
            submission.status.value,
            json.dumps(submission.sections),
            submission.current_step,
            json.dumps(sorted(submission.completed_steps)),
            submission.revision_count,
            submission.last_saved_at,
            int(submission.is_public),
            submission.created_at,
            submission.updated_at,
        ),
    )


def _compare_and_set(db: sqlite3.Connection, submission: Submission, expected_status: SubmissionStatus) -> bool:
    """Write ``submission`` only if the stored status is still ``expected_status``."""
    result = db.execute(
        """
        UPDATE experience_submissions
        SET
            title = ?,
            status = ?,
            sections_json = ?,
            current_step = ?,
            completed_steps_json = ?,
            revision_count = ?,
            review_feedback = ?,
            reviewed_by = ?,
            reviewed_at = ?,
            submitted_at = ?,
            last_saved_at = ?,
            is_public = ?,
            updated_at = ?
        WHERE id = ? AND status = ?
        """,
        (
            submission.title,
            submission.status.value,
            json.dumps(submission.sections),
            submission.current_step,
            json.dumps(sorted(submission.completed_steps)),
            submission.revision_count,
            submission.review_feedback,
            submission.reviewed_by,
            submission.reviewed_at,
            submission.submitted_at,
            submission.last_saved_at,
            int(submission.is_public),
            submission.updated_at,
            submission.id,
            expected_status.value,
        ),
    )
    return result.rowcount == 1


def _raise_stale(db: sqlite3.Connection, submission_id: str, event: Any) -> None:
    current = get_submission(db, submission_id)
    logger.warning(
        "Rejected %s on submission %s: status changed concurrently to %s",
        getattr(event, "value", event),
        submission_id,
        current.status.value,
    )
    raise InvalidTransition(current.status, event)


def save_draft(
    db: sqlite3.Connection,
    user_id: str,
    form_type: str,
    title: str,
    sections: dict[str, Any],
    progress: dict[str, Any] | None = None,
) -> Submission:
    """Create or update the draft for ``(user_id, form_type)``.

    Each save carries the full section payloads (last write wins). Completed
    steps are merged with what is stored so they never shrink.
    """
    progress = progress or {}
    now = _utc_now_iso()
    incoming_steps = coerce_steps(progress.get("completedSteps"))
    current_step = clamp_step(progress.get("currentStep", 1))
    clean_sections = _clean_sections(sections)

    existing = find_session_submission(db, user_id, form_type)
    if existing is None:
        created = Submission(
            id=f"exp-{uuid4().hex[:10]}",
            user_id=user_id,
            form_type=form_type,
            title=title or DEFAULT_TITLE,
            status=initial_status(),
            sections=clean_sections,
            current_step=current_step,
            completed_steps=incoming_steps,
            last_saved_at=now,
            created_at=now,
            updated_at=now,
        )
        if incoming_steps:
            created = apply_event(created, SubmissionEvent.STEP_COMPLETED, now=now).submission
        try:
            _insert_submission(db, created)
        except sqlite3.IntegrityError:
            # Another request created the row first; fall through to an update.
            db.rollback()
            return save_draft(db, user_id, form_type, title, sections, progress)
        db.commit()
        logger.info("Created %s submission %s for user %s", form_type, created.id, user_id)
        return created

    if existing.is_locked_for_submitter:
        raise SessionLocked(existing.status, "save", f"Submission is {existing.status.value} and cannot be modified")

    merged_steps = set(existing.completed_steps) | incoming_steps
    updated = replace(
        existing,
        title=title or existing.title,
        sections=clean_sections,
        current_step=current_step,
        completed_steps=merged_steps,
        last_saved_at=now,
        updated_at=now,
    )
    if merged_steps and can_apply(existing.status, SubmissionEvent.STEP_COMPLETED):
        updated = apply_event(updated, SubmissionEvent.STEP_COMPLETED, now=now).submission

    if not _compare_and_set(db, updated, existing.status):
        db.rollback()
        _raise_stale(db, existing.id, "save")
    db.commit()
    return updated


def submit_session(
    db: sqlite3.Connection,
    user_id: str,
    form_type: str,
    sections: dict[str, Any] | None = None,
    revision_cap: int = DEFAULT_REVISION_CAP,
) -> Submission:
    existing = find_session_submission(db, user_id, form_type)
    if existing is None:
        raise ValidationError("Please complete all form steps before submitting")
    if not can_apply(existing.status, SubmissionEvent.SUBMIT):
        raise InvalidTransition(existing.status, SubmissionEvent.SUBMIT)

    candidate = existing
    if sections is not None:
        candidate = replace(existing, sections=_clean_sections(sections))
    validate_all_sections(candidate.sections)

    result = apply_event(candidate, SubmissionEvent.SUBMIT, actor=user_id, revision_cap=revision_cap)
    if not _compare_and_set(db, result.submission, existing.status):
        db.rollback()
        _raise_stale(db, existing.id, SubmissionEvent.SUBMIT)
    _record_action(db, result, actor=user_id, feedback=None)
    db.commit()
    logger.info(
        "Submission %s moved %s -> %s",
        existing.id,
        result.previous_status.value,
        result.status.value,
    )
    return result.submission


def delete_draft(db: sqlite3.Connection, user_id: str, form_type: str) -> None:
    existing = find_session_submission(db, user_id, form_type)
    if existing is None:
        raise SubmissionNotFound(f"No {form_type} draft for user {user_id}")
    if existing.status not in DELETABLE_STATUSES:
        raise SessionLocked(existing.status, "delete", "Submitted experience cannot be deleted")
    result = db.execute(
        "DELETE FROM experience_submissions WHERE id = ? AND status = ?",
        (existing.id, existing.status.value),
    )
    if result.rowcount == 0:
        db.rollback()
        _raise_stale(db, existing.id, "delete")
    db.commit()


def transition_submission(
    db: sqlite3.Connection,
    submission_id: str,
    event: SubmissionEvent,
    *,
    actor: str | None = None,
    feedback: str | None = None,
    revision_cap: int = DEFAULT_REVISION_CAP,
) -> TransitionResult:
    existing = get_submission(db, submission_id)
    result = apply_event(existing, event, actor=actor, feedback=feedback, revision_cap=revision_cap)
    if not _compare_and_set(db, result.submission, existing.status):
        db.rollback()
        _raise_stale(db, submission_id, result.event)
    _record_action(db, result, actor=actor, feedback=feedback)
    db.commit()
    logger.info(
        "Submission %s moved %s -> %s via %s%s",
        submission_id,
        result.previous_status.value,
        result.status.value,
        result.event.value,
        " (revision cap reached)" if result.forced else "",
    )
    return result


def _record_action(
    db: sqlite3.Connection,
    result: TransitionResult,
    *,
    actor: str | None,
    feedback: str | None,
) -> None:
    db.execute(
        """
        INSERT INTO review_actions (
            id, submission_id, reviewer_id, action, from_status, to_status, feedback, forced, created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            f"rev-{uuid4().hex[:10]}",
            result.submission.id,
            actor,
            result.event.value,
            result.previous_status.value,
            result.status.value,
            (feedback or "").strip() or None,
            int(result.forced),
            result.submission.updated_at or _utc_now_iso(),
        ),
    )


def list_review_actions(db: sqlite3.Connection, submission_id: str, reviewer_only: bool = False) -> list[dict[str, Any]]:
    rows = db.execute(
        """
        SELECT id, submission_id, reviewer_id, action, from_status, to_status, feedback, forced, created_at
        FROM review_actions
        WHERE submission_id = ?
        ORDER BY created_at ASC, rowid ASC
        """,
        (submission_id,),
    ).fetchall()
    actions = []
    for row in rows:
        item = dict(row)
        item["forced"] = bool(item.get("forced"))
        if reviewer_only and SubmissionEvent(item["action"]) not in REVIEWER_EVENTS:
            continue
        actions.append(item)
    return actions


def query_submissions(
    db: sqlite3.Connection,
    *,
    statuses: list[SubmissionStatus] | None = None,
    form_type: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Submission], int]:
    clauses: list[str] = []
    params: list[Any] = []
    if statuses:
        clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
        params.extend(status.value for status in statuses)
    if form_type:
        clauses.append("form_type = ?")
        params.append(form_type)
    if search:
        # Title, or host city/country/university inside the basicInfo section.
        clauses.append(
            """
            (
                LOWER(title) LIKE ?
                OR LOWER(COALESCE(json_extract(sections_json, '$.basicInfo.hostCity'), '')) LIKE ?
                OR LOWER(COALESCE(json_extract(sections_json, '$.basicInfo.hostCountry'), '')) LIKE ?
                OR LOWER(COALESCE(json_extract(sections_json, '$.basicInfo.hostUniversity'), '')) LIKE ?
            )
            """
        )
        needle = f"%{search.strip().lower()}%"
        params.extend([needle] * 4)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    total = db.execute(f"SELECT COUNT(*) FROM experience_submissions {where}", params).fetchone()[0] or 0
    rows = db.execute(
        f"""
        SELECT *
        FROM experience_submissions
        {where}
        ORDER BY updated_at DESC, rowid DESC
        LIMIT ? OFFSET ?
        """,
        [*params, limit, offset],
    ).fetchall()
    return [_row_to_submission(row) for row in rows], int(total)


def count_by_status(db: sqlite3.Connection, form_type: str | None = None) -> dict[str, int]:
    if form_type:
        rows = db.execute(
            "SELECT status, COUNT(*) AS total FROM experience_submissions WHERE form_type = ? GROUP BY status",
            (form_type,),
        ).fetchall()
    else:
        rows = db.execute(
            "SELECT status, COUNT(*) AS total FROM experience_submissions GROUP BY status"
        ).fetchall()
    counts = {status.value: 0 for status in SubmissionStatus}
    for row in rows:
        counts[str(row["status"])] = int(row["total"])
    return counts
