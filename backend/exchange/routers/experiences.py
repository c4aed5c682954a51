import logging
import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from ..config import resolve_revision_cap
from ..db.database import get_db
from ..engines.experience.errors import (
    InvalidTransition,
    SessionLocked,
    SubmissionNotFound,
    ValidationError,
)
from ..engines.experience.models import Submission
from ..engines.lifecycle import store
from ..engines.moderation.status_view import build_status_view

router = APIRouter(prefix="/experiences", tags=["experiences"])
logger = logging.getLogger(__name__)


class SaveDraftRequest(BaseModel):
    title: str | None = None
    sections: dict[str, Any] = Field(default_factory=dict)
    progress: dict[str, Any] = Field(default_factory=dict)


class SubmitRequest(BaseModel):
    sections: dict[str, Any] | None = None


def db_conn():
    conn = get_db()
    try:
        yield conn
    finally:
        conn.close()


def current_user(x_user_id: str | None = Header(default=None)) -> str:
    return (x_user_id or "").strip() or "local"


def _draft_payload(submission: Submission) -> dict[str, Any]:
    return {
        "sessionId": submission.id,
        "formType": submission.form_type,
        "sections": submission.sections,
        "progress": {
            "currentStep": submission.current_step,
            "completedSteps": sorted(submission.completed_steps),
        },
        "status": submission.status.value,
        "revisionCount": submission.revision_count,
        "reviewFeedback": submission.review_feedback,
        "submission": submission.to_dict(),
    }


def _get_session_or_404(db: sqlite3.Connection, user_id: str, form_type: str) -> Submission:
    submission = store.find_session_submission(db, user_id, form_type)
    if submission is None:
        raise HTTPException(status_code=404, detail="No draft found")
    return submission


@router.get("/{form_type}/draft")
def load_draft(
    form_type: str,
    user_id: str = Depends(current_user),
    db: sqlite3.Connection = Depends(db_conn),
):
    return _draft_payload(_get_session_or_404(db, user_id, form_type))


@router.put("/{form_type}/draft")
def save_draft(
    form_type: str,
    payload: SaveDraftRequest,
    user_id: str = Depends(current_user),
    db: sqlite3.Connection = Depends(db_conn),
):
    try:
        submission = store.save_draft(
            db,
            user_id,
            form_type,
            (payload.title or "").strip(),
            payload.sections,
            payload.progress,
        )
    except SessionLocked as err:
        raise HTTPException(status_code=409, detail=err.to_dict()) from err
    return submission.to_dict()


@router.delete("/{form_type}/draft")
def delete_draft(
    form_type: str,
    user_id: str = Depends(current_user),
    db: sqlite3.Connection = Depends(db_conn),
):
    try:
        store.delete_draft(db, user_id, form_type)
    except SubmissionNotFound as err:
        raise HTTPException(status_code=404, detail=str(err)) from err
    except InvalidTransition as err:
        raise HTTPException(status_code=409, detail=err.to_dict()) from err
    return {"deleted": True}


@router.post("/{form_type}/submit")
def submit(
    form_type: str,
    payload: SubmitRequest,
    user_id: str = Depends(current_user),
    db: sqlite3.Connection = Depends(db_conn),
):
    try:
        submission = store.submit_session(
            db,
            user_id,
            form_type,
            payload.sections,
            revision_cap=resolve_revision_cap(db),
        )
    except ValidationError as err:
        raise HTTPException(status_code=422, detail=err.to_dict()) from err
    except InvalidTransition as err:
        logger.warning("Rejected submit of %s for user %s: %s", form_type, user_id, err)
        raise HTTPException(status_code=409, detail=err.to_dict()) from err
    return submission.to_dict()


@router.get("/{form_type}/status")
def submission_status(
    form_type: str,
    user_id: str = Depends(current_user),
    db: sqlite3.Connection = Depends(db_conn),
):
    submission = _get_session_or_404(db, user_id, form_type)
    return build_status_view(submission, store.list_review_actions(db, submission.id))
