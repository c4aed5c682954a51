import sqlite3

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from ..db.database import get_db
from ..engines.experience.errors import InvalidTransition, SubmissionNotFound, ValidationError
from ..engines.moderation.gateway import ModerationGateway

router = APIRouter(prefix="/admin", tags=["admin"])


class PatchStatusRequest(BaseModel):
    status: str
    feedback: str | None = None


def db_conn():
    conn = get_db()
    try:
        yield conn
    finally:
        conn.close()


def current_reviewer(x_reviewer_id: str | None = Header(default=None)) -> str:
    return (x_reviewer_id or "").strip() or "admin"


def gateway(db: sqlite3.Connection = Depends(db_conn)) -> ModerationGateway:
    return ModerationGateway(db)


@router.get("/submissions")
def list_submissions(
    status: str | None = None,
    type: str | None = None,
    search: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    moderation: ModerationGateway = Depends(gateway),
):
    try:
        return moderation.list_submissions(
            status=status,
            form_type=type,
            search=search,
            limit=limit,
            offset=offset,
        )
    except ValidationError as err:
        raise HTTPException(status_code=400, detail=err.to_dict()) from err


@router.get("/submissions/{submission_id}")
def get_submission(submission_id: str, moderation: ModerationGateway = Depends(gateway)):
    try:
        return moderation.get(submission_id).to_dict()
    except SubmissionNotFound as err:
        raise HTTPException(status_code=404, detail="Submission not found") from err


@router.get("/submissions/{submission_id}/history")
def review_history(submission_id: str, moderation: ModerationGateway = Depends(gateway)):
    try:
        return {"actions": moderation.review_history(submission_id)}
    except SubmissionNotFound as err:
        raise HTTPException(status_code=404, detail="Submission not found") from err


@router.patch("/submissions/{submission_id}/status")
def patch_status(
    submission_id: str,
    payload: PatchStatusRequest,
    reviewer: str = Depends(current_reviewer),
    moderation: ModerationGateway = Depends(gateway),
):
    try:
        result = moderation.patch_status(
            submission_id,
            payload.status,
            feedback=payload.feedback,
            reviewer=reviewer,
        )
    except SubmissionNotFound as err:
        raise HTTPException(status_code=404, detail="Submission not found") from err
    except ValidationError as err:
        raise HTTPException(status_code=422, detail=err.to_dict()) from err
    except InvalidTransition as err:
        raise HTTPException(status_code=409, detail=err.to_dict()) from err
    return result.to_dict()
