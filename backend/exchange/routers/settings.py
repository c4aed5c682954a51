from datetime import datetime, timezone
import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..db.database import get_db

router = APIRouter(prefix="", tags=["settings"])

MAX_REVISION_CAP = 10
MAX_DEBOUNCE_MS = 60_000
MAX_RETRY_ATTEMPTS = 10


class UpdateSettingsRequest(BaseModel):
    revision_cap: int | None = None
    autosave_debounce_ms: int | None = None
    remote_retry_attempts: int | None = None


def db_conn():
    conn = get_db()
    try:
        yield conn
    finally:
        conn.close()


def _ensure_settings_row(db: sqlite3.Connection) -> None:
    db.execute(
        """
        INSERT INTO settings (id)
        VALUES (1)
        ON CONFLICT(id) DO NOTHING
        """
    )
    db.commit()


def _get_settings_or_500(db: sqlite3.Connection) -> dict[str, Any]:
    _ensure_settings_row(db)
    row = db.execute("SELECT * FROM settings WHERE id = 1").fetchone()
    if row is None:
        raise HTTPException(status_code=500, detail="Settings row missing")
    return dict(row)


@router.get("/settings")
def get_settings(db: sqlite3.Connection = Depends(db_conn)):
    return _get_settings_or_500(db)


@router.put("/settings")
def update_settings(payload: UpdateSettingsRequest, db: sqlite3.Connection = Depends(db_conn)):
    updates: dict[str, Any] = {}

    if payload.revision_cap is not None:
        if payload.revision_cap < 0 or payload.revision_cap > MAX_REVISION_CAP:
            raise HTTPException(status_code=400, detail=f"revision_cap must be between 0 and {MAX_REVISION_CAP}")
        updates["revision_cap"] = payload.revision_cap

    if payload.autosave_debounce_ms is not None:
        if payload.autosave_debounce_ms < 0 or payload.autosave_debounce_ms > MAX_DEBOUNCE_MS:
            raise HTTPException(
                status_code=400,
                detail=f"autosave_debounce_ms must be between 0 and {MAX_DEBOUNCE_MS}",
            )
        updates["autosave_debounce_ms"] = payload.autosave_debounce_ms

    if payload.remote_retry_attempts is not None:
        if payload.remote_retry_attempts < 1 or payload.remote_retry_attempts > MAX_RETRY_ATTEMPTS:
            raise HTTPException(
                status_code=400,
                detail=f"remote_retry_attempts must be between 1 and {MAX_RETRY_ATTEMPTS}",
            )
        updates["remote_retry_attempts"] = payload.remote_retry_attempts

    if not updates:
        return _get_settings_or_500(db)

    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    assignments = ", ".join(f"{column} = ?" for column in updates.keys())
    values = list(updates.values())

    _ensure_settings_row(db)
    db.execute(
        f"UPDATE settings SET {assignments} WHERE id = 1",
        values,
    )
    db.commit()
    return _get_settings_or_500(db)
