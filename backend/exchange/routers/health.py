import sqlite3
from datetime import datetime, timezone

from fastapi import APIRouter

from ..db.database import get_db

router = APIRouter()

API_VERSION = "0.1.0"


@router.get("/health")
def health_check():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/ready")
def readiness_check():
    conn = get_db()
    try:
        conn.execute("SELECT 1 FROM experience_submissions LIMIT 1").fetchall()
        database_ready = True
    except sqlite3.Error:
        database_ready = False
    finally:
        conn.close()
    return {"ready": database_ready, "database": database_ready, "version": API_VERSION}
