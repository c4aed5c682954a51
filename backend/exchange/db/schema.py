from pathlib import Path

from .database import get_db

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS experience_submissions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    form_type TEXT NOT NULL DEFAULT 'experience',
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'DRAFT',
    sections_json TEXT,
    current_step INTEGER DEFAULT 1,
    completed_steps_json TEXT DEFAULT '[]',
    revision_count INTEGER DEFAULT 0,
    review_feedback TEXT,
    reviewed_by TEXT,
    reviewed_at TEXT,
    submitted_at TEXT,
    last_saved_at TEXT,
    is_public INTEGER DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now')),
    UNIQUE (user_id, form_type)
);

CREATE INDEX IF NOT EXISTS idx_experience_submissions_status
    ON experience_submissions (status, updated_at);

CREATE TABLE IF NOT EXISTS review_actions (
    id TEXT PRIMARY KEY,
    submission_id TEXT NOT NULL REFERENCES experience_submissions(id) ON DELETE CASCADE,
    reviewer_id TEXT,
    action TEXT NOT NULL,
    from_status TEXT NOT NULL,
    to_status TEXT NOT NULL,
    feedback TEXT,
    forced INTEGER DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS settings (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    revision_cap INTEGER DEFAULT 1,
    autosave_debounce_ms INTEGER DEFAULT 2000,
    remote_retry_attempts INTEGER DEFAULT 3,
    updated_at TEXT DEFAULT (datetime('now'))
);
"""


def init_db(db_path: str | Path | None = None) -> None:
    conn = get_db(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        _ensure_submission_columns(conn)
        _ensure_settings_columns(conn)
        conn.execute(
            """
            INSERT INTO settings (id)
            VALUES (1)
            ON CONFLICT(id) DO NOTHING
            """
        )
        conn.commit()
    finally:
        conn.close()


def _ensure_submission_columns(conn) -> None:
    """Add columns that were added after the initial schema deployment."""
    existing = {
        str(row[1])
        for row in conn.execute("PRAGMA table_info(experience_submissions)").fetchall()
        if len(row) > 1
    }
    required_defs = [
        ("last_saved_at", "TEXT"),
        ("is_public", "INTEGER DEFAULT 0"),
    ]
    for column, definition in required_defs:
        if column in existing:
            continue
        conn.execute(f"ALTER TABLE experience_submissions ADD COLUMN {column} {definition}")


def _ensure_settings_columns(conn) -> None:
    existing = {
        str(row[1])
        for row in conn.execute("PRAGMA table_info(settings)").fetchall()
        if len(row) > 1
    }
    required_defs = [
        ("autosave_debounce_ms", "INTEGER DEFAULT 2000"),
        ("remote_retry_attempts", "INTEGER DEFAULT 3"),
    ]
    for column, definition in required_defs:
        if column in existing:
            continue
        conn.execute(f"ALTER TABLE settings ADD COLUMN {column} {definition}")
