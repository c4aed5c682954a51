import sqlite3
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from exchange.db.schema import init_db

EXPECTED_TABLES = {
    "experience_submissions",
    "review_actions",
    "settings",
}


def _get_tables(db_path: Path) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        return {name for (name,) in rows}
    finally:
        conn.close()


def test_init_db_creates_all_tables(tmp_path: Path):
    db_path = tmp_path / "exchange_experience.db"
    init_db(db_path)
    tables = _get_tables(db_path)
    assert EXPECTED_TABLES.issubset(tables)


def test_init_db_is_idempotent(tmp_path: Path):
    db_path = tmp_path / "exchange_experience.db"
    init_db(db_path)
    init_db(db_path)
    tables = _get_tables(db_path)
    assert EXPECTED_TABLES.issubset(tables)


def test_init_db_seeds_default_settings(tmp_path: Path):
    db_path = tmp_path / "exchange_experience.db"
    init_db(db_path)
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute(
            "SELECT revision_cap, autosave_debounce_ms, remote_retry_attempts FROM settings WHERE id = 1"
        ).fetchone()
    finally:
        conn.close()
    assert row == (1, 2000, 3)


def test_init_db_adds_missing_columns_to_old_tables(tmp_path: Path):
    db_path = tmp_path / "exchange_experience.db"
    conn = sqlite3.connect(db_path)
    conn.execute(
        """
        CREATE TABLE experience_submissions (
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
            created_at TEXT,
            updated_at TEXT,
            UNIQUE (user_id, form_type)
        )
        """
    )
    conn.execute("CREATE TABLE settings (id INTEGER PRIMARY KEY CHECK (id = 1), revision_cap INTEGER DEFAULT 1)")
    conn.commit()
    conn.close()

    init_db(db_path)

    conn = sqlite3.connect(db_path)
    try:
        submission_columns = {row[1] for row in conn.execute("PRAGMA table_info(experience_submissions)")}
        settings_columns = {row[1] for row in conn.execute("PRAGMA table_info(settings)")}
    finally:
        conn.close()
    assert {"last_saved_at", "is_public"}.issubset(submission_columns)
    assert {"autosave_debounce_ms", "remote_retry_attempts"}.issubset(settings_columns)
