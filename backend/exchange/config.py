import logging
import os
import sqlite3
from pathlib import Path
from typing import Callable, TypeVar

from .db.database import get_db, resolve_db_path

logger = logging.getLogger(__name__)

DEFAULT_REVISION_CAP = 1
DEFAULT_DEBOUNCE_MS = 2000
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_API_BASE_URL = "http://localhost:8000"
DEFAULT_CACHE_DIR = Path(__file__).resolve().parents[1] / "data" / "autosave"

T = TypeVar("T")


def _env_int(name: str, *, minimum: int) -> int | None:
    env_value = os.environ.get(name)
    if not env_value:
        return None
    try:
        parsed = int(env_value)
    except ValueError:
        logger.warning("Invalid %s value: %s", name, env_value)
        return None
    if parsed < minimum:
        logger.warning("Ignoring %s=%s (must be >= %s)", name, parsed, minimum)
        return None
    return parsed


def _settings_int(conn: sqlite3.Connection | None, column: str, *, minimum: int) -> int | None:
    if conn is None:
        return None
    try:
        row = conn.execute(f"SELECT {column} FROM settings WHERE id = 1").fetchone()
    except sqlite3.Error:
        logger.exception("Failed to read %s from settings", column)
        return None
    if row is None or row[0] is None:
        return None
    try:
        parsed = int(row[0])
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= minimum else None


def resolve_revision_cap(conn: sqlite3.Connection | None = None) -> int:
    for value in (
        _env_int("EXCHANGE_REVISION_CAP", minimum=0),
        _settings_int(conn, "revision_cap", minimum=0),
    ):
        if value is not None:
            return value
    return DEFAULT_REVISION_CAP


def resolve_debounce_seconds(conn: sqlite3.Connection | None = None) -> float:
    for value in (
        _env_int("EXCHANGE_AUTOSAVE_DEBOUNCE_MS", minimum=0),
        _settings_int(conn, "autosave_debounce_ms", minimum=0),
    ):
        if value is not None:
            return value / 1000
    return DEFAULT_DEBOUNCE_MS / 1000


def resolve_retry_attempts(conn: sqlite3.Connection | None = None) -> int:
    for value in (
        _env_int("EXCHANGE_REMOTE_RETRY_ATTEMPTS", minimum=1),
        _settings_int(conn, "remote_retry_attempts", minimum=1),
    ):
        if value is not None:
            return value
    return DEFAULT_RETRY_ATTEMPTS


def resolve_with_settings(resolver: Callable[[sqlite3.Connection | None], T], db_path: str | Path | None = None) -> T:
    """Run a ``resolve_*`` function against the settings row of the app database."""
    path = Path(db_path) if db_path is not None else resolve_db_path()
    if not path.exists():
        return resolver(None)
    conn = get_db(path)
    try:
        return resolver(conn)
    finally:
        conn.close()


def resolve_api_base_url() -> str:
    return (os.environ.get("EXCHANGE_API_BASE_URL") or DEFAULT_API_BASE_URL).strip().rstrip("/")


def resolve_cache_dir() -> Path:
    env_value = os.environ.get("EXCHANGE_CACHE_DIR", "").strip()
    return Path(env_value).expanduser() if env_value else DEFAULT_CACHE_DIR
