import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from fakes import FakeRemoteStore

from exchange.config import (
    DEFAULT_REVISION_CAP,
    resolve_api_base_url,
    resolve_cache_dir,
    resolve_debounce_seconds,
    resolve_retry_attempts,
    resolve_revision_cap,
)
from exchange.db.database import get_db
from exchange.db.schema import init_db
from exchange.engines.autosave.coordinator import DebouncedSaveCoordinator
from exchange.engines.autosave.local_cache import LocalDraftCache
from exchange.engines.autosave.persistence import DualTierPersistence
from exchange.engines.experience.models import FormSession


def _conn(tmp_path: Path):
    path = tmp_path / "exchange_experience.db"
    init_db(path)
    return get_db(path)


def test_defaults_without_env_or_settings(monkeypatch):
    for name in ("EXCHANGE_REVISION_CAP", "EXCHANGE_AUTOSAVE_DEBOUNCE_MS", "EXCHANGE_REMOTE_RETRY_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)
    assert resolve_revision_cap() == DEFAULT_REVISION_CAP
    assert resolve_debounce_seconds() == 2.0
    assert resolve_retry_attempts() == 3


def test_settings_row_overrides_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("EXCHANGE_REVISION_CAP", raising=False)
    monkeypatch.delenv("EXCHANGE_AUTOSAVE_DEBOUNCE_MS", raising=False)
    conn = _conn(tmp_path)
    try:
        conn.execute("UPDATE settings SET revision_cap = 3, autosave_debounce_ms = 750 WHERE id = 1")
        conn.commit()
        assert resolve_revision_cap(conn) == 3
        assert resolve_debounce_seconds(conn) == 0.75
    finally:
        conn.close()


def test_environment_wins_over_settings(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("EXCHANGE_REVISION_CAP", "0")
    monkeypatch.setenv("EXCHANGE_REMOTE_RETRY_ATTEMPTS", "5")
    conn = _conn(tmp_path)
    try:
        conn.execute("UPDATE settings SET revision_cap = 3 WHERE id = 1")
        conn.commit()
        assert resolve_revision_cap(conn) == 0
        assert resolve_retry_attempts(conn) == 5
    finally:
        conn.close()


def test_invalid_environment_values_are_ignored(monkeypatch):
    monkeypatch.setenv("EXCHANGE_REVISION_CAP", "many")
    monkeypatch.setenv("EXCHANGE_REMOTE_RETRY_ATTEMPTS", "0")
    assert resolve_revision_cap() == DEFAULT_REVISION_CAP
    assert resolve_retry_attempts() == 3


def test_api_base_url_and_cache_dir(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("EXCHANGE_API_BASE_URL", "https://exchange.example.org/api/")
    monkeypatch.setenv("EXCHANGE_CACHE_DIR", str(tmp_path / "autosave"))
    assert resolve_api_base_url() == "https://exchange.example.org/api"
    assert resolve_cache_dir() == tmp_path / "autosave"


def test_autosave_engines_read_the_settings_row(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("EXCHANGE_AUTOSAVE_DEBOUNCE_MS", raising=False)
    monkeypatch.delenv("EXCHANGE_REMOTE_RETRY_ATTEMPTS", raising=False)
    conn = _conn(tmp_path)
    try:
        conn.execute("UPDATE settings SET autosave_debounce_ms = 100, remote_retry_attempts = 7 WHERE id = 1")
        conn.commit()
    finally:
        conn.close()
    monkeypatch.setenv("EXCHANGE_DB_PATH", str(tmp_path / "exchange_experience.db"))

    persistence = DualTierPersistence(LocalDraftCache(tmp_path / "cache"), FakeRemoteStore())
    coordinator = DebouncedSaveCoordinator(FormSession(session_id="s-1"), persistence)

    assert persistence.retry_attempts == 7
    assert coordinator.debounce_seconds == 0.1


def test_explicit_settings_database_is_used(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("EXCHANGE_AUTOSAVE_DEBOUNCE_MS", raising=False)
    monkeypatch.delenv("EXCHANGE_REMOTE_RETRY_ATTEMPTS", raising=False)
    monkeypatch.setenv("EXCHANGE_DB_PATH", str(tmp_path / "missing.db"))
    conn = _conn(tmp_path)
    try:
        conn.execute("UPDATE settings SET autosave_debounce_ms = 250, remote_retry_attempts = 2 WHERE id = 1")
        conn.commit()
    finally:
        conn.close()

    persistence = DualTierPersistence(
        LocalDraftCache(tmp_path / "cache"),
        FakeRemoteStore(),
        settings_db_path=tmp_path / "exchange_experience.db",
    )
    coordinator = DebouncedSaveCoordinator(FormSession(session_id="s-1"), persistence)

    assert persistence.retry_attempts == 2
    assert coordinator.debounce_seconds == 0.25
    assert not (tmp_path / "missing.db").exists()
