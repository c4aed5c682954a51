from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from ...config import resolve_cache_dir

logger = logging.getLogger(__name__)


def _safe_key(value: str, fallback: str) -> str:
    raw = re.sub(r"\s+", "-", str(value or "")).strip()
    safe = "".join(ch for ch in raw if ch.isalnum() or ch in {"-", "_"})
    return safe or fallback


def cache_key(form_type: str) -> str:
    return f"autosave_{_safe_key(form_type, 'experience')}"


class LocalDraftCache:
    """Crash-recovery buffer: one JSON file per (formType, sessionId).

    Writes complete before returning so a snapshot survives an immediate
    navigation or crash. The remote store stays authoritative.
    """

    def __init__(self, cache_dir: Path | str | None = None):
        self.cache_dir = Path(cache_dir) if cache_dir is not None else resolve_cache_dir()

    def _session_dir(self, session_id: str) -> Path:
        return self.cache_dir / _safe_key(session_id, "local")

    def path_for(self, form_type: str, session_id: str) -> Path:
        return self._session_dir(session_id) / f"{cache_key(form_type)}.json"

    def superseded_path_for(self, form_type: str, session_id: str) -> Path:
        return self._session_dir(session_id) / f"{cache_key(form_type)}.superseded.json"

    def read(self, form_type: str, session_id: str) -> dict[str, Any] | None:
        path = self.path_for(form_type, session_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Unreadable local draft at %s; ignoring it", path)
            return None
        if not isinstance(data, dict):
            return None
        return data

    def write(self, form_type: str, session_id: str, snapshot: dict[str, Any]) -> Path:
        path = self.path_for(form_type, session_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(snapshot, ensure_ascii=True, indent=2, default=str)
        fd, tmp_name = tempfile.mkstemp(prefix=".autosave-", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return path

    def clear(self, form_type: str, session_id: str) -> bool:
        path = self.path_for(form_type, session_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Cleared local draft %s", path.name)
        return True

    def supersede(self, form_type: str, session_id: str, snapshot: dict[str, Any]) -> Path | None:
        """Back up the current local copy, then overwrite it with ``snapshot``."""
        current = self.path_for(form_type, session_id)
        backup: Path | None = None
        if current.exists():
            backup = self.superseded_path_for(form_type, session_id)
            os.replace(current, backup)
            logger.info("Superseded local draft kept at %s", backup)
        self.write(form_type, session_id, snapshot)
        return backup
