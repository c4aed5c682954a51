import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ...config import resolve_revision_cap
from ...db.database import get_db
from ..experience.models import Submission
from ..lifecycle import store


class RemoteDraftStore(ABC):
    """Authoritative draft storage behind the local cache."""

    @abstractmethod
    async def load_draft(self, form_type: str, session_id: str) -> Submission | None:
        raise NotImplementedError

    @abstractmethod
    async def save_draft(
        self,
        form_type: str,
        title: str,
        sections: dict[str, Any],
        progress: dict[str, Any],
    ) -> Submission:
        raise NotImplementedError

    @abstractmethod
    async def submit(self, form_type: str, session_id: str, sections: dict[str, Any]) -> Submission:
        raise NotImplementedError


class SqliteDraftStore(RemoteDraftStore):
    """In-process store that talks to the sqlite database directly.

    Used by the server process and by tests; remote clients use
    ``exchange.clients.experience_api.HttpDraftStore``.
    """

    def __init__(self, user_id: str = "local", db_path: str | Path | None = None, revision_cap: int | None = None):
        self.user_id = user_id
        self.db_path = db_path
        self.revision_cap = revision_cap

    def _run(self, fn, *args, **kwargs):
        conn = get_db(self.db_path)
        try:
            return fn(conn, *args, **kwargs)
        finally:
            conn.close()

    def _submit(self, conn, form_type: str, sections: dict[str, Any]) -> Submission:
        cap = self.revision_cap if self.revision_cap is not None else resolve_revision_cap(conn)
        return store.submit_session(conn, self.user_id, form_type, sections, revision_cap=cap)

    async def load_draft(self, form_type: str, session_id: str) -> Submission | None:
        return await asyncio.to_thread(self._run, store.find_session_submission, self.user_id, form_type)

    async def save_draft(
        self,
        form_type: str,
        title: str,
        sections: dict[str, Any],
        progress: dict[str, Any],
    ) -> Submission:
        return await asyncio.to_thread(
            self._run, store.save_draft, self.user_id, form_type, title, sections, progress
        )

    async def submit(self, form_type: str, session_id: str, sections: dict[str, Any]) -> Submission:
        return await asyncio.to_thread(self._run, self._submit, form_type, sections)
