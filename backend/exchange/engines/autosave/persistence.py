"""Local-first, remote-authoritative persistence for form sessions.

Every save writes the local cache first and then the remote store. Loads go
the other way round: the remote copy wins whenever it can be fetched, and the
local cache is only used offline or when the remote has nothing yet.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from ...config import resolve_retry_attempts, resolve_with_settings
from ..experience.errors import ConflictOnLoad, NetworkError, PersistenceDegraded
from ..experience.models import DEFAULT_TITLE, FormSession, Submission
from .change_detector import snapshot_hash
from .local_cache import LocalDraftCache
from .remote import RemoteDraftStore

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY_SECONDS = 0.5
DEFAULT_MAX_DELAY_SECONDS = 4.0


@dataclass
class LoadResult:
    session: FormSession
    source: str
    conflict: ConflictOnLoad | None = None
    remote_error: NetworkError | None = None


@dataclass
class SaveOutcome:
    local_saved: bool
    remote_saved: bool
    submission: Submission | None = None
    error: Exception | None = None
    degraded: bool = False


def session_from_submission(submission: Submission, session_id: str) -> FormSession:
    return FormSession(
        session_id=session_id,
        form_type=submission.form_type,
        sections=dict(submission.sections),
        current_step=submission.current_step,
        completed_steps=set(submission.completed_steps),
        revision_count=submission.revision_count,
        status=submission.status,
        title=submission.title or DEFAULT_TITLE,
    )


def _remote_is_empty(submission: Submission | None) -> bool:
    return submission is None or (not submission.sections and not submission.completed_steps)


class DualTierPersistence:
    def __init__(
        self,
        local: LocalDraftCache,
        remote: RemoteDraftStore,
        *,
        retry_attempts: int | None = None,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        settings_db_path: str | Path | None = None,
    ):
        self.local = local
        self.remote = remote
        self.settings_db_path = settings_db_path
        if retry_attempts is None:
            retry_attempts = resolve_with_settings(resolve_retry_attempts, settings_db_path)
        self.retry_attempts = max(1, retry_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self.degraded = False
        self.condition: PersistenceDegraded | None = None

    def backoff_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2**attempt), self.max_delay)

    async def _with_retry(self, label: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        for attempt in range(self.retry_attempts):
            try:
                return await operation()
            except NetworkError as err:
                if attempt + 1 >= self.retry_attempts:
                    raise
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Remote %s failed (attempt %s/%s): %s; retrying in %.2fs",
                    label,
                    attempt + 1,
                    self.retry_attempts,
                    err,
                    delay,
                )
                await self._sleep(delay)

    def write_local(self, snapshot: dict[str, Any]) -> bool:
        try:
            self.local.write(snapshot["formType"], snapshot["sessionId"], snapshot)
        except OSError:
            logger.exception("Local draft write failed for %s/%s", snapshot.get("formType"), snapshot.get("sessionId"))
            return False
        return True

    async def load(self, form_type: str, session_id: str) -> LoadResult:
        local_snapshot = self.local.read(form_type, session_id)
        try:
            remote = await self._with_retry("load", lambda: self.remote.load_draft(form_type, session_id))
        except NetworkError as err:
            logger.warning("Remote load unavailable for %s/%s; using local cache: %s", form_type, session_id, err)
            return self._fallback(form_type, session_id, local_snapshot, remote_error=err)

        if _remote_is_empty(remote):
            return self._fallback(form_type, session_id, local_snapshot)

        session = session_from_submission(remote, session_id)
        remote_snapshot = session.snapshot()
        session.last_persisted_hash = snapshot_hash(remote_snapshot)

        conflict = None
        if local_snapshot is not None:
            local_hash = snapshot_hash(local_snapshot)
            if local_hash != session.last_persisted_hash:
                conflict = ConflictOnLoad(form_type, session_id, session.last_persisted_hash, local_hash)
                logger.warning("%s", conflict)
                try:
                    self.local.supersede(form_type, session_id, remote_snapshot)
                except OSError:
                    logger.exception("Could not supersede local draft for %s/%s", form_type, session_id)
        return LoadResult(session=session, source="remote", conflict=conflict)

    def _fallback(
        self,
        form_type: str,
        session_id: str,
        local_snapshot: dict[str, Any] | None,
        remote_error: NetworkError | None = None,
    ) -> LoadResult:
        if local_snapshot is not None:
            session = FormSession.from_snapshot(local_snapshot, session_id=session_id, form_type=form_type)
            return LoadResult(session=session, source="local", remote_error=remote_error)
        session = FormSession(session_id=session_id, form_type=form_type)
        return LoadResult(session=session, source="empty", remote_error=remote_error)

    async def save(self, snapshot: dict[str, Any], *, title: str) -> SaveOutcome:
        """Write ``snapshot`` to both tiers.

        ``NetworkError`` is retried and then reported on the outcome; any
        other remote error (validation, locked session) propagates.
        """
        local_saved = self.write_local(snapshot)
        try:
            submission = await self._with_retry(
                "save",
                lambda: self.remote.save_draft(
                    snapshot["formType"],
                    title,
                    snapshot.get("sections") or {},
                    snapshot.get("progress") or {},
                ),
            )
        except NetworkError as err:
            if local_saved:
                self._enter_degraded(str(err))
            return SaveOutcome(local_saved=local_saved, remote_saved=False, error=err, degraded=self.degraded)

        self._leave_degraded()
        return SaveOutcome(local_saved=local_saved, remote_saved=True, submission=submission)

    async def submit(self, form_type: str, session_id: str, sections: dict[str, Any]) -> Submission:
        # Not retried: submit is not idempotent.
        submission = await self.remote.submit(form_type, session_id, sections)
        self.clear(form_type, session_id)
        return submission

    def clear(self, form_type: str, session_id: str) -> bool:
        return self.local.clear(form_type, session_id)

    def _enter_degraded(self, reason: str) -> None:
        if not self.degraded:
            logger.warning("Remote store unreachable after %s attempts; changes saved locally only", self.retry_attempts)
        self.degraded = True
        self.condition = PersistenceDegraded(reason)

    def _leave_degraded(self) -> None:
        if self.degraded:
            logger.info("Remote store reachable again; leaving local-only mode")
        self.degraded = False
        self.condition = None
