"""Debounced autosave for one form session.

Edits re-arm a quiet-period timer; when it fires the latest snapshot is saved.
Only one save runs at a time. Anything that asks for a save while one is in
flight sets a single follow-up flag, so the in-flight save is followed by
exactly one more save of whatever the session looks like at that point.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ...config import resolve_debounce_seconds, resolve_with_settings
from ..experience.errors import PersistenceDegraded, SubmissionError
from ..experience.models import FormSession, Submission
from .change_detector import ChangeDetector
from .persistence import DualTierPersistence

logger = logging.getLogger(__name__)


@dataclass
class AutosaveState:
    is_saving: bool = False
    last_saved: datetime | None = None
    save_error: str | None = None
    has_unsaved_changes: bool = False
    degraded: bool = False

    def last_saved_text(self, now: datetime | None = None) -> str | None:
        if self.last_saved is None:
            return None
        now = now or datetime.now(timezone.utc)
        minutes = int((now - self.last_saved).total_seconds() // 60)
        if minutes < 1:
            return "Saved just now"
        if minutes < 60:
            return f"Saved {minutes}m ago"
        if minutes < 1440:
            return f"Saved {minutes // 60}h ago"
        return f"Saved {minutes // 1440}d ago"


@dataclass(frozen=True)
class UnloadResult:
    local_saved: bool
    warn: bool


class DebouncedSaveCoordinator:
    def __init__(
        self,
        session: FormSession,
        persistence: DualTierPersistence,
        *,
        debounce_seconds: float | None = None,
        detector: ChangeDetector | None = None,
        on_state_change: Callable[[AutosaveState], Any] | None = None,
    ):
        self.session = session
        self.persistence = persistence
        if debounce_seconds is None:
            debounce_seconds = resolve_with_settings(resolve_debounce_seconds, persistence.settings_db_path)
        self.debounce_seconds = debounce_seconds
        self.detector = detector or ChangeDetector(session.last_persisted_hash)
        self.on_state_change = on_state_change
        self.state = AutosaveState(degraded=persistence.degraded)
        self.last_submission: Submission | None = None
        self.save_count = 0
        self._timer: asyncio.Task | None = None
        self._drain: asyncio.Task | None = None
        self._follow_up = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> bool:
        return self._drain is not None and not self._drain.done()

    def _set(self, **changes: Any) -> None:
        for key, value in changes.items():
            setattr(self.state, key, value)
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(self.state)
        except Exception:
            logger.exception("Autosave state listener failed")

    def notify_change(self) -> bool:
        """Register an edit. Returns whether the snapshot differs from the last persisted one.

        Outside a running event loop no timer is armed; the edit stays unsaved
        until the next ``save_now`` or ``flush_on_unload``.
        """
        if self._closed:
            return False
        dirty = self.detector.check(self.session.snapshot())
        if dirty:
            self._set(has_unsaved_changes=True)
            self._arm_timer()
        elif self.in_flight:
            # The in-flight snapshot may differ from this one; re-check once it lands.
            self._arm_timer()
        else:
            self._cancel_timer()
            if self.state.has_unsaved_changes:
                self._set(has_unsaved_changes=False)
        return dirty

    async def save_now(self) -> AutosaveState:
        """Skip the quiet period and save the latest snapshot."""
        if self._closed:
            return self.state
        self._cancel_timer()
        task = self._request_save()
        await asyncio.shield(task)
        return self.state

    async def wait_idle(self) -> None:
        while self.in_flight:
            await asyncio.shield(self._drain)

    def flush_on_unload(self) -> UnloadResult:
        if self._closed or not self.session.is_editable:
            return UnloadResult(local_saved=False, warn=False)
        snapshot = self.session.snapshot()
        local_saved = self.persistence.write_local(snapshot)
        warn = self.state.has_unsaved_changes and not local_saved
        if warn:
            logger.warning(
                "Unsaved changes for %s/%s could not be written locally before unload",
                self.session.form_type,
                self.session.session_id,
            )
        return UnloadResult(local_saved=local_saved, warn=warn)

    def close(self) -> None:
        self._cancel_timer()
        self._closed = True

    def reset(self) -> None:
        """Forget the persisted baseline, e.g. after the saved draft was cleared."""
        self._cancel_timer()
        self.detector.reset()
        self.session.last_persisted_hash = None
        self._set(has_unsaved_changes=False, save_error=None, last_saved=None)

    def _arm_timer(self) -> None:
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; autosave timer for %s not armed", self.session.session_id)
            return
        self._timer = loop.create_task(self._fire_after(self.debounce_seconds))

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _fire_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timer = None
        if not self._closed:
            self._request_save()

    def _request_save(self) -> asyncio.Task:
        if self.in_flight:
            self._follow_up = True
            return self._drain
        loop = asyncio.get_running_loop()
        self._drain = loop.create_task(self._drain_loop())
        return self._drain

    async def _drain_loop(self) -> None:
        while True:
            self._follow_up = False
            snapshot = self.session.snapshot()
            if self.detector.is_dirty(snapshot):
                await self._save_once(snapshot)
            elif self.state.has_unsaved_changes and not self._closed:
                self._set(has_unsaved_changes=False)
            if not self._follow_up or self._closed:
                return

    async def _save_once(self, snapshot: dict[str, Any]) -> None:
        form_type, session_id = self.session.form_type, self.session.session_id
        self._set(is_saving=True)
        self.save_count += 1
        try:
            outcome = await self.persistence.save(snapshot, title=self.session.title)
        except SubmissionError as err:
            logger.warning("Autosave for %s/%s rejected: %s", form_type, session_id, err)
            if not self._closed:
                self._set(is_saving=False, save_error=str(err), has_unsaved_changes=True)
            else:
                self.state.is_saving = False
            return
        except Exception:
            logger.exception("Autosave for %s/%s failed", form_type, session_id)
            if not self._closed:
                self._set(is_saving=False, save_error="Failed to save changes", has_unsaved_changes=True)
            else:
                self.state.is_saving = False
            return

        if self._closed:
            self.state.is_saving = False
            logger.info("Ignoring autosave result for closed session %s/%s", form_type, session_id)
            return

        if not outcome.remote_saved:
            message = PersistenceDegraded.message if outcome.degraded else str(outcome.error)
            self._set(is_saving=False, save_error=message, has_unsaved_changes=True, degraded=outcome.degraded)
            return

        self.session.last_persisted_hash = self.detector.mark_persisted(snapshot)
        self.last_submission = outcome.submission
        self._set(
            is_saving=False,
            last_saved=datetime.now(timezone.utc),
            save_error=None,
            has_unsaved_changes=self.detector.is_dirty(self.session.snapshot()),
            degraded=False,
        )
