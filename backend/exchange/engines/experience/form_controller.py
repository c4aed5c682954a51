import logging
from typing import Any, Callable

from ..autosave.coordinator import AutosaveState, DebouncedSaveCoordinator, UnloadResult
from ..autosave.persistence import DualTierPersistence, LoadResult
from .errors import NetworkError
from .models import DEFAULT_FORM_TYPE, FormSession, Submission
from .sections import validate_all_sections
from .workflow import StepWorkflowController

logger = logging.getLogger(__name__)


class ExperienceFormController:
    """Owns one submitter's FormSession and hands it to each step explicitly.

    Every mutation goes through here so the autosave coordinator sees it.
    """

    def __init__(
        self,
        persistence: DualTierPersistence,
        *,
        form_type: str = DEFAULT_FORM_TYPE,
        session_id: str = "local",
        debounce_seconds: float | None = None,
        on_state_change: Callable[[AutosaveState], Any] | None = None,
    ):
        self.persistence = persistence
        self.form_type = form_type
        self.session_id = session_id
        self.debounce_seconds = debounce_seconds
        self.on_state_change = on_state_change
        self.load_result: LoadResult | None = None
        self._session: FormSession | None = None
        self._workflow: StepWorkflowController | None = None
        self._autosave: DebouncedSaveCoordinator | None = None

    async def open(self) -> LoadResult:
        result = await self.persistence.load(self.form_type, self.session_id)
        if self._autosave is not None:
            self._autosave.close()
        self.load_result = result
        self._session = result.session
        self._workflow = StepWorkflowController(result.session)
        self._autosave = DebouncedSaveCoordinator(
            result.session,
            self.persistence,
            debounce_seconds=self.debounce_seconds,
            on_state_change=self.on_state_change,
        )
        logger.info(
            "Opened %s session %s from %s (status=%s)",
            self.form_type,
            self.session_id,
            result.source,
            result.session.status.value,
        )
        return result

    @property
    def session(self) -> FormSession:
        if self._session is None:
            raise RuntimeError("Form session is not open")
        return self._session

    @property
    def workflow(self) -> StepWorkflowController:
        if self._workflow is None:
            raise RuntimeError("Form session is not open")
        return self._workflow

    @property
    def autosave(self) -> DebouncedSaveCoordinator:
        if self._autosave is None:
            raise RuntimeError("Form session is not open")
        return self._autosave

    @property
    def state(self) -> AutosaveState:
        return self.autosave.state

    def edit_section(self, section: str, payload: Any) -> bool:
        self.session.update_section(section, payload)
        return self.autosave.notify_change()

    def complete_step(self, step: int) -> int:
        next_step = self.workflow.complete_step(step)
        self.autosave.notify_change()
        return next_step

    def navigate(self, step: int) -> int:
        current = self.workflow.navigate(step)
        self.autosave.notify_change()
        return current

    def can_submit(self) -> bool:
        return self.session.is_editable and self.workflow.can_submit()

    def progress_percent(self) -> int:
        return self.workflow.progress_percent()

    async def save_draft(self) -> AutosaveState:
        self.session.ensure_editable()
        return await self.autosave.save_now()

    async def submit(self) -> Submission:
        session = self.session
        session.ensure_editable()
        self.workflow.require_submittable()
        validate_all_sections(session.sections)

        state = await self.autosave.save_now()
        if state.degraded:
            raise NetworkError("Cannot submit while changes are saved locally only")

        submission = await self.persistence.submit(session.form_type, session.session_id, session.sections)
        session.status = submission.status
        session.revision_count = submission.revision_count
        self.autosave.close()
        logger.info("Submitted %s session %s as %s", session.form_type, session.session_id, submission.id)
        return submission

    def clear_saved_data(self) -> bool:
        removed = self.persistence.clear(self.form_type, self.session_id)
        self.autosave.reset()
        return removed

    def unload(self) -> UnloadResult:
        result = self.autosave.flush_on_unload()
        self.autosave.close()
        return result

    def close(self) -> None:
        if self._autosave is not None:
            self._autosave.close()
