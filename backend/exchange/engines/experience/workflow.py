import logging

from .errors import StepLocked, ValidationError
from .models import TOTAL_STEPS, FormSession, section_for_step
from .sections import validate_step

logger = logging.getLogger(__name__)


class StepWorkflowController:
    """Gates movement between the form steps of one session.

    ``completed_steps`` only ever grows here; moving backwards or failing
    validation leaves it untouched. Autosave is independent of all of this:
    partially filled or invalid sections are still persisted as drafts.
    """

    def __init__(self, session: FormSession, total_steps: int = TOTAL_STEPS):
        self.session = session
        self.total_steps = total_steps

    @property
    def current_step(self) -> int:
        return self.session.current_step

    def is_step_completed(self, step: int) -> bool:
        return step in self.session.completed_steps

    def can_navigate(self, step: int) -> bool:
        if step < 1 or step > self.total_steps:
            return False
        return step == 1 or (step - 1) in self.session.completed_steps

    def navigate(self, step: int) -> int:
        if step < 1 or step > self.total_steps:
            raise StepLocked(f"Step {step} does not exist")
        if step <= self.session.current_step:
            self.session.current_step = step
            return step
        if not self.can_navigate(step):
            raise StepLocked(
                f"Complete step {step - 1} before moving to step {step}",
                [{"field": section_for_step(step - 1), "message": "step not completed"}],
                section=section_for_step(step - 1),
            )
        self.session.current_step = step
        return step

    def complete_step(self, step: int) -> int:
        """Validate ``step`` and mark it completed. Returns the new current step."""
        self.session.ensure_editable()
        if step < 1 or step > self.total_steps:
            raise ValidationError(f"Step {step} does not exist")
        if not self.can_navigate(step):
            raise StepLocked(f"Step {step} is not reachable yet", section=section_for_step(step))

        validate_step(step, self.session.sections)

        if step not in self.session.completed_steps:
            self.session.completed_steps.add(step)
            logger.info("Session %s completed step %s", self.session.session_id, step)
        self.session.current_step = min(step + 1, self.total_steps)
        return self.session.current_step

    def can_submit(self) -> bool:
        return set(self.session.completed_steps) >= set(range(1, self.total_steps + 1))

    def require_submittable(self) -> None:
        missing = sorted(set(range(1, self.total_steps + 1)) - set(self.session.completed_steps))
        if missing:
            raise ValidationError(
                "Please complete all form steps before submitting",
                [{"field": section_for_step(step), "message": "step not completed"} for step in missing],
            )

    def progress_percent(self) -> int:
        done = len(set(self.session.completed_steps) & set(range(1, self.total_steps + 1)))
        return round(done / self.total_steps * 100)
