from .state_machine import SubmissionEvent, TransitionResult, apply_event, can_apply

__all__ = [
    "SubmissionEvent",
    "TransitionResult",
    "apply_event",
    "can_apply",
]
