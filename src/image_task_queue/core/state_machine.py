from __future__ import annotations

from image_task_queue.core.errors import IllegalTransitionError
from image_task_queue.core.models import TaskState

ALLOWED_TRANSITIONS: dict[TaskState, set[TaskState]] = {
    TaskState.PENDING: {TaskState.PROCESSING},
    TaskState.PROCESSING: {TaskState.COMPLETED, TaskState.RETRYING, TaskState.FAILED},
    TaskState.RETRYING: {TaskState.PENDING},
    TaskState.COMPLETED: set(),
    TaskState.FAILED: set(),
}

TERMINAL_STATES: frozenset[TaskState] = frozenset({TaskState.COMPLETED, TaskState.FAILED})


def ensure_transition(*, current: TaskState, to: TaskState) -> None:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")


def is_cancellable(state: TaskState) -> bool:
    """Everything except an in-flight task can be removed from the queue."""

    return state is not TaskState.PROCESSING
