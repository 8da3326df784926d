"""Error taxonomy for the task queue core."""

from __future__ import annotations


class TaskQueueError(Exception):
    """Base class for queue errors surfaced to callers."""


class InvalidInputError(TaskQueueError):
    """Rejected prompt: not a string, blank, or over the length limit."""


class QueueFullError(TaskQueueError):
    def __init__(self, capacity: int) -> None:
        super().__init__(f"Queue full ({capacity} tasks) - please wait for some tasks to complete")
        self.capacity = capacity


class NotFoundError(TaskQueueError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class InvalidStateError(TaskQueueError):
    def __init__(self, task_id: str, state: str) -> None:
        super().__init__(f"Task {task_id} cannot be cancelled while {state}")
        self.task_id = task_id
        self.state = state


class IllegalTransitionError(ValueError):
    pass


class ExecutionError(TaskQueueError):
    """Failure reported by an execution backend.

    ``retryable`` is decided by the backend's classifier; the queue only reads it.
    """

    def __init__(self, message: str, *, code: str = "UNKNOWN", retryable: bool = True) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable

    def __repr__(self) -> str:
        return f"ExecutionError(code={self.code!r}, retryable={self.retryable}, message={self.message!r})"


class ObserverDeliveryError(TaskQueueError):
    def __init__(self, subscription_id: str, reason: str) -> None:
        super().__init__(f"Delivery to subscriber {subscription_id} failed: {reason}")
        self.subscription_id = subscription_id
        self.reason = reason
