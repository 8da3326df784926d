"""In-process task queue core.

- TaskStore: lock-guarded task registry and state transitions
- BroadcastHub: event fan-out to observers
- QueueManager: facade over both
- Scheduler (`image_task_queue.core.scheduler`): dispatch and retry-promotion
  loops; it depends on `image_task_queue.backend`, so it is not imported here
"""

from image_task_queue.core.manager import QueueManager
from image_task_queue.core.models import (
    Event,
    ExecutionResult,
    QueueStats,
    Task,
    TaskError,
    TaskState,
)

__all__ = [
    "Event",
    "ExecutionResult",
    "QueueManager",
    "QueueStats",
    "Task",
    "TaskError",
    "TaskState",
]
