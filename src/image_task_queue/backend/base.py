"""Abstract base class for execution backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from image_task_queue.core.models import ExecutionResult

ProgressCallback = Callable[[int], None]


class ExecutionBackend(ABC):
    """Interface the scheduler uses to run one task.

    This allows pluggable generation services (a real HTTP API, a simulator, or
    a test double).
    """

    name: str = "backend"

    @abstractmethod
    def execute(self, prompt: str, on_progress: ProgressCallback) -> ExecutionResult:
        """Generate an image for ``prompt``.

        Args:
            prompt: The task input.
            on_progress: Called with 0-100 as work advances. May be called from
                other threads owned by the backend.

        Returns:
            The generation result.

        Raises:
            ExecutionError: On failure, with ``retryable`` set by the backend's
                classification. Backends must time out on their own and report
                the timeout as retryable.
        """

    def close(self) -> None:  # noqa: B027
        """Release network resources. Default is a no-op."""
