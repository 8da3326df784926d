"""Queue facade used by the HTTP layer and the scheduler."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable

from image_task_queue.config import QueueSettings
from image_task_queue.core.backoff import BackoffPolicy
from image_task_queue.core.broadcast import BroadcastHub, Subscription
from image_task_queue.core.errors import InvalidStateError, NotFoundError
from image_task_queue.core.models import (
    Event,
    ExecutionResult,
    QueueStats,
    Task,
    TaskError,
    now_ms,
)
from image_task_queue.core.task_store import TaskStore

logger = logging.getLogger(__name__)


class QueueManager:
    """Compose the task store and the broadcast hub.

    Args:
        settings: Queue limits and retry policy. Defaults to environment settings.
        clock: Millisecond clock, injectable for tests.
        rng: Random source for retry jitter.
    """

    def __init__(
        self,
        settings: QueueSettings | None = None,
        *,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or QueueSettings()
        if self.settings.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {self.settings.max_concurrent}")

        self.clock = clock
        self.hub = BroadcastHub(buffer_size=self.settings.subscriber_buffer_size)
        self.backoff = BackoffPolicy(
            base_delay_ms=self.settings.base_retry_delay_ms,
            max_delay_ms=self.settings.max_retry_delay_ms,
            jitter_ratio=self.settings.jitter_ratio,
            rng=rng or random.Random(),  # noqa: S311
        )
        self.store = TaskStore(
            publisher=self.hub,
            backoff=self.backoff,
            max_queue_size=self.settings.max_queue_size,
            max_prompt_length=self.settings.max_prompt_length,
            max_concurrent=self.settings.max_concurrent,
            max_retries=self.settings.max_retries,
            average_task_ms=self.settings.average_task_ms,
            clock=clock,
        )

    @property
    def max_concurrent(self) -> int:
        return self.settings.max_concurrent

    # Submission side

    def submit(self, prompt: str) -> Task:
        task = self.store.create(prompt)
        logger.info("Task submitted", extra={"task_id": task.id, "prompt": task.prompt[:50]})
        return task

    def get(self, task_id: str) -> Task | None:
        return self.store.get(task_id)

    def list(self) -> list[Task]:
        return self.store.list()

    def stats(self) -> QueueStats:
        return self.store.stats()

    def cancel(self, task_id: str) -> bool:
        """Cancel a pending or retrying task; False if unknown or processing."""

        try:
            self.store.cancel(task_id)
        except (NotFoundError, InvalidStateError) as e:
            logger.info("Cancel rejected", extra={"task_id": task_id, "reason": str(e)})
            return False
        logger.info("Task cancelled", extra={"task_id": task_id})
        return True

    # Observer side

    def subscribe(self) -> Subscription:
        """Register an observer primed with the current snapshot and stats.

        The snapshot is taken and the observer registered under the store lock,
        so the first incremental event it sees happened after the snapshot.
        """

        with self.store.locked():
            initial = [
                Event("queue_snapshot", [t.to_payload() for t in self.store.list()]),
                Event("queue_stats", self.store.stats().to_payload()),
            ]
            return self.hub.subscribe(initial)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.hub.unsubscribe(subscription)

    # Scheduler side

    def claim_next(self) -> Task | None:
        return self.store.claim_next(self.max_concurrent)

    def due_retries(self, now: int | None = None) -> list[Task]:
        return self.store.due_retries(now)

    def update_progress(self, task_id: str, progress: int) -> Task | None:
        return self.store.update_progress(task_id, progress)

    def complete(self, task_id: str, result: ExecutionResult) -> Task | None:
        return self.store.complete(task_id, result)

    def fail(self, task_id: str, error: TaskError, *, retryable: bool) -> Task | None:
        return self.store.fail(task_id, error, retryable=retryable)

    def requeue(self, task_id: str) -> Task | None:
        return self.store.requeue(task_id)
