"""Authoritative in-memory task registry.

All reads and writes go through one re-entrant lock. Events are published while
the lock is held, so observers see each task's events in transition order and a
subscriber registered under the same lock cannot miss or reorder them.

Every task handed out is a deep copy; callers never hold live records.
"""

from __future__ import annotations

import itertools
import logging
import math
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from image_task_queue.core.backoff import BackoffPolicy
from image_task_queue.core.errors import (
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    QueueFullError,
)
from image_task_queue.core.models import (
    ExecutionResult,
    QueueStats,
    Task,
    TaskError,
    TaskState,
    now_ms,
)
from image_task_queue.core.state_machine import ensure_transition, is_cancellable

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(self, name: str, data: Any) -> None: ...


def _new_task_id() -> str:
    return f"task_{uuid.uuid4().hex[:8]}"


class TaskStore:
    def __init__(
        self,
        *,
        publisher: Publisher,
        backoff: BackoffPolicy,
        max_queue_size: int = 100,
        max_prompt_length: int = 1000,
        max_concurrent: int = 5,
        max_retries: int = 5,
        average_task_ms: int = 30000,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = _new_task_id,
    ) -> None:
        self._publisher = publisher
        self._backoff = backoff
        self._max_queue_size = max_queue_size
        self._max_prompt_length = max_prompt_length
        self._max_concurrent = max_concurrent
        self._max_retries = max_retries
        self._average_task_ms = average_task_ms
        self._clock = clock
        self._id_factory = id_factory

        self._tasks: dict[str, Task] = {}
        # Insertion order; breaks created_at ties so same-millisecond submissions stay FIFO.
        self._order: dict[str, int] = {}
        self._sequence = itertools.count()
        self._slots_in_use = 0
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the store lock across several operations."""

        with self._lock:
            yield

    @property
    def processing_count(self) -> int:
        with self._lock:
            return self._slots_in_use

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    # Queries

    def get(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task is not None else None

    def list(self) -> list[Task]:
        with self._lock:
            ordered = sorted(self._tasks.values(), key=self._fifo_key, reverse=True)
            return [t.model_copy(deep=True) for t in ordered]

    def next_pending(self) -> Task | None:
        with self._lock:
            task = self._oldest_pending()
            return task.model_copy(deep=True) if task is not None else None

    def due_retries(self, now: int | None = None) -> list[Task]:
        with self._lock:
            cutoff = self._clock() if now is None else now
            due = [
                t
                for t in self._tasks.values()
                if t.state is TaskState.RETRYING
                and t.next_retry_at is not None
                and t.next_retry_at <= cutoff
            ]
            due.sort(key=lambda t: (t.next_retry_at or 0, t.id))
            return [t.model_copy(deep=True) for t in due]

    def stats(self) -> QueueStats:
        with self._lock:
            counts = {state: 0 for state in TaskState}
            for task in self._tasks.values():
                counts[task.state] += 1
            return QueueStats(
                pending=counts[TaskState.PENDING],
                processing=counts[TaskState.PROCESSING],
                retrying=counts[TaskState.RETRYING],
                completed=counts[TaskState.COMPLETED],
                failed=counts[TaskState.FAILED],
                total=len(self._tasks),
            )

    # Mutations

    def create(self, prompt: str) -> Task:
        """Store a new pending task.

        Raises:
            InvalidInputError: If the stripped prompt is empty or too long.
            QueueFullError: If the store already holds ``max_queue_size`` tasks.
        """

        if not isinstance(prompt, str) or not prompt.strip():
            raise InvalidInputError("Prompt is required and must be a non-empty string")
        prompt = prompt.strip()
        if len(prompt) > self._max_prompt_length:
            raise InvalidInputError(
                f"Prompt must be {self._max_prompt_length} characters or less"
            )

        with self._lock:
            if len(self._tasks) >= self._max_queue_size:
                raise QueueFullError(self._max_queue_size)

            task_id = self._id_factory()
            while task_id in self._tasks:
                task_id = self._id_factory()

            task = Task(
                id=task_id,
                prompt=prompt,
                created_at=self._clock(),
                max_retries=self._max_retries,
                estimated_wait_time=self._estimate_wait(),
            )
            self._tasks[task.id] = task
            self._order[task.id] = next(self._sequence)

            snapshot = task.model_copy(deep=True)
            self._publish("task_submitted", snapshot.to_payload())
            self._publish_stats()
            return snapshot

    def transition_to_processing(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._lookup(task_id, "transition_to_processing")
            if task is None:
                return None
            ensure_transition(current=task.state, to=TaskState.PROCESSING)

            task.state = TaskState.PROCESSING
            if task.started_at is None:
                task.started_at = self._clock()
            task.progress = 0
            self._slots_in_use += 1

            snapshot = task.model_copy(deep=True)
            self._publish("task_started", snapshot.to_payload())
            self._publish_stats()
            return snapshot

    def claim_next(self, max_concurrent: int | None = None) -> Task | None:
        """Move the oldest pending task to processing if a slot is free."""

        cap = self._max_concurrent if max_concurrent is None else max_concurrent
        with self._lock:
            if self._slots_in_use >= cap:
                return None
            task = self._oldest_pending()
            if task is None:
                return None
            return self.transition_to_processing(task.id)

    def update_progress(self, task_id: str, progress: int) -> Task | None:
        with self._lock:
            task = self._lookup(task_id, "update_progress")
            if task is None or task.state is not TaskState.PROCESSING:
                return None

            clamped = min(100, max(0, int(progress)))
            if clamped <= task.progress:
                return task.model_copy(deep=True)
            task.progress = clamped

            self._publish("task_progress", {"id": task.id, "progress": task.progress})
            return task.model_copy(deep=True)

    def complete(self, task_id: str, result: ExecutionResult) -> Task | None:
        with self._lock:
            task = self._lookup(task_id, "complete")
            if task is None:
                return None
            ensure_transition(current=task.state, to=TaskState.COMPLETED)

            task.state = TaskState.COMPLETED
            task.completed_at = self._clock()
            task.result = result.model_copy(deep=True)
            task.error = None
            task.progress = 100
            self._release_slot()

            snapshot = task.model_copy(deep=True)
            self._publish("task_completed", snapshot.to_payload())
            self._publish_stats()
            self._refresh_wait_estimates()
            return snapshot

    def fail(self, task_id: str, error: TaskError, *, retryable: bool) -> Task | None:
        """Record a failed attempt and either schedule a retry or fail for good."""

        with self._lock:
            task = self._lookup(task_id, "fail")
            if task is None:
                return None

            should_retry = retryable and task.retry_count < task.max_retries
            target = TaskState.RETRYING if should_retry else TaskState.FAILED
            ensure_transition(current=task.state, to=target)

            task.error = error.model_copy()
            self._release_slot()

            if should_retry:
                task.retry_count += 1
                task.next_retry_at = self._clock() + self._backoff.delay(task.retry_count)
                task.state = TaskState.RETRYING
                self._publish(
                    "task_retry_scheduled",
                    {
                        "id": task.id,
                        "retryCount": task.retry_count,
                        "maxRetries": task.max_retries,
                        "nextRetryAt": task.next_retry_at,
                        "error": task.error.to_payload(),
                    },
                )
            else:
                task.state = TaskState.FAILED
                task.completed_at = self._clock()
                self._publish("task_failed", task.to_payload())

            self._publish_stats()
            return task.model_copy(deep=True)

    def requeue(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._lookup(task_id, "requeue")
            if task is None:
                return None
            ensure_transition(current=task.state, to=TaskState.PENDING)

            task.state = TaskState.PENDING
            task.error = None
            task.next_retry_at = None

            snapshot = task.model_copy(deep=True)
            self._publish("task_requeued", snapshot.to_payload())
            return snapshot

    def cancel(self, task_id: str) -> Task:
        """Remove a task that is not processing and return its last state."""

        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise NotFoundError(task_id)
            if not is_cancellable(task.state):
                raise InvalidStateError(task_id, task.state.value)

            del self._tasks[task_id]
            del self._order[task_id]
            self._publish("task_cancelled", {"id": task_id})
            self._publish_stats()
            return task

    # Internals (caller holds the lock)

    def _lookup(self, task_id: str, operation: str) -> Task | None:
        task = self._tasks.get(task_id)
        if task is None:
            logger.debug("Task not found", extra={"task_id": task_id, "operation": operation})
        return task

    def _fifo_key(self, task: Task) -> tuple[int, int]:
        return task.created_at, self._order[task.id]

    def _oldest_pending(self) -> Task | None:
        pending = [t for t in self._tasks.values() if t.state is TaskState.PENDING]
        if not pending:
            return None
        return min(pending, key=self._fifo_key)

    def _release_slot(self) -> None:
        if self._slots_in_use <= 0:
            raise RuntimeError("Processing slot released while none were held")
        self._slots_in_use -= 1

    def _estimate_wait(self) -> int:
        pending = sum(1 for t in self._tasks.values() if t.state is TaskState.PENDING)
        effective_length = pending + math.ceil(self._slots_in_use / self._max_concurrent)
        return effective_length * self._average_task_ms

    def _refresh_wait_estimates(self) -> None:
        pending = sorted(
            (t for t in self._tasks.values() if t.state is TaskState.PENDING),
            key=self._fifo_key,
        )
        for position, task in enumerate(pending):
            task.estimated_wait_time = position * self._average_task_ms

    def _publish(self, name: str, data: Any) -> None:
        try:
            self._publisher.publish(name, data)
        except Exception:
            logger.exception("Event publication failed", extra={"event": name})

    def _publish_stats(self) -> None:
        self._publish("queue_stats", self.stats().to_payload())
