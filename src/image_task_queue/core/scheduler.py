"""Background dispatch and retry-promotion loops.

Two daemon threads run on independent cadences: a fast dispatch cycle that
fills free processing slots with the oldest pending tasks, and a slow cycle that
moves due retries back to pending. Each claimed task executes on its own daemon
thread.

After :meth:`Scheduler.stop`, in-flight executions are abandoned: whatever they
report later (progress, result or error) is ignored, so nothing is routed into
the store twice.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from image_task_queue.backend.base import ExecutionBackend
from image_task_queue.core.errors import ExecutionError
from image_task_queue.core.manager import QueueManager
from image_task_queue.core.models import Task, TaskError

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(
        self,
        *,
        manager: QueueManager,
        backend: ExecutionBackend,
        dispatch_interval_seconds: float | None = None,
        retry_check_interval_seconds: float | None = None,
    ) -> None:
        self.manager = manager
        self.backend = backend
        settings = manager.settings
        self.dispatch_interval_seconds = (
            dispatch_interval_seconds
            if dispatch_interval_seconds is not None
            else settings.dispatch_interval_seconds
        )
        self.retry_check_interval_seconds = (
            retry_check_interval_seconds
            if retry_check_interval_seconds is not None
            else settings.retry_check_interval_seconds
        )

        self._stop = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._loops: list[threading.Thread] = []
        self._inflight: dict[str, threading.Thread] = {}
        self._inflight_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return bool(self._loops) and not self._stop.is_set()

    @property
    def inflight_count(self) -> int:
        with self._inflight_lock:
            return len(self._inflight)

    def start(self) -> None:
        with self._lifecycle_lock:
            if self._loops:
                return
            self._stop = threading.Event()
            self._loops = [
                threading.Thread(
                    target=self._run_every,
                    name="scheduler-dispatch",
                    daemon=True,
                    args=(self.dispatch_interval_seconds, self.dispatch_once, self._stop),
                ),
                threading.Thread(
                    target=self._run_every,
                    name="scheduler-retry",
                    daemon=True,
                    args=(
                        self.retry_check_interval_seconds,
                        self.promote_due_retries,
                        self._stop,
                    ),
                ),
            ]
            for thread in self._loops:
                thread.start()
        logger.info(
            "Scheduler started",
            extra={
                "backend": self.backend.name,
                "max_concurrent": self.manager.max_concurrent,
                "dispatch_interval_seconds": self.dispatch_interval_seconds,
                "retry_check_interval_seconds": self.retry_check_interval_seconds,
            },
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lifecycle_lock:
            self._stop.set()
            loops, self._loops = self._loops, []
        for thread in loops:
            thread.join(timeout)
        logger.info("Scheduler stopped", extra={"abandoned_executions": self.inflight_count})

    def wait_for_inflight(self, timeout: float | None = None) -> bool:
        """Join running executions within one overall ``timeout``; True if none are left."""

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._inflight_lock:
            threads = list(self._inflight.values())
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return self.inflight_count == 0

    def _run_every(
        self, interval: float, cycle: Callable[[], object], stop: threading.Event
    ) -> None:
        while not stop.wait(interval):
            try:
                cycle()
            except Exception:
                logger.exception("Scheduler cycle failed", extra={"cycle": cycle.__name__})

    # Cycles

    def dispatch_once(self) -> list[Task]:
        """Claim pending tasks until no slot or no pending task is left."""

        claimed: list[Task] = []
        while not self._stop.is_set():
            task = self.manager.claim_next()
            if task is None:
                break
            claimed.append(task)
            self._launch(task)
        return claimed

    def promote_due_retries(self) -> list[Task]:
        requeued: list[Task] = []
        for task in self.manager.due_retries():
            if self._stop.is_set():
                break
            try:
                updated = self.manager.requeue(task.id)
            except Exception:
                logger.exception("Requeue failed", extra={"task_id": task.id})
                continue
            if updated is None:
                # Cancelled between the scan and the requeue.
                continue
            logger.info(
                "Requeued for retry",
                extra={"task_id": task.id, "attempt": updated.retry_count + 1},
            )
            requeued.append(updated)
        return requeued

    # Execution

    def _launch(self, task: Task) -> None:
        logger.info("Processing task", extra={"task_id": task.id, "prompt": task.prompt[:50]})
        thread = threading.Thread(
            target=self._execute,
            name=f"task-{task.id}",
            daemon=True,
            args=(task, self._stop),
        )
        with self._inflight_lock:
            self._inflight[task.id] = thread
        thread.start()

    def _execute(self, task: Task, stop: threading.Event) -> None:
        def on_progress(progress: int) -> None:
            if stop.is_set():
                return
            try:
                self.manager.update_progress(task.id, progress)
            except Exception:
                logger.exception("Progress update failed", extra={"task_id": task.id})

        try:
            try:
                result = self.backend.execute(task.prompt, on_progress)
            except ExecutionError as e:
                self._settle_failure(task, e, stop)
            except Exception as e:
                self._settle_failure(task, ExecutionError(str(e) or type(e).__name__), stop)
            else:
                if stop.is_set():
                    logger.info("Ignoring result after shutdown", extra={"task_id": task.id})
                    return
                self.manager.complete(task.id, result)
                logger.info("Task completed", extra={"task_id": task.id})
        except Exception:
            logger.exception("Routing execution outcome failed", extra={"task_id": task.id})
        finally:
            with self._inflight_lock:
                self._inflight.pop(task.id, None)

    def _settle_failure(self, task: Task, error: ExecutionError, stop: threading.Event) -> None:
        if stop.is_set():
            logger.info("Ignoring failure after shutdown", extra={"task_id": task.id})
            return
        updated = self.manager.fail(
            task.id,
            TaskError(code=error.code, message=error.message),
            retryable=error.retryable,
        )
        logger.warning(
            "Task attempt failed",
            extra={
                "task_id": task.id,
                "code": error.code,
                "retryable": error.retryable,
                "state": updated.state.value if updated is not None else None,
                "retry_count": updated.retry_count if updated is not None else None,
            },
        )
