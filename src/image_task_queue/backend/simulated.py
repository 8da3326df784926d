"""Offline backend that fakes generation time and failures.

Useful for running the server without network access and for load testing the
queue itself.
"""

from __future__ import annotations

import random
import threading
from urllib.parse import quote

from image_task_queue.backend.base import ExecutionBackend, ProgressCallback
from image_task_queue.config import BackendSettings
from image_task_queue.core.errors import ExecutionError
from image_task_queue.core.models import ExecutionResult, now_ms

_STEPS = 10


class SimulatedBackend(ExecutionBackend):
    name = "simulated"

    def __init__(self, settings: BackendSettings, *, rng: random.Random | None = None) -> None:
        self.settings = settings
        self._rng = rng or random.Random()  # noqa: S311
        self._rng_lock = threading.Lock()

    def execute(self, prompt: str, on_progress: ProgressCallback) -> ExecutionResult:
        started = now_ms()
        step_seconds = self.settings.simulated_duration_seconds / _STEPS
        pause = threading.Event()
        for step in range(1, _STEPS + 1):
            pause.wait(step_seconds)
            on_progress(step * 100 // _STEPS)

        with self._rng_lock:
            roll = self._rng.random()
        if roll < self.settings.simulated_failure_rate:
            raise ExecutionError(
                "Simulated upstream failure", code="HTTP_503", retryable=True
            )

        return ExecutionResult(
            image_url=f"simulated://{self.settings.model}/{quote(prompt, safe='')}",
            generated_at=now_ms(),
            processing_time_ms=now_ms() - started,
            model=self.settings.model,
        )
