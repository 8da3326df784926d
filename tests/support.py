"""Shared test doubles and helpers."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from image_task_queue.backend.base import ExecutionBackend, ProgressCallback
from image_task_queue.core.models import Event, ExecutionResult


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@dataclass
class RecordingPublisher:
    events: list[Event] = field(default_factory=list)

    def publish(self, name: str, data: Any) -> None:
        self.events.append(Event(name=name, data=data))

    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def for_task(self, task_id: str) -> list[str]:
        return [
            e.name for e in self.events if isinstance(e.data, dict) and e.data.get("id") == task_id
        ]


def make_result(label: str = "ok") -> ExecutionResult:
    return ExecutionResult(
        image_url=f"https://images.test/{label}.png",
        generated_at=1,
        processing_time_ms=5,
        model="flux",
    )


class ScriptedBackend(ExecutionBackend):
    """Backend whose outcomes are queued by the test.

    Each call pops the next outcome: an ExecutionResult, an exception to raise,
    or a threading.Event to wait on before succeeding. With nothing queued it
    succeeds immediately.
    """

    name = "scripted"

    def __init__(self, *outcomes: object) -> None:
        self._outcomes = list(outcomes)
        self._lock = threading.Lock()
        self.calls: list[str] = []

    def add(self, *outcomes: object) -> None:
        with self._lock:
            self._outcomes.extend(outcomes)

    def execute(self, prompt: str, on_progress: ProgressCallback) -> ExecutionResult:
        with self._lock:
            self.calls.append(prompt)
            outcome = self._outcomes.pop(0) if self._outcomes else make_result()
        on_progress(50)
        if isinstance(outcome, threading.Event):
            outcome.wait(5)
            return make_result()
        if isinstance(outcome, BaseException):
            raise outcome
        assert isinstance(outcome, ExecutionResult)
        return outcome


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
