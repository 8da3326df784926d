"""Test configuration and fixtures."""

from __future__ import annotations

import random

import pytest

from image_task_queue.config import QueueSettings
from image_task_queue.core.backoff import BackoffPolicy
from image_task_queue.core.errors import ExecutionError
from image_task_queue.core.manager import QueueManager
from image_task_queue.core.task_store import TaskStore
from tests.support import FakeClock, RecordingPublisher


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def store(clock: FakeClock, publisher: RecordingPublisher) -> TaskStore:
    """A store with default limits and deterministic jitter."""
    return TaskStore(
        publisher=publisher,
        backoff=BackoffPolicy(rng=random.Random(7)),
        max_queue_size=100,
        max_concurrent=5,
        max_retries=5,
        clock=clock,
    )


@pytest.fixture
def queue_settings() -> QueueSettings:
    return QueueSettings(
        max_concurrent=5,
        max_queue_size=100,
        max_retries=5,
        dispatch_interval_seconds=0.01,
        retry_check_interval_seconds=0.01,
    )


@pytest.fixture
def manager(queue_settings: QueueSettings, clock: FakeClock) -> QueueManager:
    return QueueManager(queue_settings, clock=clock, rng=random.Random(11))


@pytest.fixture
def transient_error() -> ExecutionError:
    return ExecutionError("HTTP 503: upstream busy", code="HTTP_503", retryable=True)


@pytest.fixture
def permanent_error() -> ExecutionError:
    return ExecutionError("HTTP 400: bad prompt", code="HTTP_400", retryable=False)
