"""Pydantic models shared by the queue core, the backends and the HTTP layer.

Field names are snake_case in Python and camelCase on the wire (``retryCount``,
``nextRetryAt``) so streamed events match what browser clients already expect.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    return int(time.time() * 1000)


class TaskState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TaskError(_WireModel):
    code: str = "UNKNOWN"
    message: str = "Unknown error occurred"


class ExecutionResult(_WireModel):
    """Successful output of an execution backend."""

    image_url: str
    generated_at: int
    processing_time_ms: int
    model: str


class Task(_WireModel):
    id: str
    prompt: str
    state: TaskState = TaskState.PENDING

    created_at: int
    started_at: int | None = None
    completed_at: int | None = None

    progress: int = Field(default=0, ge=0, le=100)
    result: ExecutionResult | None = None
    error: TaskError | None = None

    retry_count: int = 0
    max_retries: int = 5
    next_retry_at: int | None = None

    estimated_wait_time: int = 0


class QueueStats(_WireModel):
    pending: int = 0
    processing: int = 0
    retrying: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


@dataclass(frozen=True, slots=True)
class Event:
    """A state-change notification delivered to observers.

    ``data`` is already JSON-ready; observers must treat it as read-only.
    """

    name: str
    data: Any
