"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from image_task_queue.core.models import QueueStats


class SubmitTaskRequest(BaseModel):
    # Validated by TaskStore.create so malformed input maps to 400, not 422.
    prompt: Any = None


class CancelResponse(BaseModel):
    success: bool
    message: str


class HealthResponse(BaseModel):
    status: str
    uptime: float
    queue: QueueStats
