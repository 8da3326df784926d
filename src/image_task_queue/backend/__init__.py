"""Execution backends package initialization."""

from image_task_queue.backend.base import ExecutionBackend, ProgressCallback
from image_task_queue.backend.factory import BackendFactory

__all__ = [
    "BackendFactory",
    "ExecutionBackend",
    "ProgressCallback",
]
