"""FastAPI server adapter for image-task-queue.

This module exposes a REST API and an event stream over the queue core.

Design intent:
- Keep queue logic in `image_task_queue.core.*`
- Keep server-specific concerns (routing, validation, SSE framing, CORS) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from image_task_queue.server.app import create_app
