"""FastAPI app factory.

Endpoints are intentionally thin wrappers over :class:`QueueManager`. The
scheduler runs for the lifetime of the application.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from image_task_queue import __version__
from image_task_queue.backend import BackendFactory, ExecutionBackend
from image_task_queue.config import BackendSettings, QueueSettings
from image_task_queue.core.errors import InvalidInputError, QueueFullError
from image_task_queue.core.manager import QueueManager
from image_task_queue.core.models import QueueStats, Task
from image_task_queue.core.scheduler import Scheduler
from image_task_queue.server.config import ServerSettings
from image_task_queue.server.models import CancelResponse, HealthResponse, SubmitTaskRequest
from image_task_queue.server.streaming import SSE_HEADERS, stream_events

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings: ServerSettings | None = None,
    queue_settings: QueueSettings | None = None,
    backend: ExecutionBackend | None = None,
    manager: QueueManager | None = None,
) -> FastAPI:
    settings = settings or ServerSettings()
    manager = manager or QueueManager(queue_settings)
    backend = backend or BackendFactory.create(BackendSettings())
    scheduler = Scheduler(manager=manager, backend=backend)
    started_at = time.monotonic()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        scheduler.start()
        try:
            yield
        finally:
            scheduler.stop()
            if not scheduler.wait_for_inflight(timeout=settings.shutdown_grace_seconds):
                logger.warning(
                    "Shutting down with executions still running",
                    extra={"inflight": scheduler.inflight_count},
                )
            backend.close()

    app = FastAPI(
        title="Image Task Queue",
        version=__version__,
        description="Submit image-generation prompts and follow them in real time.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.manager = manager
    app.state.scheduler = scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/tasks", response_model=Task, status_code=201)
    def submit_task(req: SubmitTaskRequest) -> Task:
        try:
            return manager.submit(req.prompt)
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except QueueFullError as e:
            logger.warning("Submission rejected", extra={"reason": str(e)})
            raise HTTPException(
                status_code=503,
                detail="The queue is at capacity. Please wait for some tasks to complete.",
            ) from e

    @app.get("/tasks", response_model=list[Task])
    def list_tasks() -> list[Task]:
        return manager.list()

    @app.get("/tasks/{task_id}", response_model=Task)
    def get_task(task_id: str) -> Task:
        task = manager.get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    @app.delete("/tasks/{task_id}", response_model=CancelResponse)
    def cancel_task(task_id: str) -> CancelResponse:
        if manager.cancel(task_id):
            return CancelResponse(success=True, message="Task cancelled")
        if manager.get(task_id) is None:
            raise HTTPException(status_code=404, detail="Task not found")
        raise HTTPException(
            status_code=409, detail="Task is processing and cannot be cancelled"
        )

    @app.get("/stats", response_model=QueueStats)
    def stats() -> QueueStats:
        return manager.stats()

    @app.get("/queue/stream")
    async def queue_stream(request: Request) -> StreamingResponse:
        subscription = manager.subscribe()
        return StreamingResponse(
            stream_events(
                request,
                manager,
                keepalive_seconds=settings.stream_keepalive_seconds,
                subscription=subscription,
            ),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            uptime=round(time.monotonic() - started_at, 3),
            queue=manager.stats(),
        )

    return app
