"""Server-Sent Events framing for queue subscriptions."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from fastapi import Request

from image_task_queue.core.broadcast import Subscription
from image_task_queue.core.manager import QueueManager
from image_task_queue.core.models import Event

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: Event) -> str:
    data = json.dumps(event.data, ensure_ascii=False, separators=(",", ":"))
    return f"event: {event.name}\ndata: {data}\n\n"


def format_comment(text: str) -> str:
    return f":{text}\n\n"


async def stream_events(
    request: Request,
    manager: QueueManager,
    *,
    keepalive_seconds: float,
    subscription: Subscription | None = None,
) -> AsyncIterator[str]:
    """Forward every event of one subscription until the client goes away.

    Ends when the client disconnects or the hub drops the subscription (the
    client then reconnects and gets a fresh snapshot).
    """

    subscription = subscription or manager.subscribe()
    try:
        yield format_comment("ok")
        while True:
            if await request.is_disconnected():
                return
            events = await subscription.wait_events(keepalive_seconds)
            if not events:
                if subscription.closed:
                    return
                yield format_comment("keepalive")
                continue
            for event in events:
                yield format_sse(event)
    finally:
        manager.unsubscribe(subscription)
