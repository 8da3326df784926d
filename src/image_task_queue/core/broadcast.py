"""Fan-out of queue events to live observers.

Each observer owns a bounded buffer. Publishing never blocks: a full buffer
means the observer cannot keep up, so it is closed and dropped. Its consumer
drains what is left and ends, and a reconnecting client starts again from a
fresh snapshot.

Publishers run on worker threads; consumers are coroutines on the server's
event loop. A consumer waits on an ``asyncio.Event`` that delivery sets through
``loop.call_soon_threadsafe``, so an idle observer holds no thread.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import uuid
from collections.abc import Iterable
from typing import Any

from image_task_queue.core.errors import ObserverDeliveryError
from image_task_queue.core.models import Event

logger = logging.getLogger(__name__)


class Subscription:
    """Observer handle returned by :meth:`BroadcastHub.subscribe`."""

    def __init__(self, *, buffer_size: int) -> None:
        self.id = uuid.uuid4().hex[:12]
        self._queue: queue.Queue[Event] = queue.Queue(maxsize=buffer_size)
        self._buffer_size = buffer_size
        self._closed = threading.Event()

        self._waker_lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def deliver(self, event: Event) -> None:
        if self._closed.is_set():
            raise ObserverDeliveryError(self.id, "subscription closed")
        try:
            self._queue.put_nowait(event)
        except queue.Full as e:
            raise ObserverDeliveryError(self.id, f"buffer full ({self._buffer_size} events)") from e
        self._wake()

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._wake()

    def drain(self) -> list[Event]:
        """Return every buffered event without waiting."""

        events: list[Event] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    async def wait_events(self, timeout: float) -> list[Event]:
        """Wait up to ``timeout`` seconds for events and return all buffered ones.

        An empty list means nothing arrived in time, or the subscription is
        closed and fully drained (check :attr:`closed`).
        """

        loop = asyncio.get_running_loop()
        wakeup = self._bind(loop)
        deadline = loop.time() + timeout
        while True:
            # Clear before draining: a delivery after the drain sets it again.
            wakeup.clear()
            events = self.drain()
            if events or self.closed:
                return events
            remaining = deadline - loop.time()
            if remaining <= 0:
                return []
            try:
                await asyncio.wait_for(wakeup.wait(), remaining)
            except TimeoutError:
                return self.drain()

    def _bind(self, loop: asyncio.AbstractEventLoop) -> asyncio.Event:
        with self._waker_lock:
            if self._loop is not loop or self._wakeup is None:
                self._loop = loop
                self._wakeup = asyncio.Event()
            return self._wakeup

    def _wake(self) -> None:
        with self._waker_lock:
            loop, wakeup = self._loop, self._wakeup
        if loop is None or wakeup is None:
            return
        try:
            loop.call_soon_threadsafe(wakeup.set)
        except RuntimeError:
            # Loop already closed; its consumer is gone.
            logger.debug("Observer loop closed", extra={"subscription_id": self.id})


class BroadcastHub:
    def __init__(self, *, buffer_size: int = 256) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self._buffer_size = buffer_size
        self._subscribers: dict[str, Subscription] = {}
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, initial_events: Iterable[Event] = ()) -> Subscription:
        """Register an observer whose buffer starts with ``initial_events``.

        The initial events are queued before the subscription becomes visible to
        :meth:`publish`, so they are always the first thing the observer sees.
        """

        subscription = Subscription(buffer_size=self._buffer_size)
        for event in initial_events:
            subscription.deliver(event)
        with self._lock:
            self._subscribers[subscription.id] = subscription
        logger.info(
            "Observer subscribed",
            extra={"subscription_id": subscription.id, "subscribers": self.subscriber_count},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
        subscription.close()
        if removed is not None:
            logger.info(
                "Observer unsubscribed",
                extra={"subscription_id": subscription.id, "subscribers": self.subscriber_count},
            )

    def publish(self, name: str, data: Any) -> None:
        event = Event(name=name, data=data)
        with self._lock:
            targets = list(self._subscribers.values())

        for subscription in targets:
            try:
                subscription.deliver(event)
            except ObserverDeliveryError as e:
                logger.warning(
                    "Dropping observer",
                    extra={"subscription_id": e.subscription_id, "reason": e.reason, "event": name},
                )
                self.unsubscribe(subscription)
