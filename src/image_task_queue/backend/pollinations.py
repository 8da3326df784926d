"""HTTP image-generation backend (Pollinations-style URL API).

The prompt goes in the URL path and the response body is the image itself, so a
successful GET means the image exists and its URL can be handed to clients.
The service reports no progress; it is estimated from elapsed time instead.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from urllib.parse import quote, urlencode

import requests

from image_task_queue.backend.base import ExecutionBackend, ProgressCallback
from image_task_queue.backend.classifier import classify_exception, error_for_status
from image_task_queue.config import BackendSettings
from image_task_queue.core.errors import ExecutionError
from image_task_queue.core.models import ExecutionResult, now_ms

logger = logging.getLogger(__name__)

_INITIAL_PROGRESS = 10
_MAX_ESTIMATED_PROGRESS = 90


class PollinationsBackend(ExecutionBackend):
    name = "pollinations"

    def __init__(
        self,
        settings: BackendSettings,
        *,
        session: requests.Session | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self._session = session or requests.Session()
        self._rng = rng or random.Random()  # noqa: S311

    def build_url(self, prompt: str, *, seed: int) -> str:
        query = urlencode(
            {
                "width": self.settings.width,
                "height": self.settings.height,
                "model": self.settings.model,
                "nologo": "true",
                "seed": seed,
            }
        )
        base = self.settings.base_url.rstrip("/")
        return f"{base}/{quote(prompt, safe='')}?{query}"

    def execute(self, prompt: str, on_progress: ProgressCallback) -> ExecutionResult:
        started = time.monotonic()
        image_url = self.build_url(prompt, seed=self._rng.randrange(1_000_000))

        on_progress(_INITIAL_PROGRESS)
        stop_ticker = threading.Event()
        ticker = threading.Thread(
            target=self._report_estimated_progress,
            name="pollinations-progress",
            daemon=True,
            kwargs={"started": started, "stop": stop_ticker, "on_progress": on_progress},
        )
        ticker.start()

        try:
            response = self._session.get(image_url, timeout=self.settings.timeout_seconds)
        except requests.RequestException as e:
            raise classify_exception(e) from e
        finally:
            stop_ticker.set()

        try:
            if not response.ok:
                raise error_for_status(response.status_code, response.text or response.reason)

            content_type = response.headers.get("content-type", "")
            if "image" not in content_type:
                raise ExecutionError(
                    "API did not return an image", code="INVALID_RESPONSE", retryable=True
                )
        finally:
            response.close()

        on_progress(100)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "Image generated",
            extra={"model": self.settings.model, "processing_time_ms": elapsed_ms},
        )
        return ExecutionResult(
            image_url=image_url,
            generated_at=now_ms(),
            processing_time_ms=elapsed_ms,
            model=self.settings.model,
        )

    def _report_estimated_progress(
        self, *, started: float, stop: threading.Event, on_progress: ProgressCallback
    ) -> None:
        span = _MAX_ESTIMATED_PROGRESS - _INITIAL_PROGRESS
        while not stop.wait(self.settings.progress_interval_seconds):
            elapsed = time.monotonic() - started
            fraction = elapsed / self.settings.expected_duration_seconds
            on_progress(min(_MAX_ESTIMATED_PROGRESS, _INITIAL_PROGRESS + int(fraction * span)))

    def close(self) -> None:
        self._session.close()
