from __future__ import annotations

import json
import logging
import sys

from image_task_queue.logging import JsonFormatter, configure_logging


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="image_task_queue.core.scheduler",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Task attempt failed: %s",
        args=("HTTP_503",),
        exc_info=None,
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_includes_extras() -> None:
    line = JsonFormatter().format(_record(task_id="task_abc", retryable=True))
    payload = json.loads(line)

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "image_task_queue.core.scheduler"
    assert payload["message"] == "Task attempt failed: HTTP_503"
    assert payload["extra"] == {"task_id": "task_abc", "retryable": True}
    assert "thread" in payload
    assert "exception" not in payload


def test_json_formatter_without_extras_or_with_exception() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "extra" not in payload
    assert "RuntimeError: boom" in payload["exception"]


def test_configure_logging_replaces_handlers() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging("debug")
        configure_logging("info")

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.INFO
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
