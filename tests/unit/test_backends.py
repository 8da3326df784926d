"""Unit tests for execution backends and failure classification."""

from __future__ import annotations

import random
from unittest.mock import Mock
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from image_task_queue.backend import BackendFactory
from image_task_queue.backend.classifier import (
    classify_exception,
    error_for_status,
    is_retryable_status,
)
from image_task_queue.backend.pollinations import PollinationsBackend
from image_task_queue.backend.simulated import SimulatedBackend
from image_task_queue.config import BackendSettings
from image_task_queue.core.errors import ExecutionError


@pytest.mark.parametrize(
    ("status", "retryable"),
    [
        (429, True),
        (500, True),
        (502, True),
        (503, True),
        (504, True),
        (400, False),
        (401, False),
        (404, False),
        (422, False),
    ],
)
def test_status_classification(status: int, retryable: bool) -> None:
    assert is_retryable_status(status) is retryable
    err = error_for_status(status, "detail")
    assert err.code == f"HTTP_{status}"
    assert err.retryable is retryable
    assert err.message == f"HTTP {status}: detail"


def test_error_detail_is_truncated() -> None:
    err = error_for_status(500, "x" * 1000)
    assert len(err.message) == len("HTTP 500: ") + 200


def test_classify_transport_failures() -> None:
    timeout = classify_exception(requests.Timeout("read timed out"))
    assert (timeout.code, timeout.retryable) == ("TIMEOUT", True)

    conn = classify_exception(requests.ConnectionError("refused"))
    assert (conn.code, conn.retryable) == ("CONNECTION_ERROR", True)


def test_classify_http_error_uses_status() -> None:
    response = requests.Response()
    response.status_code = 401
    response.reason = "Unauthorized"

    err = classify_exception(requests.HTTPError(response=response))

    assert err.code == "HTTP_401"
    assert err.retryable is False


def test_classify_passes_execution_errors_through() -> None:
    original = ExecutionError("bad", code="INVALID_RESPONSE", retryable=False)
    assert classify_exception(original) is original


def test_classify_unknown_is_retryable() -> None:
    err = classify_exception(KeyError("boom"))
    assert err.code == "UNKNOWN"
    assert err.retryable is True


def _response(
    *, status: int = 200, content_type: str = "image/jpeg", text: str = "", reason: str = "OK"
) -> Mock:
    response = Mock()
    response.ok = status < 400
    response.status_code = status
    response.text = text
    response.reason = reason
    response.headers = {"content-type": content_type}
    return response


def _backend(session: Mock) -> PollinationsBackend:
    settings = BackendSettings(
        base_url="https://images.example/prompt/",
        model="flux",
        width=512,
        height=768,
        timeout_seconds=7,
        progress_interval_seconds=60,
    )
    return PollinationsBackend(settings, session=session, rng=random.Random(3))


def test_build_url_encodes_prompt_and_parameters() -> None:
    backend = _backend(Mock())

    url = backend.build_url("a cat / on a mat?", seed=42)

    parts = urlsplit(url)
    assert parts.netloc == "images.example"
    assert parts.path == "/prompt/a%20cat%20%2F%20on%20a%20mat%3F"
    assert parse_qs(parts.query) == {
        "width": ["512"],
        "height": ["768"],
        "model": ["flux"],
        "nologo": ["true"],
        "seed": ["42"],
    }


def test_execute_success_reports_progress_and_result() -> None:
    session = Mock()
    session.get.return_value = _response()
    backend = _backend(session)
    progress: list[int] = []

    result = backend.execute("sunset", progress.append)

    assert progress[0] == 10
    assert progress[-1] == 100
    assert result.model == "flux"
    assert result.image_url.startswith("https://images.example/prompt/sunset?")
    assert result.processing_time_ms >= 0

    called_url = session.get.call_args.args[0]
    assert called_url == result.image_url
    assert session.get.call_args.kwargs["timeout"] == 7
    session.get.return_value.close.assert_called_once()


@pytest.mark.parametrize(("status", "retryable"), [(503, True), (429, True), (400, False)])
def test_execute_http_failure(status: int, retryable: bool) -> None:
    session = Mock()
    session.get.return_value = _response(status=status, text="upstream says no")
    progress: list[int] = []

    with pytest.raises(ExecutionError) as excinfo:
        _backend(session).execute("x", progress.append)

    assert excinfo.value.code == f"HTTP_{status}"
    assert excinfo.value.retryable is retryable
    assert "upstream says no" in excinfo.value.message
    assert 100 not in progress


def test_execute_rejects_non_image_response() -> None:
    session = Mock()
    session.get.return_value = _response(content_type="text/html")

    with pytest.raises(ExecutionError) as excinfo:
        _backend(session).execute("x", lambda _: None)

    assert excinfo.value.code == "INVALID_RESPONSE"
    assert excinfo.value.retryable is True


@pytest.mark.parametrize(
    ("exc", "code"),
    [(requests.Timeout("slow"), "TIMEOUT"), (requests.ConnectionError("down"), "CONNECTION_ERROR")],
)
def test_execute_transport_failure(exc: Exception, code: str) -> None:
    session = Mock()
    session.get.side_effect = exc

    with pytest.raises(ExecutionError) as excinfo:
        _backend(session).execute("x", lambda _: None)

    assert excinfo.value.code == code
    assert excinfo.value.retryable is True


def test_close_closes_session() -> None:
    session = Mock()
    _backend(session).close()
    session.close.assert_called_once()


def test_simulated_backend_succeeds() -> None:
    settings = BackendSettings(provider="simulated", simulated_duration_seconds=0)
    progress: list[int] = []

    result = SimulatedBackend(settings, rng=random.Random(1)).execute("a b", progress.append)

    assert progress == [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
    assert result.image_url == "simulated://flux/a%20b"


def test_simulated_backend_fails_at_configured_rate() -> None:
    settings = BackendSettings(
        provider="simulated", simulated_duration_seconds=0, simulated_failure_rate=1.0
    )

    with pytest.raises(ExecutionError) as excinfo:
        SimulatedBackend(settings).execute("x", lambda _: None)

    assert excinfo.value.code == "HTTP_503"
    assert excinfo.value.retryable is True


@pytest.mark.parametrize(
    ("provider", "expected"),
    [("pollinations", PollinationsBackend), ("simulated", SimulatedBackend)],
)
def test_factory_creates_configured_backend(provider: str, expected: type) -> None:
    backend = BackendFactory.create(BackendSettings(provider=provider))
    try:
        assert isinstance(backend, expected)
        assert backend.name == provider
    finally:
        backend.close()
