"""Deterministic failure classification for the retry policy.

Transport timeouts, connection failures, rate limiting and 5xx responses might
succeed on a later attempt; malformed input, auth failures and missing
resources will not.
"""

from __future__ import annotations

import requests

from image_task_queue.core.errors import ExecutionError

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def error_for_status(status_code: int, detail: str = "") -> ExecutionError:
    message = f"HTTP {status_code}"
    if detail:
        message = f"{message}: {detail[:200]}"
    return ExecutionError(
        message,
        code=f"HTTP_{status_code}",
        retryable=is_retryable_status(status_code),
    )


def classify_exception(exc: BaseException) -> ExecutionError:
    """Map any backend exception to an :class:`ExecutionError`."""

    if isinstance(exc, ExecutionError):
        return exc
    if isinstance(exc, requests.Timeout):
        return ExecutionError("Image generation timed out", code="TIMEOUT", retryable=True)
    if isinstance(exc, requests.ConnectionError):
        return ExecutionError(
            f"Connection failed: {exc}", code="CONNECTION_ERROR", retryable=True
        )
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return error_for_status(exc.response.status_code, exc.response.reason or "")
    return ExecutionError(str(exc) or type(exc).__name__, code="UNKNOWN", retryable=True)
