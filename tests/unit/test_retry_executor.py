"""Retry executor tests."""

from __future__ import annotations

import threading
import time

import pytest

from featureflow.errors import (
    ErrorKind,
    ServiceError,
    TaskFormatError,
    TransientExecutionError,
)
from featureflow.resilience.retry import RetryExecutor, RetryPolicy


def _executor(max_attempts: int = 3, slept: list[float] | None = None) -> RetryExecutor:
    return RetryExecutor(
        RetryPolicy(max_attempts=max_attempts, backoff_seconds=0.1, jitter_seconds=0.0),
        sleep_fn=(slept.append if slept is not None else lambda _delay: None),
        jitter_fn=lambda _a, _b: 0.0,
    )


def test_retry_executor_retries_then_succeeds() -> None:
    """Executor should retry failed attempts with exponential backoff."""
    attempts = {"count": 0}
    slept: list[float] = []

    def operation() -> str:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise RuntimeError("temporary failure")
        return "ok"

    result = _executor(slept=slept).run(operation, stage_name="retry-test")

    assert result == "ok"
    assert attempts["count"] == 3
    assert slept == [0.1, 0.2]


def test_exhaustion_raises_transient_error_with_last_kind() -> None:
    """Exhausted lock failures keep their kind so callers can report it."""
    attempts = {"count": 0}

    def operation() -> None:
        attempts["count"] += 1
        raise TransientExecutionError("index.lock held", kind=ErrorKind.LOCKED)

    with pytest.raises(TransientExecutionError) as exc_info:
        _executor(max_attempts=2).run(operation, stage_name="commit task 1")

    assert attempts["count"] == 2
    assert exc_info.value.kind == ErrorKind.LOCKED
    assert "commit task 1 failed after 2 attempt(s)" in str(exc_info.value)


def test_plain_exceptions_exhaust_as_agent_failures() -> None:
    def operation() -> None:
        raise RuntimeError("agent crashed")

    with pytest.raises(TransientExecutionError) as exc_info:
        _executor(max_attempts=1).run(operation, stage_name="task 2")
    assert exc_info.value.kind == ErrorKind.AGENT_FAILED


@pytest.mark.parametrize(
    "error",
    [TaskFormatError("bad ids"), ServiceError("gh missing", kind=ErrorKind.TOOL_NOT_FOUND)],
)
def test_non_transient_errors_are_not_retried(error: Exception) -> None:
    """Validation and resource errors propagate on the first attempt."""
    attempts = {"count": 0}

    def operation() -> None:
        attempts["count"] += 1
        raise error

    with pytest.raises(type(error)):
        _executor().run(operation, stage_name="non-retryable")
    assert attempts["count"] == 1


def test_retry_executor_timeout_raises() -> None:
    """Executor should raise a timeout-kind error when the operation overruns."""
    executor = RetryExecutor(RetryPolicy(max_attempts=1, backoff_seconds=0.0, jitter_seconds=0.0))

    def operation() -> None:
        time.sleep(0.05)

    with pytest.raises(TransientExecutionError) as exc_info:
        executor.run(operation, stage_name="timeout-test", timeout_seconds=0)
    assert exc_info.value.kind == ErrorKind.TIMEOUT


def test_timeout_returns_without_waiting_for_the_worker() -> None:
    """A hung operation is left behind; the caller gets the timeout promptly."""
    executor = RetryExecutor(RetryPolicy(max_attempts=1, backoff_seconds=0.0, jitter_seconds=0.0))
    release = threading.Event()

    def operation() -> None:
        release.wait(10)

    started = time.monotonic()
    try:
        with pytest.raises(TransientExecutionError) as exc_info:
            executor.run(operation, stage_name="hung-agent", timeout_seconds=1)
        elapsed = time.monotonic() - started
    finally:
        release.set()
    assert exc_info.value.kind == ErrorKind.TIMEOUT
    assert elapsed < 5


def test_invalid_policy_is_rejected() -> None:
    with pytest.raises(ValueError):
        _executor(max_attempts=0).run(lambda: None, stage_name="noop")
