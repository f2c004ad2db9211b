"""Retry and timeout execution helpers."""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Callable, TypeVar

from featureflow.errors import (
    ErrorCategory,
    ErrorKind,
    FeatureFlowError,
    TransientExecutionError,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff policy."""

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    jitter_seconds: float = 0.2


class RetryExecutor:
    """Execute callables with bounded retries for transient failures."""

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep_fn: Callable[[float], None] = time.sleep,
        jitter_fn: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.policy = policy
        self._sleep = sleep_fn
        self._jitter = jitter_fn

    def run(
        self,
        operation: Callable[[], T],
        *,
        stage_name: str,
        timeout_seconds: int | None = None,
    ) -> T:
        """Run operation with retries/backoff/jitter and optional timeout.

        Validation, resource, and fatal errors propagate on the first attempt.
        Anything else is retried; exhaustion raises ``TransientExecutionError``.
        """
        if self.policy.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        last_error: Exception | None = None
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                return self._run_once(operation, timeout_seconds=timeout_seconds)
            except FeatureFlowError as exc:
                if exc.category != ErrorCategory.TRANSIENT:
                    raise
                last_error = exc
            except Exception as exc:  # noqa: BLE001
                last_error = exc
            if attempt >= self.policy.max_attempts:
                break
            delay = self._backoff_delay(attempt)
            LOGGER.warning(
                "%s attempt %s/%s failed: %s; retrying in %.2fs",
                stage_name,
                attempt,
                self.policy.max_attempts,
                last_error,
                delay,
            )
            self._sleep(delay)

        assert last_error is not None
        kind = last_error.kind if isinstance(last_error, FeatureFlowError) else None
        raise TransientExecutionError(
            f"{stage_name} failed after {self.policy.max_attempts} attempt(s): {last_error}",
            kind=kind or ErrorKind.AGENT_FAILED,
        ) from last_error

    def _run_once(
        self,
        operation: Callable[[], T],
        *,
        timeout_seconds: int | None,
    ) -> T:
        if timeout_seconds is None:
            return operation()
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(operation)
        try:
            return future.result(timeout=timeout_seconds)
        except FuturesTimeoutError as exc:
            raise TransientExecutionError(
                f"Operation timed out after {timeout_seconds} second(s)",
                kind=ErrorKind.TIMEOUT,
            ) from exc
        finally:
            # A timed-out worker is abandoned, not joined.
            executor.shutdown(wait=False, cancel_futures=True)

    def _backoff_delay(self, attempt: int) -> float:
        base_delay = self.policy.backoff_seconds * (2 ** (attempt - 1))
        jitter = self._jitter(0.0, self.policy.jitter_seconds)
        return max(0.0, base_delay + jitter)
