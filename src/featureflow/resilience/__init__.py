"""Resilience helpers."""

from featureflow.resilience.retry import RetryExecutor, RetryPolicy

__all__ = ["RetryExecutor", "RetryPolicy"]
