"""Resilience Patterns

Retry with backoff and per-attempt timeouts for store transactions.
"""
from .retry import (
    BackoffStrategy,
    RetryConfig,
    RetryPolicy,
    RetryResult,
    TimeoutPolicy,
)

__all__ = [
    "BackoffStrategy",
    "RetryConfig",
    "RetryPolicy",
    "RetryResult",
    "TimeoutPolicy",
]
