"""Retry Policies with Exponential Backoff and Jitter

Retries Result-returning async operations whose failure is transient
(connection drops, lock contention). Used around store transactions whose
steps are idempotent, so a replay never double-applies a write.
"""
from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Awaitable, Callable, Generic, TypeVar

from core.errors import AppError, ErrorCode, Err, Ok, Result, timeout_error
from core.logging import db_logger

T = TypeVar("T")

log = db_logger()


class BackoffStrategy(Enum):
    CONSTANT = auto()
    EXPONENTIAL = auto()
    EXPONENTIAL_JITTER = auto()


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay_seconds: float = 0.05
    max_delay_seconds: float = 2.0
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL_JITTER
    jitter_factor: float = 0.5
    multiplier: float = 2.0
    retryable_codes: frozenset[ErrorCode] = field(
        default_factory=lambda: frozenset({
            ErrorCode.E1002_TIMEOUT,
            ErrorCode.E4001_CONNECTION_FAILED,
            ErrorCode.E4003_TRANSACTION_FAILED,
            ErrorCode.E4004_DEADLOCK,
        })
    )


@dataclass
class RetryAttempt:
    attempt_number: int
    started_at: datetime
    delay_seconds: float
    error: AppError | None = None


@dataclass
class RetryResult(Generic[T]):
    """Final Result plus the history of attempts that produced it."""
    result: Result[T, AppError]
    attempts: list[RetryAttempt]
    total_duration_seconds: float

    @property
    def succeeded(self) -> bool:
        return self.result.is_ok()

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


class BackoffCalculator(ABC):
    @abstractmethod
    def calculate(self, attempt: int, config: RetryConfig) -> float:
        """Delay in seconds before the retry following `attempt` (1-indexed)."""


class ConstantBackoff(BackoffCalculator):
    def calculate(self, attempt: int, config: RetryConfig) -> float:
        return min(config.base_delay_seconds, config.max_delay_seconds)


class ExponentialBackoff(BackoffCalculator):
    def calculate(self, attempt: int, config: RetryConfig) -> float:
        delay = config.base_delay_seconds * (config.multiplier ** (attempt - 1))
        return min(delay, config.max_delay_seconds)


class ExponentialJitterBackoff(BackoffCalculator):
    """Exponential delay with equal jitter of ±jitter_factor/2."""

    def calculate(self, attempt: int, config: RetryConfig) -> float:
        base = min(
            config.base_delay_seconds * (config.multiplier ** (attempt - 1)),
            config.max_delay_seconds,
        )
        jitter_range = base * config.jitter_factor
        jitter = random.uniform(-jitter_range / 2, jitter_range / 2)
        return max(0.0, min(base + jitter, config.max_delay_seconds))


_CALCULATORS: dict[BackoffStrategy, BackoffCalculator] = {
    BackoffStrategy.CONSTANT: ConstantBackoff(),
    BackoffStrategy.EXPONENTIAL: ExponentialBackoff(),
    BackoffStrategy.EXPONENTIAL_JITTER: ExponentialJitterBackoff(),
}


class RetryPolicy(Generic[T]):
    """Retry an async Result-returning operation on transient error codes.

    Usage:
        policy = RetryPolicy(RetryConfig(max_attempts=3))
        outcome = await policy.execute(run_once, on_retry=rollback)
        match outcome.result:
            case Ok(value): ...
            case Err(error): ...

    Exceptions escaping `fn` are not caught: the operation is expected to map
    its own failures at the store boundary.
    """

    def __init__(self, config: RetryConfig | None = None, operation_name: str = "operation"):
        self.config = config or RetryConfig()
        self.operation_name = operation_name
        self._calculator = _CALCULATORS[self.config.strategy]

    def should_retry(self, error: AppError, attempt: int) -> bool:
        if attempt >= self.config.max_attempts:
            return False
        return error.code in self.config.retryable_codes

    async def execute(
        self,
        fn: Callable[[], Awaitable[Result[T, AppError]]],
        on_retry: Callable[[int, AppError, float], Awaitable[None]] | None = None,
    ) -> RetryResult[T]:
        attempts: list[RetryAttempt] = []
        start_time = datetime.now(timezone.utc)

        def _finish(result: Result[T, AppError]) -> RetryResult[T]:
            elapsed = (datetime.now(timezone.utc) - start_time).total_seconds()
            return RetryResult(result=result, attempts=attempts, total_duration_seconds=elapsed)

        for attempt in range(1, self.config.max_attempts + 1):
            attempt_start = datetime.now(timezone.utc)
            delay = self._calculator.calculate(attempt, self.config)
            result = await fn()

            match result:
                case Ok(_):
                    attempts.append(RetryAttempt(attempt, attempt_start, delay))
                    return _finish(result)
                case Err(error):
                    attempts.append(RetryAttempt(attempt, attempt_start, delay, error))
                    if not self.should_retry(error, attempt):
                        return _finish(result)

                    log.warning(
                        "retrying_operation",
                        operation=self.operation_name,
                        attempt=attempt,
                        error_code=error.code.name,
                        delay_s=round(delay, 3),
                    )
                    if on_retry:
                        await on_retry(attempt, error, delay)
                    await asyncio.sleep(delay)

        return _finish(Err(AppError(
            code=ErrorCode.E9001_UNEXPECTED_ERROR,
            message=f"Retry policy for '{self.operation_name}' exhausted",
        )))


class TimeoutPolicy(Generic[T]):
    """Bound a single attempt's duration, returning E1002 on expiry."""

    def __init__(self, timeout_seconds: float, operation_name: str = "operation"):
        self.timeout_seconds = timeout_seconds
        self.operation_name = operation_name

    async def execute(
        self,
        fn: Callable[[], Awaitable[Result[T, AppError]]],
    ) -> Result[T, AppError]:
        try:
            return await asyncio.wait_for(fn(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            return timeout_error(self.operation_name, self.timeout_seconds, origin="timeout_policy")
