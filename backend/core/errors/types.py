"""Monadic Error Handling Types

Result = Ok | Err with a typed AppError payload. Engines return Results,
routers unwrap them at the HTTP boundary with raise_result.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Generic, Iterator, NoReturn, TypeVar, Union, final
from uuid import uuid4

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound="AppError")
F = TypeVar("F", bound="AppError")


class ErrorCode(Enum):
    """Numeric error taxonomy.

    E1xxx: Timeouts
    E2xxx: Validation
    E3xxx: Identity and access
    E4xxx: Database
    E5xxx: Business rules
    E9xxx: Internal
    """
    # Timeouts (E1xxx)
    E1002_TIMEOUT = 1002

    # Validation (E2xxx)
    E2000_VALIDATION_GENERIC = 2000
    E2001_REQUIRED_FIELD_MISSING = 2001
    E2002_INVALID_FORMAT = 2002
    E2003_OUT_OF_RANGE = 2003
    E2004_INVALID_TYPE = 2004
    E2011_INVALID_UUID = 2011
    E2030_INVALID_BADGE_CRITERIA = 2030

    # Identity / access (E3xxx)
    E3004_IDENTITY_MISSING = 3004
    E3011_RESOURCE_FORBIDDEN = 3011
    E3030_NOT_ENROLLED = 3030
    E3031_NOT_IN_HIERARCHY = 3031
    E3032_CONTENT_LOCKED = 3032

    # Database (E4xxx)
    E4000_DATABASE_GENERIC = 4000
    E4001_CONNECTION_FAILED = 4001
    E4003_TRANSACTION_FAILED = 4003
    E4004_DEADLOCK = 4004
    E4010_NOT_FOUND = 4010
    E4011_DUPLICATE_KEY = 4011
    E4012_FOREIGN_KEY_VIOLATION = 4012
    E4013_CHECK_CONSTRAINT = 4013

    # Business (E5xxx)
    E5000_BUSINESS_GENERIC = 5000
    E5001_OPERATION_NOT_ALLOWED = 5001
    E5002_STATE_CONFLICT = 5002

    # Internal (E9xxx)
    E9000_INTERNAL_GENERIC = 9000
    E9001_UNEXPECTED_ERROR = 9001
    E9003_ASSERTION_FAILED = 9003

    @property
    def http_status(self) -> int:
        code = self.value
        if 1000 <= code < 2000:
            return 504
        if 2000 <= code < 3000:
            return 400
        if 3000 <= code < 3010:
            return 401
        if 3010 <= code < 4000:
            return 403
        if code == 4010:
            return 404
        if 4011 <= code < 4020:
            return 409
        if 4000 <= code < 5000:
            return 503
        if 5000 <= code < 6000:
            return 409
        return 500

    @property
    def category(self) -> str:
        code = self.value
        if 1000 <= code < 2000:
            return "timeout"
        if 2000 <= code < 3000:
            return "validation"
        if 3000 <= code < 4000:
            return "access"
        if 4000 <= code < 5000:
            return "database"
        if 5000 <= code < 6000:
            return "business"
        return "internal"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Immutable tracing context attached to every error."""
    correlation_id: str = field(default_factory=lambda: str(uuid4())[:8])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    origin: str = ""
    user_id: str | None = None
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class AppError:
    """Application error: typed code, message, tracing context and metadata."""
    code: ErrorCode
    message: str
    context: ErrorContext = field(default_factory=ErrorContext)
    metadata: dict = field(default_factory=dict)
    cause: Exception | None = None

    @property
    def error_id(self) -> str:
        return f"{self.code.name}:{self.context.correlation_id}"

    @property
    def is_transient(self) -> bool:
        """Connection/transaction failures that may succeed on retry."""
        return self.code in (
            ErrorCode.E1002_TIMEOUT,
            ErrorCode.E4001_CONNECTION_FAILED,
            ErrorCode.E4003_TRANSACTION_FAILED,
            ErrorCode.E4004_DEADLOCK,
        )

    def with_context(self, **kwargs) -> AppError:
        ctx = self.context
        new_ctx = ErrorContext(
            correlation_id=kwargs.get("correlation_id") or ctx.correlation_id,
            timestamp=ctx.timestamp,
            origin=kwargs.get("origin", ctx.origin),
            user_id=kwargs.get("user_id", ctx.user_id),
            request_id=kwargs.get("request_id", ctx.request_id),
        )
        return AppError(
            code=self.code,
            message=self.message,
            context=new_ctx,
            metadata={**self.metadata, **kwargs.get("metadata", {})},
            cause=self.cause,
        )

    def with_metadata(self, **kwargs) -> AppError:
        return AppError(
            code=self.code,
            message=self.message,
            context=self.context,
            metadata={**self.metadata, **kwargs},
            cause=self.cause,
        )

    def chain(self, cause: Exception) -> AppError:
        return AppError(
            code=self.code,
            message=self.message,
            context=self.context,
            metadata=self.metadata,
            cause=cause,
        )

    def to_dict(self) -> dict:
        """Serialize for API responses."""
        return {
            "error": {
                "code": self.code.name,
                "code_num": self.code.value,
                "message": self.message,
                "category": self.code.category,
                "correlation_id": self.context.correlation_id,
                "timestamp": self.context.timestamp.isoformat(),
                "metadata": self.metadata,
            }
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (correlation_id={self.context.correlation_id})"


@final
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Success variant."""
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U, AppError]:
        return Ok(f(self.value))

    def map_err(self, f: Callable[[AppError], F]) -> Result[T, F]:
        return self  # type: ignore

    def and_then(self, f: Callable[[T], Result[U, AppError]]) -> Result[U, AppError]:
        return f(self.value)

    def __iter__(self) -> Iterator[T]:
        yield self.value


@final
@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failure variant carrying an AppError."""
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_err(self) -> E:
        return self.error

    def map(self, f: Callable[[T], U]) -> Result[U, E]:
        return self  # type: ignore

    def map_err(self, f: Callable[[E], F]) -> Result[T, F]:
        return Err(f(self.error))

    def and_then(self, f: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return self  # type: ignore

    def __iter__(self) -> Iterator:
        return iter([])


Result = Union[Ok[T], Err[E]]


def from_exception(
    exc: Exception,
    code: ErrorCode = ErrorCode.E9001_UNEXPECTED_ERROR,
    message: str | None = None,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    """Wrap an exception as Err, keeping it as the cause."""
    return Err(AppError(
        code=code,
        message=message or str(exc),
        context=ErrorContext(origin=origin),
        metadata=metadata,
        cause=exc,
    ))


def sequence_results(results: list[Result[T, AppError]]) -> Result[list[T], AppError]:
    """All values if every Result is Ok, else the first Err."""
    values: list[T] = []
    for r in results:
        match r:
            case Ok(v):
                values.append(v)
            case Err(e):
                return Err(e)
    return Ok(values)


def ensure(condition: bool, error: AppError) -> Result[None, AppError]:
    return Ok(None) if condition else Err(error)


def require(value: T | None, error: AppError) -> Result[T, AppError]:
    return Ok(value) if value is not None else Err(error)
