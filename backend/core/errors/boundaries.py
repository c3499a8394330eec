"""Error Boundary Mappers

Translate exceptions raised below a module boundary (SQLAlchemy, pydantic)
into AppError values so callers only ever see one error type.
"""
from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Generic, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from .types import AppError, ErrorCode, ErrorContext, Err, Ok, Result
from .builders import (
    db_connection_failed,
    deadlock_detected,
    duplicate_key,
    foreign_key_violation,
    internal_error,
    timeout_error,
    transaction_failed,
)

T = TypeVar("T")


class ErrorMapper(ABC, Generic[T]):
    """Base for mappers sitting at a module boundary."""

    @abstractmethod
    def map_error(self, error: AppError) -> AppError:
        pass

    def map_result(self, result: Result[T, AppError]) -> Result[T, AppError]:
        match result:
            case Ok(_):
                return result
            case Err(e):
                return Err(self.map_error(e))


class DatabaseErrorMapper(ErrorMapper[T]):
    """Maps SQLAlchemy exceptions to database error codes.

    Lock contention (sqlite "database is locked", postgres deadlocks and
    serialization failures) maps to E4004 so retry policies treat it as
    transient. Unique violations map to E4011, which is never retried.
    """

    def __init__(self, origin: str = "database"):
        self.origin = origin

    def map_error(self, error: AppError) -> AppError:
        if 4000 <= error.code.value < 5000:
            return error
        return error.with_context(origin=self.origin)

    def map_exception(self, exc: Exception) -> AppError:
        if isinstance(exc, IntegrityError):
            return self._map_integrity_error(exc)
        if isinstance(exc, OperationalError):
            return self._map_operational_error(exc)
        if isinstance(exc, SQLAlchemyError):
            return transaction_failed(str(exc), origin=self.origin).error.chain(exc)
        return internal_error(
            f"Database error: {exc}",
            origin=self.origin,
            cause=exc,
        ).error

    def _map_integrity_error(self, exc: IntegrityError) -> AppError:
        message = str(exc.orig) if exc.orig else str(exc)
        lowered = message.lower()

        if "unique" in lowered or "duplicate key" in lowered:
            return duplicate_key("record", "unknown", "unknown", origin=self.origin).error.chain(exc)
        if "foreign key" in lowered:
            return foreign_key_violation("record", "unknown", origin=self.origin).error.chain(exc)
        return AppError(
            code=ErrorCode.E4013_CHECK_CONSTRAINT,
            message=f"Constraint violation: {message}",
            context=ErrorContext(origin=self.origin),
            cause=exc,
        )

    def _map_operational_error(self, exc: OperationalError) -> AppError:
        message = str(exc.orig) if exc.orig else str(exc)
        lowered = message.lower()

        if "locked" in lowered or "deadlock" in lowered or "could not serialize" in lowered:
            return deadlock_detected(message, origin=self.origin).error.chain(exc)
        if "timeout" in lowered:
            return timeout_error("database query", 30.0, origin=self.origin).error.chain(exc)
        if "connect" in lowered:
            return db_connection_failed(message, origin=self.origin).error.chain(exc)
        return transaction_failed(message, origin=self.origin).error.chain(exc)


class ValidationErrorMapper(ErrorMapper[T]):
    """Maps pydantic error dicts to validation AppErrors."""

    def __init__(self, origin: str = "validation"):
        self.origin = origin

    def map_error(self, error: AppError) -> AppError:
        if 2000 <= error.code.value < 3000:
            return error
        return error.with_context(origin=self.origin)

    def map_pydantic_errors(self, errors: list[dict]) -> list[AppError]:
        result = []
        for err in errors:
            field = ".".join(str(loc) for loc in err.get("loc", []))
            msg = err.get("msg", "Validation error")
            err_type = err.get("type", "value_error")

            if err_type == "missing":
                code = ErrorCode.E2001_REQUIRED_FIELD_MISSING
            elif err_type == "uuid_parsing":
                code = ErrorCode.E2011_INVALID_UUID
            elif err_type.endswith("_type") or err_type.endswith("_parsing"):
                code = ErrorCode.E2004_INVALID_TYPE
            elif err_type.startswith(("greater_than", "less_than")):
                code = ErrorCode.E2003_OUT_OF_RANGE
            else:
                code = ErrorCode.E2000_VALIDATION_GENERIC

            result.append(AppError(
                code=code,
                message=f"{field}: {msg}",
                context=ErrorContext(origin=self.origin),
                metadata={"field": field, "error_type": err_type},
            ))
        return result


def map_db_errors(origin: str = "database"):
    """Decorator converting SQLAlchemy exceptions in an async Result-returning function.

    Usage:
        @map_db_errors("store.lesson_attempts")
        async def upsert(...) -> Result[LessonAttempt, AppError]:
            ...
    """
    mapper = DatabaseErrorMapper(origin)

    def decorator(fn: Callable[..., Awaitable[Result[T, AppError]]]):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> Result[T, AppError]:
            try:
                return mapper.map_result(await fn(*args, **kwargs))
            except SQLAlchemyError as e:
                return Err(mapper.map_exception(e))
        return wrapper
    return decorator
