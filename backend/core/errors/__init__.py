"""Monadic Error Handling

Result = Ok | Err over a typed AppError.

Usage:
    from core.errors import Ok, Result, AppError, not_found

    async def load_lesson(lesson_id) -> Result[Lesson, AppError]:
        lesson = await session.get(Lesson, lesson_id)
        if lesson is None:
            return not_found("Lesson", lesson_id, origin="store")
        return Ok(lesson)

    match await load_lesson(lesson_id):
        case Ok(lesson):
            ...
        case Err(error):
            log.warning("lesson_missing", code=error.code.name)
"""
from .types import (
    Result,
    Ok,
    Err,
    AppError,
    ErrorCode,
    ErrorContext,
    from_exception,
    sequence_results,
    ensure,
    require,
)

from .builders import (
    ACCESS_REASON_CODES,
    timeout_error,
    validation_error,
    required_field,
    out_of_range,
    invalid_uuid,
    invalid_criteria,
    identity_missing,
    access_denied,
    not_enrolled,
    not_in_hierarchy,
    content_locked,
    db_error,
    not_found,
    duplicate_key,
    foreign_key_violation,
    db_connection_failed,
    transaction_failed,
    deadlock_detected,
    business_error,
    operation_not_allowed,
    internal_error,
)

from .boundaries import (
    ErrorMapper,
    DatabaseErrorMapper,
    ValidationErrorMapper,
    map_db_errors,
)

from .handlers import (
    AppErrorException,
    register_error_handlers,
    result_to_response,
    raise_error,
    raise_result,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "AppError",
    "ErrorCode",
    "ErrorContext",
    "from_exception",
    "sequence_results",
    "ensure",
    "require",
    "ACCESS_REASON_CODES",
    "timeout_error",
    "validation_error",
    "required_field",
    "out_of_range",
    "invalid_uuid",
    "invalid_criteria",
    "identity_missing",
    "access_denied",
    "not_enrolled",
    "not_in_hierarchy",
    "content_locked",
    "db_error",
    "not_found",
    "duplicate_key",
    "foreign_key_violation",
    "db_connection_failed",
    "transaction_failed",
    "deadlock_detected",
    "business_error",
    "operation_not_allowed",
    "internal_error",
    "ErrorMapper",
    "DatabaseErrorMapper",
    "ValidationErrorMapper",
    "map_db_errors",
    "AppErrorException",
    "register_error_handlers",
    "result_to_response",
    "raise_error",
    "raise_result",
]
