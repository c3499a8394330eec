"""Domain-Specific Error Builders

Each builder returns Err(AppError) with the right code and metadata so
callers can `return not_found(...)` directly from a Result-typed function.
"""
from uuid import UUID

from .types import AppError, ErrorCode, ErrorContext, Err


def _clean(meta: dict) -> dict:
    return {k: v for k, v in meta.items() if v is not None}


# =============================================================================
# Timeouts (E1xxx)
# =============================================================================

def timeout_error(
    operation: str, timeout_seconds: float, origin: str = ""
) -> Err[AppError]:
    return Err(AppError(
        code=ErrorCode.E1002_TIMEOUT,
        message=f"Operation '{operation}' timed out after {timeout_seconds}s",
        context=ErrorContext(origin=origin),
        metadata={"operation": operation, "timeout_seconds": timeout_seconds},
    ))


# =============================================================================
# Validation (E2xxx)
# =============================================================================

def validation_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E2000_VALIDATION_GENERIC,
    field: str | None = None,
    value: str | None = None,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata=_clean({"field": field, "value": value, **metadata}),
    ))


def required_field(field: str, origin: str = "") -> Err[AppError]:
    return validation_error(
        f"Required field '{field}' is missing",
        code=ErrorCode.E2001_REQUIRED_FIELD_MISSING,
        field=field,
        origin=origin,
    )


def out_of_range(
    field: str,
    value: int | float,
    min_val: int | float | None = None,
    max_val: int | float | None = None,
    origin: str = "",
) -> Err[AppError]:
    bounds = []
    if min_val is not None:
        bounds.append(f">= {min_val}")
    if max_val is not None:
        bounds.append(f"<= {max_val}")
    return validation_error(
        f"Value {value} for '{field}' out of range ({', '.join(bounds)})",
        code=ErrorCode.E2003_OUT_OF_RANGE,
        field=field,
        value=str(value),
        min=min_val,
        max=max_val,
        origin=origin,
    )


def invalid_uuid(value: str, field: str = "id", origin: str = "") -> Err[AppError]:
    return validation_error(
        f"Invalid UUID format for '{field}': '{value}'",
        code=ErrorCode.E2011_INVALID_UUID,
        field=field,
        value=value,
        origin=origin,
    )


def invalid_criteria(badge_key: str, reason: str, origin: str = "") -> Err[AppError]:
    return validation_error(
        f"Badge '{badge_key}' has invalid criteria: {reason}",
        code=ErrorCode.E2030_INVALID_BADGE_CRITERIA,
        field="criteria",
        badge_key=badge_key,
        origin=origin,
    )


# =============================================================================
# Identity / Access (E3xxx)
# =============================================================================

# Reason codes reported to callers alongside the error code
ACCESS_REASON_CODES: dict[str, ErrorCode] = {
    "NOT_ENROLLED": ErrorCode.E3030_NOT_ENROLLED,
    "NOT_IN_HIERARCHY": ErrorCode.E3031_NOT_IN_HIERARCHY,
    "LOCKED": ErrorCode.E3032_CONTENT_LOCKED,
}


def identity_missing(origin: str = "") -> Err[AppError]:
    return Err(AppError(
        code=ErrorCode.E3004_IDENTITY_MISSING,
        message="Authenticated user identity required",
        context=ErrorContext(origin=origin),
    ))


def access_denied(
    reason: str,
    message: str,
    *,
    user_id: UUID | str | None = None,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    """Access rejection with a distinct reason code (NOT_ENROLLED, NOT_IN_HIERARCHY, LOCKED)."""
    code = ACCESS_REASON_CODES.get(reason, ErrorCode.E3011_RESOURCE_FORBIDDEN)
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin, user_id=str(user_id) if user_id else None),
        metadata=_clean({"reason": reason, **{k: str(v) if isinstance(v, UUID) else v for k, v in metadata.items()}}),
    ))


def not_enrolled(user_id: UUID, program_id: UUID, origin: str = "") -> Err[AppError]:
    return access_denied(
        "NOT_ENROLLED",
        "Learner is not enrolled in this program",
        user_id=user_id,
        program_id=program_id,
        origin=origin,
    )


def not_in_hierarchy(entity: str, parent: str, origin: str = "", **ids) -> Err[AppError]:
    return access_denied(
        "NOT_IN_HIERARCHY",
        f"{entity} does not belong to this {parent}",
        origin=origin,
        **ids,
    )


def content_locked(entity: str, order: int, origin: str = "", **ids) -> Err[AppError]:
    return access_denied(
        "LOCKED",
        f"{entity} at position {order} is locked until the previous one is completed",
        order=order,
        origin=origin,
        **ids,
    )


# =============================================================================
# Database (E4xxx)
# =============================================================================

def db_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E4000_DATABASE_GENERIC,
    table: str | None = None,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata=_clean({"table": table, **metadata}),
        cause=cause,
    ))


def not_found(
    entity: str,
    id: str | UUID | None = None,
    origin: str = "",
) -> Err[AppError]:
    msg = f"{entity} not found"
    if id:
        msg += f": {id}"
    return db_error(
        msg,
        code=ErrorCode.E4010_NOT_FOUND,
        entity=entity,
        entity_id=str(id) if id else None,
        reason="NOT_FOUND",
        origin=origin,
    )


def duplicate_key(entity: str, field: str, value: str, origin: str = "") -> Err[AppError]:
    return db_error(
        f"{entity} with {field}='{value}' already exists",
        code=ErrorCode.E4011_DUPLICATE_KEY,
        entity=entity,
        field=field,
        value=value,
        origin=origin,
    )


def foreign_key_violation(entity: str, reference: str, origin: str = "") -> Err[AppError]:
    return db_error(
        f"Referenced {reference} does not exist for {entity}",
        code=ErrorCode.E4012_FOREIGN_KEY_VIOLATION,
        entity=entity,
        reference=reference,
        origin=origin,
    )


def db_connection_failed(reason: str = "", origin: str = "") -> Err[AppError]:
    msg = "Database connection failed"
    if reason:
        msg += f": {reason}"
    return db_error(msg, code=ErrorCode.E4001_CONNECTION_FAILED, origin=origin)


def transaction_failed(reason: str = "", origin: str = "") -> Err[AppError]:
    msg = "Database transaction failed"
    if reason:
        msg += f": {reason}"
    return db_error(msg, code=ErrorCode.E4003_TRANSACTION_FAILED, origin=origin)


def deadlock_detected(reason: str = "", origin: str = "") -> Err[AppError]:
    return db_error(
        f"Deadlock or lock contention: {reason}" if reason else "Deadlock or lock contention",
        code=ErrorCode.E4004_DEADLOCK,
        origin=origin,
    )


# =============================================================================
# Business (E5xxx)
# =============================================================================

def business_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E5000_BUSINESS_GENERIC,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata=metadata,
    ))


def operation_not_allowed(operation: str, reason: str = "", origin: str = "") -> Err[AppError]:
    msg = f"Operation '{operation}' not allowed"
    if reason:
        msg += f": {reason}"
    return business_error(
        msg,
        code=ErrorCode.E5001_OPERATION_NOT_ALLOWED,
        operation=operation,
        origin=origin,
    )


# =============================================================================
# Internal (E9xxx)
# =============================================================================

def internal_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E9001_UNEXPECTED_ERROR,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata=metadata,
        cause=cause,
    ))
