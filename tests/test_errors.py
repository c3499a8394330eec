from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from core.errors import (
    AppError,
    DatabaseErrorMapper,
    Err,
    ErrorCode,
    Ok,
    content_locked,
    not_enrolled,
    not_found,
    sequence_results,
)


@pytest.mark.parametrize("code,status", [
    (ErrorCode.E1002_TIMEOUT, 504),
    (ErrorCode.E2003_OUT_OF_RANGE, 400),
    (ErrorCode.E3004_IDENTITY_MISSING, 401),
    (ErrorCode.E3030_NOT_ENROLLED, 403),
    (ErrorCode.E3031_NOT_IN_HIERARCHY, 403),
    (ErrorCode.E3032_CONTENT_LOCKED, 403),
    (ErrorCode.E4010_NOT_FOUND, 404),
    (ErrorCode.E4011_DUPLICATE_KEY, 409),
    (ErrorCode.E4004_DEADLOCK, 503),
    (ErrorCode.E9001_UNEXPECTED_ERROR, 500),
])
def test_http_status(code, status):
    assert code.http_status == status


def test_access_errors_carry_reason():
    user_id, program_id = uuid4(), uuid4()
    error = not_enrolled(user_id, program_id).unwrap_err()
    assert error.code == ErrorCode.E3030_NOT_ENROLLED
    assert error.metadata == {"reason": "NOT_ENROLLED", "program_id": str(program_id)}
    assert error.context.user_id == str(user_id)

    locked = content_locked("Lesson", 2, lesson_id=uuid4()).unwrap_err()
    assert locked.metadata["reason"] == "LOCKED"
    assert locked.metadata["order"] == 2


def test_not_found_envelope():
    body = not_found("Lesson", "abc").unwrap_err().to_dict()["error"]
    assert body["code"] == "E4010_NOT_FOUND"
    assert body["category"] == "database"
    assert body["metadata"]["reason"] == "NOT_FOUND"


class _Orig(Exception):
    pass


@pytest.mark.parametrize("exc,code", [
    (IntegrityError("INSERT", {}, _Orig("UNIQUE constraint failed: user_badges.user_id")), ErrorCode.E4011_DUPLICATE_KEY),
    (IntegrityError("INSERT", {}, _Orig("FOREIGN KEY constraint failed")), ErrorCode.E4012_FOREIGN_KEY_VIOLATION),
    (IntegrityError("INSERT", {}, _Orig("CHECK constraint failed: ck_users_xp")), ErrorCode.E4013_CHECK_CONSTRAINT),
    (OperationalError("UPDATE", {}, _Orig("database is locked")), ErrorCode.E4004_DEADLOCK),
    (OperationalError("SELECT", {}, _Orig("unable to connect")), ErrorCode.E4001_CONNECTION_FAILED),
])
def test_database_errors_are_mapped(exc, code):
    error = DatabaseErrorMapper("test").map_exception(exc)
    assert error.code == code
    assert error.cause is exc


def test_lock_contention_is_transient():
    error = DatabaseErrorMapper().map_exception(OperationalError("UPDATE", {}, _Orig("database is locked")))
    assert error.is_transient


def test_result_combinators():
    assert Ok(2).map(lambda v: v * 3).unwrap() == 6
    failure = Err(AppError(code=ErrorCode.E5000_BUSINESS_GENERIC, message="nope"))
    assert failure.map(lambda v: v * 3).is_err()
    assert failure.unwrap_or(7) == 7
    assert sequence_results([Ok(1), Ok(2)]).unwrap() == [1, 2]
    assert sequence_results([Ok(1), failure]).is_err()
