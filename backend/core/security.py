from uuid import UUID

from fastapi import Header

from core.errors import identity_missing, invalid_uuid, raise_result


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> UUID:
    """Learner identity forwarded by the upstream auth gateway in X-User-ID."""
    if not x_user_id:
        raise_result(identity_missing(origin="security"))
    try:
        return UUID(x_user_id)
    except ValueError:
        raise_result(invalid_uuid(x_user_id, field="X-User-ID", origin="security"))
