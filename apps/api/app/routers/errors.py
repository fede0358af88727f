from fastapi import HTTPException, status

from app.services.errors import (
    BusyResourceError,
    ConfigurationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    SchedulerError,
    StorageError,
)

_STATUS_BY_ERROR: dict[type[SchedulerError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    BusyResourceError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def translate_scheduler_error(err: SchedulerError) -> HTTPException:
    status_code = _STATUS_BY_ERROR.get(type(err), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(
        status_code=status_code,
        detail={"code": err.code, "message": err.message, "retryable": err.retryable},
    )
