"""
app/api/errors.py

Maps workflow failures onto HTTP errors.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from kpi.errors import (
    ConflictError,
    InvalidConfigurationError,
    InvalidStateError,
    KPIWorkflowError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

_STATUS_BY_ERROR: tuple[tuple[type[KPIWorkflowError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (InvalidConfigurationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
)


def status_code_for(exc: KPIWorkflowError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: KPIWorkflowError) -> HTTPException:
    return HTTPException(status_code=status_code_for(exc), detail=str(exc))
