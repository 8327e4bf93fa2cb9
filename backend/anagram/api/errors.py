"""Maps domain failures carried in Result.fail to HTTP errors."""
from __future__ import annotations

from fastapi import HTTPException, status

from anagram.domain.common.errors import (
    ConfigurationError,
    DomainError,
    GenerationExhausted,
    InactiveAssignment,
    NotFound,
    OutOfSequenceAnswer,
    OverdueSubmission,
    PermissionDenied,
    PersistenceConflict,
    PersistenceUnavailable,
)

STATUS_CODES = {
    ConfigurationError: status.HTTP_400_BAD_REQUEST,
    GenerationExhausted: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OutOfSequenceAnswer: status.HTTP_409_CONFLICT,
    InactiveAssignment: status.HTTP_409_CONFLICT,
    PersistenceConflict: status.HTTP_409_CONFLICT,
    OverdueSubmission: status.HTTP_403_FORBIDDEN,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    PersistenceUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http(error: DomainError) -> HTTPException:
    code = STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST)
    detail = {"error": type(error).__name__, "message": error.message}
    if isinstance(error, GenerationExhausted):
        detail["category"] = error.category
        detail["attempts"] = error.attempts
    return HTTPException(status_code=code, detail=detail)
