from fastapi import HTTPException, status

from apps.lectures.exceptions import (
    ConcurrentModification,
    DocumentNotFound,
    DocumentValidationError,
    ExternalResourceNotFound,
    LectureSearchError,
    RunFailed,
    SearchTimeout,
    StorageObjectNotFound,
    StorageUnavailable,
    StorageVerificationFailed,
    TransportError,
    UploadTargetExpired,
)

# Checked in order, so subclasses come before their bases
ERROR_STATUS_CODES = (
    (DocumentValidationError, status.HTTP_400_BAD_REQUEST),
    (StorageVerificationFailed, status.HTTP_400_BAD_REQUEST),
    (DocumentNotFound, status.HTTP_404_NOT_FOUND),
    (StorageObjectNotFound, status.HTTP_404_NOT_FOUND),
    (ExternalResourceNotFound, status.HTTP_404_NOT_FOUND),
    (UploadTargetExpired, status.HTTP_404_NOT_FOUND),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (SearchTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (RunFailed, status.HTTP_502_BAD_GATEWAY),
    (StorageUnavailable, status.HTTP_502_BAD_GATEWAY),
    (TransportError, status.HTTP_502_BAD_GATEWAY),
)


def to_http_exception(error: LectureSearchError) -> HTTPException:
    """Translate a pipeline error into the HTTP response it should produce"""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Lecture pipeline error: {str(error)}"
    )
