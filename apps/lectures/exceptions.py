"""Typed failures raised by the lecture ingestion and search pipeline."""
from typing import Optional


class LectureSearchError(Exception):
    """Base exception for the lectures app."""


class DocumentValidationError(LectureSearchError):
    """Raised when required metadata or search input is missing or invalid."""


class DocumentNotFound(LectureSearchError):
    """Raised when a document record cannot be found."""

    def __init__(self, record_id: str):
        super().__init__(f"Document {record_id} not found")
        self.record_id = record_id


class ConcurrentModification(LectureSearchError):
    """Raised when a compare-and-swap patch carries a stale expected version."""

    def __init__(self, record_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Document {record_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class StorageVerificationFailed(LectureSearchError):
    """Raised when an uploaded storage object cannot be confirmed to exist."""

    def __init__(self, storage_id: str, reason: str = ""):
        message = f"Invalid storage ID or file not found. StorageId: {storage_id}"
        if reason:
            message = f"{message}, Error: {reason}"
        super().__init__(message)
        self.storage_id = storage_id


class StorageObjectNotFound(LectureSearchError):
    """Raised by the storage adapter when an object id does not resolve."""

    def __init__(self, storage_id: str):
        super().__init__(f"Storage object {storage_id} not found")
        self.storage_id = storage_id


class StorageUnavailable(LectureSearchError):
    """Raised when the storage service cannot produce a download URL."""


class UploadTargetExpired(LectureSearchError):
    """Raised when bytes are posted to an unknown or expired upload target."""


class TransportError(LectureSearchError):
    """A non-success response from a remote service, with its status and body."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        detail = message
        if status_code is not None:
            detail = f"{detail}: {status_code}"
        if body:
            detail = f"{detail} {body}"
        super().__init__(detail)
        self.status_code = status_code
        self.body = body


class FetchFailed(TransportError):
    """Raised when stored bytes cannot be downloaded."""


class ExternalServiceError(TransportError):
    """Raised when the external AI service returns a non-success response."""


class ExternalUploadFailed(ExternalServiceError):
    """Raised when uploading bytes to the external AI service fails."""


class ExternalResourceNotFound(ExternalServiceError):
    """Raised when the external AI service does not know a resource id."""


class SearchTimeout(LectureSearchError):
    """Raised when a search run does not reach a terminal status in time."""

    def __init__(self, attempts: int):
        super().__init__(f"Run did not reach a terminal status after {attempts} polls")
        self.attempts = attempts


class RunFailed(LectureSearchError):
    """Raised when a search run ends in a terminal status other than completed."""

    def __init__(self, status: str):
        super().__init__(f"Run did not complete successfully. Status: {status}")
        self.status = status


class LocalProcessingFailed(LectureSearchError):
    """Raised when a document fails local validation or transformation."""


class UnknownTask(LectureSearchError):
    """Raised when a task reference has no registered handler."""
