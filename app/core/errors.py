"""Error taxonomy for the ingestion pipeline.

Every stage raises one of these and never retries on its own; the API layer
renders them as ``{"error", "detail", "status_code"}`` payloads.
"""

from __future__ import annotations

from fastapi import status


class IngestError(Exception):
    """Base exception for all pipeline failures."""

    code: str = "ingest_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str | None = None):
        self.message = message or self.code.replace("_", " ")
        super().__init__(self.message)


class BadRequest(IngestError):
    code = "bad_request"
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(IngestError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(IngestError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PayloadTooLarge(IngestError):
    code = "payload_too_large"
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(f"upload exceeds the {limit_bytes} byte limit")


class UnsupportedMediaType(IngestError):
    code = "unsupported_media_type"
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE


class StagingFailed(IngestError):
    """Raised when the inbound stream cannot be buffered to local storage."""

    code = "io_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ProbeFailed(IngestError):
    code = "probe_failed"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class RemuxFailed(IngestError):
    code = "remux_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UploadFailed(IngestError):
    code = "upload_failed"
    status_code = status.HTTP_502_BAD_GATEWAY


class PersistenceFailed(IngestError):
    """The object was stored but the metadata record could not be updated."""

    code = "persistence_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str | None = None, *, storage_key: str | None = None):
        self.storage_key = storage_key
        super().__init__(message)


__all__ = [
    "IngestError",
    "BadRequest",
    "Unauthorized",
    "NotFound",
    "PayloadTooLarge",
    "UnsupportedMediaType",
    "StagingFailed",
    "ProbeFailed",
    "RemuxFailed",
    "UploadFailed",
    "PersistenceFailed",
]
