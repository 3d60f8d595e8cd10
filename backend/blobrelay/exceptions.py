"""Exceptions for the blob transport and upload engine."""

from __future__ import annotations

from typing import Any


class BlobRelayError(Exception):
    """Base exception; carries the HTTP status and error code it maps to."""

    status_code: int = 500
    code: str = "internal_error"

    def extra(self) -> dict[str, Any]:
        """Additional fields rendered alongside the error message."""
        return {}


# --- Backend / transport ------------------------------------------------------


class BackendUnavailableError(BlobRelayError):
    """Raised when no backend node is usable at all."""

    status_code = 503
    code = "backend_unavailable"

    def __init__(self, message: str = "Storage service temporarily unavailable") -> None:
        super().__init__(message)


class BackendRequestError(BlobRelayError):
    """One backend call failed. Retried by the transfer layer, never surfaced."""

    status_code = 502
    code = "backend_request_failed"


class RateLimitedError(BackendRequestError):
    """Backend rejected the call with a rate-limit response."""

    code = "rate_limited"

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class TransportError(BlobRelayError):
    """Raised when the retry budget for a blob transfer is exhausted."""

    status_code = 503
    code = "storage_unavailable"

    def __init__(self, operation: str, attempts: int, last_error: Exception | None) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Storage temporarily unavailable, retry later "
            f"({operation} failed after {attempts} attempts: {last_error})"
        )


class UnknownNodeError(BlobRelayError):
    """A blob reference names a node that is not configured in this process."""

    status_code = 500
    code = "unknown_node"

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Backend node {node_id} is not configured")


class CorruptPayloadError(BlobRelayError):
    """Reassembled bytes do not match the declared part sizes."""

    status_code = 502
    code = "corrupt_payload"

    def __init__(self, expected: int, actual: int, detail: str = "") -> None:
        self.expected = expected
        self.actual = actual
        message = f"Reassembled payload has {actual} bytes, expected {expected}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    def extra(self) -> dict[str, Any]:
        return {"expected_bytes": self.expected, "actual_bytes": self.actual}


# --- Capacity -----------------------------------------------------------------


class QuotaExceededError(BlobRelayError):
    """Raised when an upload would exceed the owner's storage quota."""

    status_code = 400
    code = "quota_exceeded"

    def __init__(self, quota_bytes: int, used_bytes: int, required_bytes: int) -> None:
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        available = quota_bytes - used_bytes
        super().__init__(
            f"Quota exceeded: need {required_bytes} bytes, "
            f"only {available} bytes available "
            f"(quota: {quota_bytes}, used: {used_bytes})"
        )

    def extra(self) -> dict[str, Any]:
        return {"storage_used": self.used_bytes, "storage_limit": self.quota_bytes}


class UploadLimitReachedError(BlobRelayError):
    """Raised when the owner has used up their upload count."""

    status_code = 400
    code = "upload_limit_reached"

    def __init__(self, uploads_count: int, upload_limit: int) -> None:
        self.uploads_count = uploads_count
        self.upload_limit = upload_limit
        super().__init__(f"Upload limit reached ({uploads_count}/{upload_limit})")

    def extra(self) -> dict[str, Any]:
        return {"uploads_count": self.uploads_count, "upload_limit": self.upload_limit}


class PayloadTooLargeError(BlobRelayError):
    """Direct upload above the configured cap; the session flow must be used."""

    status_code = 413
    code = "use_chunked_upload"

    def __init__(self, size: int, max_size: int) -> None:
        self.size = size
        self.max_size = max_size
        super().__init__(
            f"File too large for direct upload ({size} bytes, maximum {max_size}). "
            f"Use a resumable upload session instead."
        )

    def extra(self) -> dict[str, Any]:
        return {"file_size": self.size, "max_size": self.max_size, "use_chunked_upload": True}


# --- Upload session protocol --------------------------------------------------


class SessionError(BlobRelayError):
    """Base class for upload session protocol errors."""

    status_code = 400
    code = "session_error"


class SessionNotFoundError(SessionError):
    status_code = 404
    code = "session_not_found"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Upload session {session_id} not found")


class SessionForbiddenError(SessionError):
    status_code = 403
    code = "session_forbidden"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Upload session {session_id} belongs to another owner")


class SessionConflictError(SessionError):
    status_code = 409
    code = "session_conflict"

    def __init__(self, session_id: str, status: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(f"Upload session {session_id} is {status}, not pending")

    def extra(self) -> dict[str, Any]:
        return {"status": self.status}


class SessionExpiredError(SessionError):
    status_code = 410
    code = "session_expired"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Upload session {session_id} has expired")


class InvalidChunkIndexError(SessionError):
    code = "invalid_chunk_index"

    def __init__(self, chunk_index: int, total_chunks: int) -> None:
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        super().__init__(
            f"Invalid chunk index {chunk_index}, expected 0-{total_chunks - 1}"
        )


class InvalidUploadError(SessionError):
    """Malformed init parameters (empty name, non-positive size, ...)."""

    code = "invalid_upload"


class ChunksMissingError(SessionError):
    """Completion attempted before every chunk arrived."""

    code = "chunks_missing"

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        self.missing = expected - actual
        super().__init__(f"{self.missing} of {expected} chunks missing")

    def extra(self) -> dict[str, Any]:
        return {
            "expected_chunks": self.expected,
            "uploaded_chunks": self.actual,
            "missing_chunks": self.missing,
        }


# --- Files --------------------------------------------------------------------


class FileRecordNotFoundError(BlobRelayError):
    status_code = 404
    code = "file_not_found"

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f"File {file_id} not found")
