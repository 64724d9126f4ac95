"""
Error Codes and Exception Taxonomy.

Every failure the service can report is a SniprError subclass carrying a
machine-readable code, a human-readable message and optional details.

Two propagation regimes exist:
    - Request path (submission, status read, feed read): errors are raised
      to the API layer and mapped to HTTP status codes.
    - Background pipeline: errors are caught by the orchestrator and
      recorded on the job as status=failed with the message in `error`.

Hierarchy:
    SniprError
    ├── AuthError            (401, unverifiable credential)
    │   └── ForbiddenError   (403, identity does not match the resource)
    ├── ValidationError      (400, missing/malformed request fields)
    │   └── PayloadTooLargeError (413, upload over the size ceiling)
    ├── JobNotFoundError     (404)
    ├── FeedNotFoundError    (404)
    ├── InvalidTransitionError (409)
    ├── ServiceUnavailableError (503, runner shut down)
    └── PipelineError        (recorded on the job, never raised to a caller)
        ├── ExtractionError
        ├── SummarizationError
        ├── SynthesisError
        ├── SynthesisTimeout
        └── StorageError
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """
    Standardized error codes for API responses and job records.
    """
    AUTH_FAILED = "AUTH_FAILED"                 # Missing/invalid credential
    FORBIDDEN = "FORBIDDEN"                     # Principal does not own the resource
    INVALID_INPUT = "INVALID_INPUT"             # Bad request data
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"     # Upload over the size ceiling
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    FEED_NOT_FOUND = "FEED_NOT_FOUND"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    SUMMARIZATION_FAILED = "SUMMARIZATION_FAILED"
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
    SYNTHESIS_TIMEOUT = "SYNTHESIS_TIMEOUT"
    STORAGE_FAILED = "STORAGE_FAILED"
    INVALID_TRANSITION = "INVALID_TRANSITION"   # Write would break the job state machine
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE" # Jobs can no longer be dispatched
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SniprError(Exception):
    """
    Base exception for snipr errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class AuthError(SniprError):
    """Raised when a credential is missing, malformed, invalid or expired."""
    def __init__(self, message: str = "Invalid authorization token", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.AUTH_FAILED, details)


class ForbiddenError(AuthError):
    """Raised when a verified principal does not match the requested owner."""
    def __init__(self, message: str = "Forbidden", details: Optional[Dict] = None):
        super().__init__(message, details)
        self.code = ErrorCode.FORBIDDEN


class ValidationError(SniprError):
    """Raised when request fields are missing or malformed."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class PayloadTooLargeError(ValidationError):
    """Raised when an uploaded document exceeds the size ceiling."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, details)
        self.code = ErrorCode.PAYLOAD_TOO_LARGE


class JobNotFoundError(SniprError):
    """Raised when a job id does not exist."""
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", ErrorCode.JOB_NOT_FOUND, {"job_id": job_id})


class FeedNotFoundError(SniprError):
    """Raised when an owner has no feed."""
    def __init__(self, message: str = "Feed not found"):
        super().__init__(message, ErrorCode.FEED_NOT_FOUND)


class InvalidTransitionError(SniprError):
    """Raised when a job update would leave a terminal state or break a status invariant."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_TRANSITION, details)


class ServiceUnavailableError(SniprError):
    """Raised when a job cannot be dispatched because the runner is shutting down."""
    def __init__(self, message: str = "Service is shutting down", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SERVICE_UNAVAILABLE, details)


class PipelineError(SniprError):
    """Base for failures inside the background conversion pipeline."""


class ExtractionError(PipelineError):
    """Raised when a source cannot be fetched or reduced to readable text."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.EXTRACTION_FAILED, details)


class SummarizationError(PipelineError):
    """Raised when the summarization collaborator fails."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SUMMARIZATION_FAILED, details)


class SynthesisError(PipelineError):
    """Raised when the speech engine fails or returns an empty render."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, details)


class SynthesisTimeout(PipelineError):
    """Raised when a synthesis call exceeds its wall-clock ceiling."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_TIMEOUT, details)


class StorageError(PipelineError):
    """Raised when an artifact cannot be durably stored or resolved."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.STORAGE_FAILED, details)


# HTTP status for errors surfaced on the request path
HTTP_STATUS = {
    ErrorCode.AUTH_FAILED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.JOB_NOT_FOUND: 404,
    ErrorCode.FEED_NOT_FOUND: 404,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
}


def http_status_for(error: SniprError) -> int:
    """Map an error to its HTTP status code (500 when unmapped)."""
    return HTTP_STATUS.get(error.code, 500)
