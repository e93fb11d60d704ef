"""
WhisperLog Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for each error scenario the API exposes.
Why:   Services raise domain errors; global handlers in main.py turn them into
       consistent JSON responses with the right HTTP status code.
How:   Each exception carries a user-safe message and an optional context dict.
       Context is logged server-side and only returned where it is safe.

Exception Hierarchy:
    WhisperLogError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── UnauthorizedError        → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found (missing or not owned)
    ├── ConflictError            → 409 Conflict (duplicate registration)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── ServiceUnavailableError  → 503 (vendor outage, exhausted retries)
    │   └── ConfigurationError   → 503 (bad/missing provider credentials)
    ├── ProcessingFailedError    → 502 (formatting failed after retries)
    ├── ProcessingCancelledError → 499 (client went away mid-retry)
    ├── EmailDeliveryError       → 502 (OTP email could not be sent)
    ├── FileStorageError         → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error

Provider-level failures (ProviderError) live next to the adapters in
services/providers/base.py; the orchestrator translates them into the
classes above once the retry policy has run its course.
"""

from typing import Any, Dict, Optional


class WhisperLogError(Exception):
    """
    Base exception for all WhisperLog application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; returned only by some handlers)
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(WhisperLogError):
    """
    Raised when client input fails a business rule.

    FastAPI already answers schema violations with 422; this covers checks the
    schema cannot express (bad base64 audio, unsupported content type, an
    invalid OTP, ...).
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnauthorizedError(WhisperLogError):
    """Bad credentials, or a missing, invalid or expired bearer token."""

    status_code = 401
    error_code = "unauthorized"

    def __init__(
        self,
        message: str = "Not authenticated",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(WhisperLogError):
    """
    Raised when a requested resource does not exist.

    Records owned by another user are reported the same way, so the API never
    confirms that someone else's id exists.
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(WhisperLogError):
    """Raised when registration collides with an existing email or username."""

    status_code = 409
    error_code = "conflict"

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(WhisperLogError):
    """Raised when a client exceeds the per-IP request rate limit."""

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class ServiceUnavailableError(WhisperLogError):
    """
    Raised when the AI vendor is down, throttling us, or out of quota and the
    retry budget is spent.

    HTTP: 503 Service Unavailable, with Retry-After when a hint is available.
    """

    status_code = 503
    error_code = "service_unavailable"

    def __init__(
        self,
        message: str = "AI formatting service is temporarily unavailable. Please try again later.",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class ConfigurationError(ServiceUnavailableError):
    """
    Raised when a provider rejects our credentials or has none configured.

    Callers see the same generic 503 as any other outage; the provider name and
    vendor message stay in the server log.
    """

    error_code = "service_unavailable"

    def __init__(
        self,
        message: str = "AI provider is not configured correctly",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ProcessingFailedError(WhisperLogError):
    """Raised when formatting fails for a reason other than outage or credentials."""

    status_code = 502
    error_code = "processing_failed"

    def __init__(
        self,
        message: str = "Content processing failed. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ProcessingCancelledError(WhisperLogError):
    """Raised when the client disconnects while a processing request is retrying."""

    status_code = 499
    error_code = "processing_cancelled"

    def __init__(
        self,
        message: str = "Processing was cancelled before it completed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class EmailDeliveryError(WhisperLogError):
    """Raised when an email that the user depends on (the reset OTP) cannot be sent."""

    status_code = 502
    error_code = "email_delivery_failed"

    def __init__(
        self,
        message: str = "Failed to send email. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(WhisperLogError):
    """Raised when writing or removing stored audio fails."""

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(WhisperLogError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; the SQLAlchemy error
    is logged server-side only.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
