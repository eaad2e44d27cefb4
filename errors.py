"""Error taxonomy for the analytics service.

Every error carries an HTTP status and a machine-readable ``error_code``
so the API layer can render a uniform ``{success, error, message}`` body.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.error_code.replace("_", " ")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.error_code,
            "message": self.message,
        }


class ValidationError(AnalyticsError):
    """Malformed payload, bad query parameter or unknown time range."""
    status_code = 400
    error_code = "validation_error"


class PayloadTooLarge(ValidationError):
    status_code = 413
    error_code = "payload_too_large"


class RateLimitExceeded(AnalyticsError):
    """Client exceeded its request budget for the current window."""
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, message: str = "Too many requests from this IP", retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        return body


class Unauthorized(AnalyticsError):
    status_code = 401
    error_code = "unauthorized"


class StorageError(AnalyticsError):
    """The backing store rejected or failed an operation."""
    status_code = 500
    error_code = "storage_error"


class StorageUnavailable(StorageError):
    """The backing store cannot be reached."""
    status_code = 503
    error_code = "storage_unavailable"


class StorageTimeout(AnalyticsError):
    """A storage call exceeded its time budget.

    The operation may still complete on the store after the caller gives up.
    """
    status_code = 504
    error_code = "timeout"


class ConfigError(Exception):
    """Invalid configuration value at startup."""
