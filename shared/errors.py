"""
Shared error types for the backing services layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class BackingServiceException(Exception):
    """Base exception for the backing services layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(BackingServiceException, ValueError):
    """Caller contract violations."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class CacheError(BackingServiceException):
    """Cache backend failure."""

    def __init__(self, backend: str, message: str = "Cache error",
                 details: Optional[Dict[str, Any]] = None, code: str = "CACHE_ERROR"):
        self.backend = backend
        super().__init__(code, f"{backend}: {message}", details)


class CacheFullError(CacheError):
    """Local cache reached its entry ceiling."""

    def __init__(self, max_keys: int, details: Optional[Dict[str, Any]] = None):
        self.max_keys = max_keys
        super().__init__(
            "local",
            f"Cache max keys amount exceeded ({max_keys})",
            details,
            code="CACHE_FULL",
        )


class CacheUnavailableError(CacheError):
    """Remote cache has no usable connection."""

    def __init__(self, message: str = "Remote cache unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("remote", message, details, code="CACHE_UNAVAILABLE")
