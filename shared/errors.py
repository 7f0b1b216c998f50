"""
Shared error handling for the Users Service.

Every error that may reach a client derives from ``ServiceException`` and
knows how to render itself into the uniform response envelope
``{returnCode, returnDesc, data?}``. Cache failures are not part of this
taxonomy; the cache adapter absorbs them.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from opentelemetry import trace


RETURN_CODE_SUCCESS = "00"
RETURN_CODE_NOT_FOUND = "01"
RETURN_CODE_FAILURE = "99"


class ResponseEnvelope(BaseModel):
    """Uniform response envelope returned by every users endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    return_code: str = Field(..., alias="returnCode")
    return_desc: str = Field(..., alias="returnDesc")
    data: Optional[Any] = None


class ServiceException(Exception):
    """Base exception for Users Service errors."""

    status_code: int = 500
    return_code: str = RETURN_CODE_FAILURE

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.description: Optional[str] = None
        super().__init__(message)

    def with_description(self, description: str) -> "ServiceException":
        """Set the client-facing description and return self for re-raising."""
        self.description = description
        return self

    def trace_id(self) -> Optional[str]:
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                return f"{span_context.trace_id:032x}"
        return None

    def to_envelope(self) -> ResponseEnvelope:
        """Convert to a response envelope."""
        return ResponseEnvelope(
            return_code=self.return_code,
            return_desc=self.description or self.message,
        )


class InvalidInputError(ServiceException):
    """Malformed request body or parameters."""

    status_code = 400

    def __init__(self, message: str = "Invalid request body", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class NotFoundError(ServiceException):
    """Requested entity is absent from the store."""

    status_code = 404
    return_code = RETURN_CODE_NOT_FOUND

    def __init__(self, message: str = "User not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class StoreError(ServiceException):
    """Relational store rejected or failed a statement."""

    def __init__(self, message: str = "Store error", details: Optional[Dict[str, Any]] = None,
                 code: str = "STORE_ERROR"):
        super().__init__(code, message, details)


class StoreUnavailableError(StoreError):
    """Relational store unreachable or timed out."""

    def __init__(self, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORE_UNAVAILABLE")


class InternalError(ServiceException):
    """Anything else, e.g. a serialization bug."""

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)


class CacheUnavailableError(ServiceException):
    """Cache unreachable at startup. Never raised while serving requests."""

    def __init__(self, message: str = "Cache unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_UNAVAILABLE", message, details)
