"""
Shared error handling for the Ledger Access Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class LedgerException(Exception):
    """Base exception for Ledger Access Layer services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(LedgerException):
    """Missing or unusable caller identity."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class ValidationError(LedgerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(code, message, details)


class UnsupportedOperationError(ValidationError):
    """A mutation kind the store facade does not know how to dispatch."""

    def __init__(self, operation: Any, details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__(
            f"Unsupported operation: {operation}",
            details or {"operation": str(operation)},
            code="UNSUPPORTED_OPERATION",
        )


class NotFoundError(LedgerException):
    """Requested record does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ExternalServiceError(LedgerException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None, code: str = "EXTERNAL_SERVICE_ERROR"):
        self.service = service
        super().__init__(code, f"{service}: {message}", details)


class StoreError(ExternalServiceError):
    """Remote data store rejected or failed a read or write."""

    def __init__(self, message: str = "Store request failed", details: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None):
        self.store_status = status_code
        merged = dict(details or {})
        if status_code is not None:
            merged.setdefault("status_code", status_code)
        super().__init__("store", message, merged, code="STORE_ERROR")
