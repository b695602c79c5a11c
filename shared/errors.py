"""
Shared error handling for the VAT lookup gateway.

Adapters raise these exceptions; the lookup core catches them at the
boundary of every storage or network call and turns them into fallback
values, so none of them reaches an HTTP caller from the lookup path.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class VatGatewayException(Exception):
    """Base exception for gateway services."""

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


class EntitlementError(VatGatewayException):
    """Billing provider or key registry could not be consulted."""

    def __init__(self, message: str = "Entitlement check failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENTITLEMENT_ERROR", message, details)


class UpstreamUnavailableError(VatGatewayException):
    """VIES could not produce an answer (network error, timeout, fault, bad payload).

    ``message`` is a short tag such as ``timeout`` or ``MS_UNAVAILABLE``; it
    ends up verbatim in the ``fallback:<reason>`` soft-failure string.
    """

    def __init__(self, message: str = "unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_UNAVAILABLE", message, details)


class StorageError(VatGatewayException):
    """Base class for object store failures."""

    def __init__(self, message: str = "Storage error", details: Optional[Dict[str, Any]] = None,
                 code: str = "STORAGE_ERROR"):
        super().__init__(code, message, details)


class StorageConfigurationError(StorageError):
    """The object store adapter is missing required settings."""

    def __init__(self, message: str = "Storage is not configured", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORAGE_CONFIGURATION_ERROR")


class StorageNotFoundError(StorageError):
    """Bucket (not object) does not exist."""

    def __init__(self, key: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Storage target not found: {key}", details, code="STORAGE_NOT_FOUND")
        self.key = key


class StoragePermissionError(StorageError):
    """Credentials rejected or access denied by the object store."""

    def __init__(self, message: str = "Storage permission denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORAGE_PERMISSION_DENIED")


class StorageUnavailableError(StorageError):
    """Object store timed out or is temporarily unavailable."""

    def __init__(self, message: str = "Storage unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORAGE_UNAVAILABLE")
