"""
Custom Exception Hierarchy

Structured exceptions shared by the webhook pipeline, the reconcilers and the
bulk synchronizer. Each carries the HTTP status the API layer should answer with.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    UNAUTHORIZED = "ERR_1004"

    CREDENTIALS_NOT_FOUND = "ERR_2001"

    UPSTREAM_ERROR = "ERR_3001"
    UPSTREAM_TIMEOUT = "ERR_3002"
    UPSTREAM_RATE_LIMITED = "ERR_3003"

    PERSISTENCE_ERROR = "ERR_4001"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class AuthenticationFailure(AppException):
    """Raised when a webhook signature does not match the configured secret"""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class ValidationError(AppException):
    """Raised when a webhook body is malformed or misses required fields"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
        )
        if field:
            self.details["field"] = field


class CredentialsNotFound(AppException):
    """Raised when no API token is stored for a store"""

    def __init__(self, store_id: int):
        super().__init__(
            message=f"No credentials stored for store {store_id}",
            error_code=ErrorCode.CREDENTIALS_NOT_FOUND,
            status_code=404,
            details={"store_id": store_id},
        )
        self.store_id = store_id


class UpstreamError(AppException):
    """Raised when the Tiendanube API answers non-2xx or times out"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        operation: Optional[str] = None,
        timed_out: bool = False,
        response_text: str = "",
    ):
        if timed_out:
            error_code = ErrorCode.UPSTREAM_TIMEOUT
        elif status_code == 429:
            error_code = ErrorCode.UPSTREAM_RATE_LIMITED
        else:
            error_code = ErrorCode.UPSTREAM_ERROR

        super().__init__(
            message=message,
            error_code=error_code,
            status_code=502,
            details={
                "operation": operation,
                "upstream_status": status_code,
                "timed_out": timed_out,
                "response_text": response_text[:500],
            },
        )
        self.upstream_status = status_code
        self.operation = operation
        self.timed_out = timed_out

    @classmethod
    def from_response(cls, operation: str, response: Any) -> "UpstreamError":
        """Build an UpstreamError from an httpx response, translating the status."""
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""

        if status_code == 400:
            message = f"Tiendanube rejected the request body ({operation})"
        elif status_code == 401:
            message = f"Tiendanube rejected the access token ({operation})"
        elif status_code == 404:
            message = f"Tiendanube resource not found ({operation})"
        elif status_code == 422:
            message = f"Tiendanube validation error ({operation}): {response_text[:200]}"
        elif status_code == 429:
            message = f"Tiendanube rate limit exceeded ({operation})"
        elif status_code is not None and status_code >= 500:
            message = f"Tiendanube server error {status_code} ({operation})"
        else:
            message = f"Tiendanube API error {status_code} ({operation})"

        return cls(
            message=message,
            status_code=status_code,
            operation=operation,
            response_text=response_text,
        )


class PersistenceError(AppException):
    """Raised when the record store fails a read or write"""

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.PERSISTENCE_ERROR,
            status_code=500,
            details={"collection": collection} if collection else None,
        )
