"""
Shared error handling for the profile gateway.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class GatewayException(Exception):
    """Base exception for gateway errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidParameterError(GatewayException):
    """Client-supplied parameter failed validation."""

    status_code = 400

    def __init__(self, message: str = "Invalid request parameter", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_PARAMETER", message, details or {})


class UpstreamInvalidResponseError(GatewayException):
    """Upstream returned JSON that does not match the response schema."""

    status_code = 502

    def __init__(self, message: str = "Upstream returned an invalid response", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_INVALID_RESPONSE", message, details or {})


class InternalError(GatewayException):
    """Unexpected failure; never exposes internal details to the client."""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__("INTERNAL_ERROR", message)


class RateLimitError(GatewayException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMITED", message, details)


class ExternalServiceError(Exception):
    """Transport-level failure talking to an external service."""

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        self.service = service
        self.details = details or {}
        super().__init__(f"{service}: {message}")


class UpstreamHTTPError(ExternalServiceError):
    """External service answered with a non-2xx status."""

    def __init__(self, service: str, status_code: int, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(
            service,
            f"Unexpected status {status_code} from {url}",
            details={"status_code": status_code, "url": url}
        )


def format_validation_errors(error: PydanticValidationError) -> Dict[str, List[str]]:
    """Group validation messages by dotted field path, skipping root-level issues."""
    formatted: Dict[str, List[str]] = {}
    for issue in error.errors():
        path = ".".join(str(part) for part in issue.get("loc", ()))
        if not path:
            continue
        formatted.setdefault(path, []).append(issue["msg"])
    return formatted
