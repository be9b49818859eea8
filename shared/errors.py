"""
Shared error handling for the Edge Gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


UPSTREAM_BODY_LIMIT = 200


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    code: str


class GatewayError(Exception):
    """Base exception for Edge Gateway components."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(error=self.message, code=self.code)


class ValidationError(GatewayError):
    """Malformed or incomplete client input."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class OriginNotAllowed(GatewayError):
    """Request came from an origin outside the restricted allow list."""

    status_code = 403

    def __init__(self, message: str = "Request origin is not allowed", details: Optional[Dict[str, Any]] = None):
        super().__init__("ORIGIN_NOT_ALLOWED", message, details)


class RouteNotFound(GatewayError):
    """No registered route matches the request."""

    status_code = 404

    def __init__(self, method: str, path: str):
        super().__init__("ROUTE_NOT_FOUND", "Not Found", {"method": method, "path": path})


class NotFoundError(GatewayError):
    """Semantic absence reported by an upstream (e.g. unknown username)."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class CredentialError(GatewayError):
    """Signing or credential configuration failure.

    Messages are fixed strings; key material is never interpolated.
    """

    status_code = 500

    def __init__(self, message: str = "Credential error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CREDENTIAL_ERROR", message, details)


class UpstreamError(GatewayError):
    """Non-2xx or transport failure from a downstream dependency."""

    status_code = 502

    def __init__(self, service: str, message: str = "Upstream request failed",
                 status_code: Optional[int] = None, body: Optional[str] = None):
        self.service = service
        self.upstream_status = status_code
        details: Dict[str, Any] = {"service": service}
        if status_code is not None:
            details["upstream_status"] = status_code
            message = f"{message} ({status_code})"
        if body:
            message = f"{message}: {truncate_body(body)}"
        super().__init__("UPSTREAM_ERROR", f"{service}: {message}", details)


def truncate_body(body: str, limit: int = UPSTREAM_BODY_LIMIT) -> str:
    """Shorten an upstream error body for diagnostics."""
    body = body.strip()
    if len(body) <= limit:
        return body
    return body[:limit] + "..."
