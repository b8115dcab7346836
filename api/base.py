"""Unified API response format and error codes."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: list[str] | None = Field(None, description="Individual error messages, if several")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _meta(request_id: str | None) -> APIMeta:
    return APIMeta(timestamp=now_utc(), request_id=request_id or str(uuid4()))


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    """Create a success response."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=_meta(request_id),
    )


def error_response(
    code: str,
    message: str,
    details: list[str] | None = None,
    request_id: str | None = None,
    data: Any | None = None
) -> APIResponse:
    """
    Create an error response.

    data carries a partial payload when the failure still has something to
    report (e.g. validation warnings for a blocked conversion).
    """
    return APIResponse(
        success=False,
        data=data,
        error=APIError(code=code, message=message, details=details),
        meta=_meta(request_id),
    )


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Authentication & Authorization
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    FORBIDDEN = "FORBIDDEN"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Conversion
    CONVERSION_BLOCKED = "CONVERSION_BLOCKED"
    ALREADY_CONVERTED = "ALREADY_CONVERTED"
    TERMINAL_STATE = "TERMINAL_STATE"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
