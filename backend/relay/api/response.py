"""Error envelope helpers for consistent API responses."""

from typing import Any

from pydantic import BaseModel

# Error kinds understood by Messages API clients
INVALID_REQUEST = "invalid_request_error"
OVERLOADED = "overloaded_error"
API_ERROR = "api_error"

# Non-standard status Messages API clients treat as "overloaded, retry later"
OVERLOADED_STATUS = 529


class ErrorDetail(BaseModel):
    """Error detail structure."""

    type: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    type: str = "error"
    error: ErrorDetail


def error_response(kind: str, message: str) -> dict[str, Any]:
    """Create an error response envelope."""
    return ErrorResponse(error=ErrorDetail(type=kind, message=message)).model_dump()
