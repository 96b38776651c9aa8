"""
Custom exception classes for the application.

Only ValidationError and RateLimitError are ever surfaced to API callers.
The upstream/parse errors drive fallback chains inside the engine.
"""
from fastapi import HTTPException, status
from typing import Optional

from medsafe.constants import ErrorCodes


class MedicationSafetyException(HTTPException):
    """Base exception for medication safety errors."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An error occurred",
        error_code: Optional[str] = None
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code

    def __str__(self) -> str:
        return f"{self.error_code}: {self.detail}"


class ValidationError(MedicationSafetyException):
    """Raised when input validation fails."""

    def __init__(self, detail: str, rule: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=ErrorCodes.VALIDATION_ERROR
        )
        self.rule = rule


class MedicationNotFoundError(MedicationSafetyException):
    """Raised when no registry recognises a medication."""

    def __init__(self, medication_name: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Medication '{medication_name}' not found",
            error_code=ErrorCodes.NOT_FOUND
        )


class UpstreamError(MedicationSafetyException):
    """Raised when an external source fails (network error, 5xx, blocked)."""

    def __init__(self, source: str, detail: str = "Upstream service error"):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"{source}: {detail}",
            error_code=ErrorCodes.UPSTREAM_ERROR
        )
        self.source = source


class UpstreamTimeout(UpstreamError):
    """Raised when an external source does not answer in time."""

    def __init__(self, source: str, timeout: float):
        super().__init__(source, f"timed out after {timeout:g}s")
        self.status_code = status.HTTP_504_GATEWAY_TIMEOUT
        self.error_code = ErrorCodes.UPSTREAM_TIMEOUT
        self.timeout = timeout


class ParseError(MedicationSafetyException):
    """Raised when generator output does not match the expected schema."""

    def __init__(self, detail: str = "Malformed generator output"):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
            error_code=ErrorCodes.PARSE_ERROR
        )


class RateLimitError(MedicationSafetyException):
    """Raised when a client exceeds the HTTP rate limit."""

    def __init__(self, detail: str = "Rate limit exceeded. Please try again later."):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            error_code=ErrorCodes.RATE_LIMIT_ERROR
        )
