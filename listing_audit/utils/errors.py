"""
Application error hierarchy and error categorization.

Every failure a caller is expected to branch on is an AppError subclass that
carries a machine-readable code, a human-readable message, optional details
and the HTTP status the API answers with.
"""

import asyncio
from typing import Any, Optional

import httpx

# =============================================================================
# Custom Exceptions
# =============================================================================


class AppError(Exception):
    """Base application exception."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> dict[str, Any]:
        """JSON body for an error response."""
        body: dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(AppError):
    """Malformed or missing input. Never retried."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class BotSuspectedError(AppError):
    status_code = 403
    default_code = "BOT_SUSPECTED"

    def __init__(self, message: str = "Please use a web browser"):
        super().__init__(message)


class ScrapeFailedError(AppError):
    """A scrape failure the pipeline treats as terminal."""

    status_code = 400
    default_code = "SCRAPE_FAILED"


class AnalysisError(AppError):
    """The generator returned nothing usable."""

    status_code = 500
    default_code = "ANALYSIS_FAILED"


class StoreError(AppError):
    status_code = 500
    default_code = "STORE_ERROR"


class LeadUpdateError(StoreError):
    default_code = "LEAD_UPDATE_FAILED"


class ConfigurationError(AppError):
    """A required collaborator is not configured."""

    status_code = 503
    default_code = "SERVICE_UNAVAILABLE"


class AuthenticationError(AppError):
    status_code = 401
    default_code = "UNAUTHENTICATED"


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class AppTimeoutError(AppError):
    status_code = 504
    default_code = "TIMEOUT"


# =============================================================================
# Error Handler
# =============================================================================


class ErrorHandler:
    """Centralized error categorization."""

    @staticmethod
    def categorize_error(error: Exception) -> str:
        """Categorize errors for logging and stage-failure reporting."""
        if isinstance(error, AppError):
            return error.code
        if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
            return "TIMEOUT"
        if isinstance(error, (httpx.NetworkError, ConnectionError, OSError)):
            return "NETWORK_ERROR"
        if isinstance(error, (ValueError, TypeError)):
            return "VALIDATION_ERROR"

        err_str = str(error).lower()
        if "rate limit" in err_str:
            return "RATE_LIMIT_ERROR"
        if "timeout" in err_str:
            return "TIMEOUT"
        if "api key" in err_str or "unauthorized" in err_str:
            return "API_KEY_ERROR"
        if "connection" in err_str:
            return "NETWORK_ERROR"

        return "UNKNOWN_ERROR"
