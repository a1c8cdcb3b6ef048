"""Application error types and the error-logging helper.

Every failure the service reports to a caller is an ``AppError``. The FastAPI
exception handlers in ``copilot_api.main`` render it as the ``ErrorResponse``
body ``{error, fallback?, code}``.
"""

from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()


class ErrorCode(str, Enum):
    """Machine readable error codes."""

    # Auth
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Resources
    NOT_FOUND = "NOT_FOUND"

    # External services
    AI_SERVICE_ERROR = "AI_SERVICE_ERROR"

    # Rate limiting
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(Exception):
    """Base exception for errors surfaced to API callers.

    Attributes:
        code: Error code returned to the caller.
        message: Human readable headline.
        status_code: HTTP status for the response.
        details: Optional structured details (validation info, retry-after).
        fallback: Cached content that can stand in for a live result.
            Only the assist routes consume it; it is never sent as-is.
        hint: Plain-language remediation shown next to the error.
        is_operational: False for programming errors.
    """

    status_code = 500
    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        status_code: int | None = None,
        details: Any = None,
        fallback: str | None = None,
        hint: str | None = None,
        is_operational: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        self.fallback = fallback
        self.hint = hint
        self.is_operational = is_operational


class AuthError(AppError):
    """Raised when the bearer token is missing, invalid or expired."""

    status_code = 401
    default_code = ErrorCode.UNAUTHORIZED


class ValidationError(AppError):
    """Raised when an assist payload is missing required fields."""

    status_code = 400
    default_code = ErrorCode.VALIDATION_ERROR


class AIServiceError(AppError):
    """Raised when the generation provider could not produce a live result."""

    status_code = 503
    default_code = ErrorCode.AI_SERVICE_ERROR


class RateLimitError(AppError):
    """Raised when a caller exceeds the request budget."""

    status_code = 429
    default_code = ErrorCode.RATE_LIMIT_EXCEEDED


DEFAULT_AI_UNAVAILABLE = (
    "AI service is currently unavailable. Please try again later or enter content manually."
)
DEFAULT_AI_HINT = "Please try again in a minute or enter the content manually."


def unauthorized(message: str = "Authentication required") -> AuthError:
    return AuthError(message)


def token_expired(message: str = "Token expired") -> AuthError:
    return AuthError(message, code=ErrorCode.TOKEN_EXPIRED)


def validation_error(message: str, details: Any = None) -> ValidationError:
    return ValidationError(message, details=details)


def ai_service_error(
    message: str = "AI service unavailable",
    fallback: str | None = None,
    hint: str | None = None,
) -> AIServiceError:
    return AIServiceError(message, fallback=fallback, hint=hint)


def rate_limit_exceeded(retry_after: int | None = None) -> RateLimitError:
    if retry_after:
        message = f"Too many requests. Please try again in {retry_after} seconds"
    else:
        message = "Too many requests. Please try again later"
    return RateLimitError(message, details={"retryAfter": retry_after})


def internal_error(message: str = "An unexpected error occurred", details: Any = None) -> AppError:
    return AppError(message, details=details, is_operational=False)


def log_error(error: BaseException, **context: Any) -> None:
    """Log an error with request context.

    Operational ``AppError`` instances are expected conditions and log at
    warning level; anything else logs at error level with the traceback.
    """
    if isinstance(error, AppError) and error.is_operational:
        logger.warning(
            "Operational error",
            code=error.code.value,
            error=error.message,
            status=error.status_code,
            fallback_available=error.fallback is not None,
            **context,
        )
        return

    logger.error(
        "Unexpected error",
        error=str(error),
        error_type=type(error).__name__,
        exc_info=error,
        **context,
    )
