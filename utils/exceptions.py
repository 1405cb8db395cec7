"""
Application error taxonomy.

Every error a request handler may raise on purpose derives from AppError,
which carries the HTTP status, a stable error code for the envelope and an
outward message. api/errors.py turns them into responses.
"""
from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised while building the app when required settings are missing."""


class AppError(Exception):
    status_code = 500
    error = "INTERNAL_ERROR"
    message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details


class ValidationError(AppError):
    status_code = 400
    error = "VALIDATION_ERROR"
    message = "Invalid input"


class BadRequestError(AppError):
    status_code = 400
    error = "BAD_REQUEST"
    message = "Bad request"


class AuthenticationError(AppError):
    status_code = 401
    error = "UNAUTHORIZED"
    message = "Authentication required"


class AuthorizationError(AppError):
    status_code = 403
    error = "FORBIDDEN"
    message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    error = "NOT_FOUND"
    message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    error = "CONFLICT"
    message = "Resource already exists"


class RateLimitError(AppError):
    status_code = 429
    error = "RATE_LIMITED"
    message = "Too many requests, please try again later"

    def __init__(self, retry_after: int, message: str | None = None):
        super().__init__(message, details={"retryAfter": retry_after})
        self.retry_after = retry_after


class HashingError(AppError):
    """Argon2 failed to produce a hash."""


class VerificationError(AppError):
    """A stored password hash could not be parsed or checked."""
