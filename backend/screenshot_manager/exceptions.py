"""
Screenshot Manager API - Custom Exception Hierarchy
===================================================

What:  Application-specific exceptions, one per failure kind.
How:   Each exception carries a message and an optional context dict.
       Global handlers registered in main.py map each type to an HTTP status
       and an `ErrorResponse` envelope (`success: false`).
Who:   Raised by services, storage backends and the auth dependency.

Exception Hierarchy:
    ScreenshotManagerError (base)       → 500
    ├── ValidationError                 → 400 Bad Request (details returned)
    ├── AuthenticationError             → 401 Unauthorized
    │   └── InvalidTokenError           → 401 (reason kept for logs)
    │       └── ExpiredTokenError       → 401
    ├── NotFoundError                   → 404 Not Found
    ├── RateLimitExceededError          → 429 Too Many Requests
    ├── StorageError                    → 500 (context logged, never returned)
    └── ConfigurationError              → 500 (context logged, never returned)
"""

from typing import Any, Dict, Optional


class ScreenshotManagerError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, not returned to client)
    """

    status_code = 500

    def __init__(
        self,
        message: str = "Internal server error",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ScreenshotManagerError):
    """
    Raised when client input fails validation.

    `details` is returned to the client verbatim: a list of error strings for
    metadata shape violations, or {"size": n, "limit": 2048} for size overruns.

    Example response:
        {
            "success": false,
            "error": "Invalid metadata",
            "details": ["Description must not exceed 500 characters"],
            "request_id": "a1b2c3d4"
        }
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Invalid request",
        details: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.details = details


class AuthenticationError(ScreenshotManagerError):
    """Missing or rejected credentials (login or bearer token)."""

    status_code = 401

    def __init__(
        self,
        message: str = "Unauthorized - Invalid or missing token",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidTokenError(AuthenticationError):
    """
    A bearer token failed verification.

    `reason` is one of "malformed", "bad_signature", "expired". It is logged
    for diagnosis; the client only ever sees a 401.
    """

    def __init__(self, reason: str = "malformed", context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["reason"] = reason
        super().__init__(message="Invalid or expired token", context=ctx)
        self.reason = reason


class ExpiredTokenError(InvalidTokenError):
    """Token signature is valid but its `exp` claim is missing or in the past."""

    def __init__(self, expired_at: Optional[int] = None):
        ctx = {}
        if expired_at is not None:
            ctx["expired_at"] = expired_at
        super().__init__(reason="expired", context=ctx)
        self.expired_at = expired_at


class NotFoundError(ScreenshotManagerError):
    """
    Raised when a requested resource does not exist.

    Storage backends return None for a missing object; the service layer
    converts None into this exception.
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = "Resource not found"
        if resource_id:
            message = f"{resource.capitalize()} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class RateLimitExceededError(ScreenshotManagerError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    Response includes a Retry-After header with the seconds to wait.
    """

    status_code = 429

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class StorageError(ScreenshotManagerError):
    """
    The object store failed (unreachable, access denied, misconfigured bucket).

    The message returned to the client is always generic; the backend error
    code and bucket name stay in `context` for the server log.
    """

    def __init__(
        self,
        message: str = "Object storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigurationError(ScreenshotManagerError):
    """A required setting (signing secret, password) is missing at request time."""

    def __init__(
        self,
        message: str = "Server is not configured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
