"""
Custom exception classes for the application.

Every error carries a machine-readable ``code`` and the HTTP status it maps
to, so the API layer can render them uniformly.
"""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "APP_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            details: Additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(AppException):
    """Raised when business validation fails (distinct from pydantic ValidationError)."""

    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "VALIDATION_ERROR", details)


class InvalidRoleError(AppException):
    """Raised when a token is requested for a role outside the known set."""

    status_code = 400

    def __init__(self, role: str) -> None:
        super().__init__(f"Invalid role: {role}", "INVALID_ROLE", {"role": role})


class NotFoundError(AppException):
    """Raised when an identifier is unknown to the backend."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "NOT_FOUND", details)


# =============================================================================
# Authentication
# =============================================================================


class AuthenticationError(AppException):
    """Raised when authentication fails."""

    status_code = 401

    def __init__(
        self,
        message: str = "Authentication failed",
        code: str = "AUTH_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class MissingTokenError(AuthenticationError):
    def __init__(self, message: str = "Access token required") -> None:
        super().__init__(message, "MISSING_TOKEN")


class InvalidCredentialsError(AuthenticationError):
    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message, "INVALID_CREDENTIALS")


class TokenExpiredError(AuthenticationError):
    """Raised when a token has expired."""

    def __init__(
        self,
        message: str = "Token has expired",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, "TOKEN_EXPIRED", details)


class InvalidTokenError(AuthenticationError):
    """Raised when a token is invalid."""

    def __init__(
        self,
        message: str = "Invalid token",
        details: dict[str, Any] | None = None,
        code: str = "INVALID_TOKEN",
    ) -> None:
        super().__init__(message, code, details)


class InvalidSignatureError(InvalidTokenError):
    """Raised when a token signature does not verify."""

    def __init__(self, message: str = "Token signature verification failed") -> None:
        super().__init__(message, code="INVALID_SIGNATURE")


class MalformedTokenError(InvalidTokenError):
    """Raised when a token cannot be decoded or lacks required claims."""

    def __init__(self, message: str = "Malformed token", details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details, code="MALFORMED_TOKEN")


class TokenRevokedError(InvalidTokenError):
    """Raised when a token was explicitly revoked (logout)."""

    def __init__(self, message: str = "Token has been revoked") -> None:
        super().__init__(message, code="TOKEN_REVOKED")


# =============================================================================
# Authorization
# =============================================================================


class PermissionDeniedError(AppException):
    """Raised when the caller's capabilities do not cover an operation."""

    status_code = 403

    def __init__(
        self,
        required: set[str] | frozenset[str],
        held: set[str] | frozenset[str],
        message: str | None = None,
    ) -> None:
        self.required = frozenset(required)
        self.held = frozenset(held)
        super().__init__(
            message or f"Insufficient permissions: requires {', '.join(sorted(self.required))}",
            "PERMISSION_DENIED",
            {"required": sorted(self.required), "held": sorted(self.held)},
        )


# =============================================================================
# Upstream (AEIMS backend)
# =============================================================================


class UpstreamError(AppException):
    """Base class for failures talking to the telephony backend."""

    status_code = 502


class UpstreamUnavailableError(UpstreamError):
    """Backend unreachable after the retry policy gave up."""

    status_code = 503

    def __init__(
        self,
        message: str = "Telephony backend unavailable",
        operation: str | None = None,
        attempts: int = 0,
        last_error: BaseException | None = None,
    ) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            message,
            "UPSTREAM_UNAVAILABLE",
            {"operation": operation, "attempts": attempts},
        )


class UpstreamRejectedError(UpstreamError):
    """Backend answered with a client error we do not map more specifically."""

    def __init__(
        self,
        message: str,
        upstream_status: int,
        operation: str | None = None,
        upstream_body: Any = None,
    ) -> None:
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body
        super().__init__(
            message,
            "UPSTREAM_REJECTED",
            {"operation": operation, "upstream_status": upstream_status},
        )


class UpstreamAuthExpiredError(UpstreamError):
    """Backend rejected our credential and re-authentication did not help."""

    def __init__(self, message: str = "Backend credential expired", operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message, "AUTH_EXPIRED", {"operation": operation})


class InternalError(AppException):
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message, "INTERNAL_ERROR")
