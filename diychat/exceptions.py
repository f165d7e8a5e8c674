"""Custom exceptions for the application.

This module defines application-specific exceptions with structured
error codes and metadata for consistent error handling.

Exception Hierarchy:
- AppError (base)
  ├── NotFoundError
  │   ├── SessionNotFoundError
  │   ├── MessageNotFoundError
  │   └── SummaryNotFoundError
  ├── TransientBackendError
  │   └── BackendTimeoutError
  ├── StorageInconsistencyError
  ├── ValidationError
  │   └── InvalidRoleError
  └── ConfigurationError

Usage:
    try:
        context = await session_service.get_context_for_request(session_id)
    except SessionNotFoundError:
        # Surface to the caller, never retried
        raise
    except TransientBackendError:
        # Summarization aborted cleanly; the next request retries it
        raise

Attributes:
    code: Machine-readable error code (e.g., "SESSION_NOT_FOUND")
    message: Human-readable error message
    details: Additional context for debugging
    retryable: Whether the operation can be retried
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID


class AppError(Exception):
    """Base exception for application errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        details: Additional context for debugging
        retryable: Whether the operation can be retried
        timestamp: When the error occurred
    """

    code: str = "APP_ERROR"
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
    ) -> None:
        """Initialize error with optional message and details."""
        self.message = message or self.message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable
        self.timestamp = datetime.now(UTC)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "retryable": self.retryable,
                "timestamp": self.timestamp.isoformat(),
            }
        }

    def __str__(self) -> str:
        """String representation with code."""
        return f"[{self.code}] {self.message}"


class NotFoundError(AppError):
    """Base exception for resource not found errors."""

    code = "NOT_FOUND"
    message = "Resource not found"

    def __init__(
        self,
        resource: str,
        identifier: str | UUID,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize not found error."""
        self.resource = resource
        self.identifier = identifier
        full_details = {"resource": resource, "identifier": str(identifier)}
        if details:
            full_details.update(details)
        super().__init__(
            message=f"{resource} not found: {identifier}",
            details=full_details,
        )


class SessionNotFoundError(NotFoundError):
    """Raised when a session is not found."""

    code = "SESSION_NOT_FOUND"
    message = "Session not found"

    def __init__(self, session_id: UUID) -> None:
        """Initialize session not found error."""
        self.session_id = session_id
        super().__init__(resource="Session", identifier=session_id)


class MessageNotFoundError(NotFoundError):
    """Raised when a message is not found within a session."""

    code = "MESSAGE_NOT_FOUND"
    message = "Message not found"

    def __init__(self, message_id: UUID, session_id: UUID | None = None) -> None:
        """Initialize message not found error."""
        self.message_id = message_id
        details = {"session_id": str(session_id)} if session_id else None
        super().__init__(resource="Message", identifier=message_id, details=details)


class SummaryNotFoundError(NotFoundError):
    """Raised when a summary is not found within a session."""

    code = "SUMMARY_NOT_FOUND"
    message = "Summary not found"

    def __init__(self, summary_id: UUID, session_id: UUID | None = None) -> None:
        """Initialize summary not found error."""
        self.summary_id = summary_id
        details = {"session_id": str(session_id)} if session_id else None
        super().__init__(resource="Summary", identifier=summary_id, details=details)


class TransientBackendError(AppError):
    """Raised when a generation backend call fails.

    Summarization aborts without writes and is retried by the next
    triggering request. Title generation swallows this error.
    """

    code = "TRANSIENT_BACKEND_FAILURE"
    message = "Generation backend call failed"
    retryable = True

    def __init__(
        self,
        provider: str,
        operation: str,
        error: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize backend failure."""
        self.provider = provider
        self.operation = operation
        full_details = {"provider": provider, "operation": operation, "error": error}
        if details:
            full_details.update(details)
        super().__init__(
            message=f"{operation} via '{provider}' failed: {error}",
            details=full_details,
        )


class BackendTimeoutError(TransientBackendError):
    """Raised when a generation backend call exceeds its timeout."""

    code = "BACKEND_TIMEOUT"
    message = "Generation backend call timed out"

    def __init__(self, provider: str, operation: str, timeout_seconds: float) -> None:
        """Initialize timeout error."""
        self.timeout_seconds = timeout_seconds
        super().__init__(
            provider=provider,
            operation=operation,
            error=f"timed out after {timeout_seconds}s",
            details={"timeout_seconds": timeout_seconds},
        )


class StorageInconsistencyError(AppError):
    """A metadata record references content absent from the content store.

    The context engine logs this loudly and substitutes empty content;
    the exception itself is raised only by strict integrity checks.
    """

    code = "STORAGE_INCONSISTENCY"
    message = "Metadata references missing content"

    def __init__(
        self,
        session_id: UUID,
        content_id: UUID,
        kind: str,
    ) -> None:
        """Initialize storage inconsistency error."""
        self.session_id = session_id
        self.content_id = content_id
        self.kind = kind
        super().__init__(
            message=f"{kind} {content_id} in session {session_id} has no stored content",
            details={
                "session_id": str(session_id),
                "content_id": str(content_id),
                "kind": kind,
            },
        )


class ValidationError(AppError):
    """Base exception for validation errors."""

    code = "VALIDATION_ERROR"
    message = "Validation failed"


class InvalidRoleError(ValidationError):
    """Raised when a message role is not one of the supported roles."""

    code = "INVALID_ROLE"
    message = "Invalid message role"

    def __init__(self, role: str, valid_roles: list[str]) -> None:
        """Initialize invalid role error."""
        self.role = role
        self.valid_roles = valid_roles
        super().__init__(
            message=f"Invalid role {role!r}. Valid roles: {valid_roles}",
            details={"role": role, "valid_roles": valid_roles},
        )


class ConfigurationError(AppError):
    """Base exception for configuration errors."""

    code = "CONFIGURATION_ERROR"
    message = "Invalid configuration"


__all__ = [
    "AppError",
    "NotFoundError",
    "SessionNotFoundError",
    "MessageNotFoundError",
    "SummaryNotFoundError",
    "TransientBackendError",
    "BackendTimeoutError",
    "StorageInconsistencyError",
    "ValidationError",
    "InvalidRoleError",
    "ConfigurationError",
]
