"""Application-level exception types for Turnstile."""

from __future__ import annotations


class TurnstileError(Exception):
    """Base exception for Turnstile."""


class ConfigurationError(TurnstileError):
    """Raised when settings are missing or inconsistent."""


class AuthenticationError(TurnstileError):
    """Raised when an inbound request fails identity verification."""

    def __init__(self, reason: str, *, status: int = 401) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status = status


class MiddlewareUsageError(TurnstileError):
    """Raised when middleware or hooks are registered or invoked incorrectly."""


class StaleContextError(TurnstileError):
    """Raised when a turn context is used after its turn has completed."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"turn context used after its turn completed: {operation}")
        self.operation = operation


class ActivityValidationError(TurnstileError, ValueError):
    """Raised when an activity lacks the fields an operation needs."""


class UnsupportedOperationError(TurnstileError):
    """Raised when an adapter's channel cannot perform the requested operation."""

    def __init__(self, adapter: str, operation: str) -> None:
        super().__init__(f"{adapter} does not support {operation}")
        self.adapter = adapter
        self.operation = operation
