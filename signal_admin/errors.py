"""
Error taxonomy for signal admin operations.

Every error carries the operation that failed and the id it targeted so
callers can log it and decide whether to retry the whole operation.

RETRYABLE vs NON-RETRYABLE:
- Retryable: TransactionError, ConnectivityError
- Non-retryable: NotFoundError, ValidationError
"""

from typing import Optional


class SignalAdminError(Exception):
    """Base class for all signal admin errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        target_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.target_id = target_id

    def to_dict(self) -> dict:
        """Serialize for API error responses and structured logs."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "operation": self.operation,
            "target_id": self.target_id,
            "retryable": self.retryable,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.target_id:
            parts.append(f"target_id={self.target_id}")
        return " | ".join(parts)


class NotFoundError(SignalAdminError):
    """Referenced signal or collector does not exist."""


class ValidationError(SignalAdminError):
    """Malformed input to a repository or engine call."""


class DuplicateError(ValidationError):
    """Input collides with an existing unique value (e.g. collector email)."""


class TransactionError(SignalAdminError):
    """Store-level transaction failure after internal retries were exhausted."""

    retryable = True

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        target_id: Optional[str] = None,
        attempts: int = 0,
    ):
        super().__init__(message, operation=operation, target_id=target_id)
        self.attempts = attempts

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["attempts"] = self.attempts
        return data


class ConnectivityError(SignalAdminError):
    """Transient network or subscription failure talking to the store."""

    retryable = True
