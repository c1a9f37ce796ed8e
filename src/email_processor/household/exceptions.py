"""
Custom exceptions for household confirmation with error context.

These exceptions only carry information. Logging happens where they are
handled, never when they are raised.
"""

from typing import Any, Dict, List, Optional

from .types import FailureKind


class ConfigurationError(Exception):
    """Exception raised when required settings are missing or invalid."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []

    @classmethod
    def for_missing(cls, names: List[str]) -> 'ConfigurationError':
        return cls(f"Missing required environment variables: {', '.join(names)}", missing=names)


class MailboxConnectionError(Exception):
    """Exception raised when the IMAP connection cannot be established or is lost."""

    def __init__(self, message: str, host: Optional[str] = None, port: Optional[int] = None):
        super().__init__(message)
        self.host = host
        self.port = port

    def __str__(self) -> str:
        base_message = super().__str__()
        if self.host:
            return f"{base_message} (server={self.host}:{self.port})"
        return base_message


class ConfirmationError(Exception):
    """Base exception for a confirmation run that did not succeed."""

    kind = FailureKind.UNEXPECTED_ERROR

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context

    def __str__(self) -> str:
        base_message = super().__str__()
        if self.context:
            context_info = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_message} (context: {context_info})"
        return base_message


class ExpiredLinkError(ConfirmationError):
    """The confirmation page reports the link is no longer valid."""

    kind = FailureKind.EXPIRED_LINK


class ControlNotFoundError(ConfirmationError):
    """The confirmation button is missing from the page."""

    kind = FailureKind.CONTROL_NOT_FOUND


class RetriesExhaustedError(ConfirmationError):
    """Every click attempt ended without the success indicator."""

    kind = FailureKind.RETRIES_EXHAUSTED

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        cause = str(last_error) if last_error else 'Success indicator not found'
        super().__init__(f"Confirmation failed after {attempts} attempts: {cause}")
        self.attempts = attempts
        self.last_error = last_error
