"""Custom exception hierarchy for JournalBuddy.

All application-specific exceptions inherit from JournalBuddyError,
which carries an error code the gateway maps to an HTTP status.
"""

from __future__ import annotations


class JournalBuddyError(Exception):
    """Base exception for all JournalBuddy errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ValidationError(JournalBuddyError):
    """Malformed input to a core function (empty content, bad enum value, ...)."""

    def __init__(self, message: str, *, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message, code=code)


class NotFoundError(JournalBuddyError):
    """Entry, conversation or summary does not exist or is soft-deleted."""

    def __init__(self, message: str, *, code: str = "NOT_FOUND") -> None:
        super().__init__(message, code=code)


class StoreUnavailableError(JournalBuddyError):
    """Underlying persistence failed. Never retried internally."""

    def __init__(self, message: str, *, code: str = "STORE_UNAVAILABLE") -> None:
        super().__init__(message, code=code)


class ContextUnavailableError(JournalBuddyError):
    """Context assembly could not read its stores."""

    def __init__(self, message: str, *, code: str = "CONTEXT_UNAVAILABLE") -> None:
        super().__init__(message, code=code)


class CompletionError(JournalBuddyError):
    """Errors from the text-generation service (network, refusal, empty output)."""

    def __init__(self, message: str, *, code: str = "COMPLETION_ERROR") -> None:
        super().__init__(message, code=code)


class CompletionTimeoutError(CompletionError):
    """Completion call exceeded the caller-supplied timeout."""

    def __init__(self, message: str = "Completion call timed out") -> None:
        super().__init__(message, code="COMPLETION_TIMEOUT")
