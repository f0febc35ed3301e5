"""
Exception taxonomy for the voice journal.

Every failure is recoverable at the boundary of the user action that
triggered it; nothing here is meant to take the process down.
"""

from __future__ import annotations

from typing import Optional


class JournalError(Exception):
    """Base exception for all journal errors."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class CaptureUnavailable(JournalError):
    """Raised when the microphone is denied, absent, or breaks mid-session."""


class CaptureBusyError(JournalError):
    """Raised when a capture session starts while another one is active."""


class SessionStateError(JournalError):
    """Raised when a capture operation is invalid in the current state."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(
            f"Cannot {operation} a capture session in state {state}",
            {"operation": operation, "state": state},
        )


class ConfigurationError(JournalError):
    """Raised when required configuration is missing."""

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None) -> None:
        details = {"missing_keys": missing_keys} if missing_keys else {}
        super().__init__(message, details)


class TranscriptionError(JournalError):
    """Raised when the remote transcription call fails.

    ``kind`` is one of ``"timeout"``, ``"transport"`` or ``"provider"``.
    """

    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    PROVIDER = "provider"

    def __init__(self, message: str, kind: str = PROVIDER, status_code: Optional[int] = None) -> None:
        details: dict = {"kind": kind}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.kind = kind


class StorageError(JournalError):
    """Raised when the entry store cannot complete an operation."""

    def __init__(self, operation: str, message: str, reason: Optional[str] = None) -> None:
        details = {"operation": operation}
        if reason:
            details["reason"] = reason
        super().__init__(message, details)


class NotFoundError(JournalError):
    """Raised when an entry id is not present in the store."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Entry {entry_id} not found", {"entry_id": entry_id})
        self.entry_id = entry_id


class JournalBusyError(JournalError):
    """Raised when an action is rejected because transcription is in flight."""
