"""Disaster recovery exceptions."""

from __future__ import annotations

from src.core.types import ErrorKind


class RecoveryError(Exception):
    """Base exception for disaster recovery errors."""


class StepError(RecoveryError):
    """A recovery step failed. The kind is chosen where the step fails."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        super().__init__(message)
        self.kind = kind


class CriticalStepError(RecoveryError):
    """A critical step failed; the whole recovery is aborted."""

    def __init__(self, step: str, error: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        super().__init__(f"Critical step failed: {step} - {error}")
        self.step = step
        self.error = error
        self.kind = kind


class RecoveryInProgressError(RecoveryError):
    """A full recovery was requested while another one is active."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Recovery {session_id} is already in progress")
        self.session_id = session_id
