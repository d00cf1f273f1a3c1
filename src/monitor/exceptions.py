"""Exception hierarchy for the monitoring subsystem."""

from __future__ import annotations

from src.core.types import ErrorKind


class MonitorError(Exception):
    """Base exception for all monitoring errors."""


class CheckError(MonitorError):
    """A health check could not complete."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        super().__init__(message)
        self.kind = kind


class NotificationError(MonitorError):
    """A notification channel rejected or failed to deliver a message."""

    def __init__(
        self,
        channel: str,
        message: str,
        kind: ErrorKind = ErrorKind.EXTERNAL,
    ) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel
        self.kind = kind
