"""Core module — config, types, logging."""

from src.core.config import Settings, get_settings, load_settings, reset_settings
from src.core.logging import setup_logging
from src.core.types import (
    Alert,
    AlertLevel,
    AlertStatus,
    BackupOperation,
    CheckResult,
    CheckStatus,
    ErrorKind,
    HealthSnapshot,
    RecoverySession,
    RecoveryStatus,
)

__all__ = [
    "Alert",
    "AlertLevel",
    "AlertStatus",
    "BackupOperation",
    "CheckResult",
    "CheckStatus",
    "ErrorKind",
    "HealthSnapshot",
    "RecoverySession",
    "RecoveryStatus",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
