"""Disaster recovery — phased full recovery, step actions and objectives."""

from src.recovery.actions import RecoveryActions, StepRunner
from src.recovery.exceptions import (
    CriticalStepError,
    RecoveryError,
    RecoveryInProgressError,
    StepError,
)
from src.recovery.objectives import ObjectiveStatus, evaluate_objectives
from src.recovery.orchestrator import RecoveryOrchestrator
from src.recovery.procedures import (
    CRITICAL_STEPS,
    PHASES,
    RecoveryPhase,
    RecoveryStep,
    default_procedures,
    is_critical_step,
)

__all__ = [
    "CRITICAL_STEPS",
    "CriticalStepError",
    "ObjectiveStatus",
    "PHASES",
    "RecoveryActions",
    "RecoveryError",
    "RecoveryInProgressError",
    "RecoveryOrchestrator",
    "RecoveryPhase",
    "RecoveryStep",
    "StepError",
    "StepRunner",
    "default_procedures",
    "evaluate_objectives",
    "is_critical_step",
]
